"""Composition root wiring stores, the registry and the engines together."""

import logging
from collections.abc import Mapping

from process_agent_orchestrator.agents.coordinator import TaskExecutionCoordinator
from process_agent_orchestrator.agents.discovery import DiscoveryEngine
from process_agent_orchestrator.agents.executors import (
    AgentExecutor,
    LLMAgentExecutor,
    UnconfiguredExecutor,
)
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.agents.semantic import SemanticSearchEngine
from process_agent_orchestrator.agents.store import AgentStore
from process_agent_orchestrator.agents.workflow_engine import (
    SyncAction,
    WorkflowCoordinationEngine,
)
from process_agent_orchestrator.core.config import OrchestratorConfig
from process_agent_orchestrator.core.events import EventPublisher, EventSink
from process_agent_orchestrator.llm.factory import LLMFactory
from process_agent_orchestrator.model.graph_service import WorkflowGraphService
from process_agent_orchestrator.model.store import ConnectionStore, WorkflowModelStore

logger = logging.getLogger(__name__)


class Orchestrator:
    """Owns one instance of every service and hands collaborators to each.

    Nothing in the package reaches for a global: tests and the HTTP adapter
    build their own ``Orchestrator`` and pass it around.
    """

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        *,
        executor: AgentExecutor | None = None,
        event_sink: EventSink | None = None,
        sync_actions: Mapping[str, SyncAction] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Configuration object. If None, loads from environment.
            executor: Runs agent tasks. Defaults to an LLM-backed executor when an
                API key is configured.
            event_sink: Receives domain events. Defaults to logging them.
            sync_actions: Named synchronization actions available to workflows.
        """
        self.config = config or OrchestratorConfig()
        self.config.setup_logging()

        logger.info("Initializing process agent orchestrator")

        store = self.config.store
        self.events = EventPublisher(event_sink)
        self.models = WorkflowModelStore(store.models_dir)
        self.connections = ConnectionStore(store.connections_file)
        self.graph = WorkflowGraphService(
            models=self.models, connections=self.connections, events=self.events
        )

        self.registry = AgentRegistry(AgentStore(store.agents_file), self.events)
        self.discovery = DiscoveryEngine(self.registry, self.config.discovery)
        self.semantic_search = SemanticSearchEngine(self.registry, self.config.search)

        self.executor: AgentExecutor = executor or self._default_executor()
        self.coordinator = TaskExecutionCoordinator(
            self.registry, self.executor, self.config.coordination, self.events
        )
        self.workflows = WorkflowCoordinationEngine(
            self.registry,
            self.coordinator,
            config=self.config.coordination,
            events=self.events,
            discovery=self.discovery,
            sync_actions=sync_actions,
        )

        logger.info("Orchestrator initialized successfully")

    def _default_executor(self) -> AgentExecutor:
        if not self.config.llm.openai_api_key:
            logger.warning("No LLM credentials configured; agent tasks will fail to execute")
            return UnconfiguredExecutor()
        return LLMAgentExecutor(LLMFactory.create(self.config.llm))
