"""Test configuration and fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from process_agent_orchestrator.agents.models import (
    Agent,
    AgentCapabilities,
    AgentScope,
    AgentTaskOutcome,
    AgentTools,
    ExecutionRequest,
    FeatureType,
)
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.agents.store import AgentStore
from process_agent_orchestrator.core.config import (
    CoordinationConfig,
    LLMConfig,
    OrchestratorConfig,
    StoreConfig,
)
from process_agent_orchestrator.core.events import EventPublisher, InMemoryEventSink


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state_dir = tmp_path / ".state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def llm_config() -> LLMConfig:
    """Provide a test LLM configuration."""
    return LLMConfig(
        provider="openai",
        openai_api_key="test-key",
        openai_model="gpt-4",
    )


@pytest.fixture
def store_config(temp_state_dir: Path) -> StoreConfig:
    return StoreConfig(storage_path=temp_state_dir)


@pytest.fixture
def orchestrator_config(store_config: StoreConfig) -> OrchestratorConfig:
    """Provide a test orchestrator configuration without LLM credentials."""
    return OrchestratorConfig(
        log_level="DEBUG",
        debug=True,
        llm=LLMConfig(openai_api_key=None),
        store=store_config,
        coordination=CoordinationConfig(),
    )


@pytest.fixture
def event_sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def events(event_sink: InMemoryEventSink) -> EventPublisher:
    return EventPublisher(event_sink)


@pytest.fixture
def registry(temp_state_dir: Path, events: EventPublisher) -> AgentRegistry:
    return AgentRegistry(AgentStore(temp_state_dir / "agents.json"), events)


@pytest.fixture
def make_agent() -> Callable[..., Agent]:
    """Build a valid agent; keyword overrides go to capabilities unless named below."""

    def _make(
        name: str,
        *,
        agent_id: str | None = None,
        entity_id: str = "model-1",
        feature_type: FeatureType = FeatureType.FUNCTION_MODEL,
        node_id: str | None = None,
        tools: list[str] | None = None,
        description: str = "",
        instructions: str = "Do the work.",
        enabled: bool = True,
        **capabilities: Any,
    ) -> Agent:
        fields: dict[str, Any] = {
            "scope": AgentScope(feature_type=feature_type, entity_id=entity_id, node_id=node_id),
            "name": name,
            "description": description,
            "instructions": instructions,
            "tools": AgentTools(available_tools=tools if tools is not None else ["http"]),
            "capabilities": AgentCapabilities(**capabilities),
            "enabled": enabled,
        }
        if agent_id is not None:
            fields["agent_id"] = agent_id
        return Agent(**fields)

    return _make


class FakeExecutor:
    """Scripted executor: per-agent behaviour, call log and concurrency tracking."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_agents: set[str] = set()
        self.raise_agents: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.running = 0
        self.max_running = 0

    async def execute(self, agent: Agent, request: ExecutionRequest) -> AgentTaskOutcome:
        self.calls.append((agent.agent_id, request.task))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(self.delays.get(agent.agent_id, 0))
            if agent.agent_id in self.raise_agents:
                raise self.raise_agents[agent.agent_id]
            if agent.agent_id in self.fail_agents:
                return AgentTaskOutcome(success=False, error=f"{agent.name} refused")
            return AgentTaskOutcome(success=True, output=f"{agent.name}: {request.task}")
        finally:
            self.running -= 1


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()
