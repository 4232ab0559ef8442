"""Agent registry, discovery and execution."""

from process_agent_orchestrator.agents.coordinator import TaskExecutionCoordinator
from process_agent_orchestrator.agents.discovery import AgentMatch, DiscoveryEngine
from process_agent_orchestrator.agents.models import (
    Agent,
    AgentCapabilities,
    AgentScope,
    AgentTools,
    ExecutionResult,
    ExecutionStatus,
    FeatureType,
)
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.agents.semantic import SemanticSearchEngine
from process_agent_orchestrator.agents.workflow_engine import (
    SynchronizationPoint,
    WorkflowCoordinationEngine,
    WorkflowExecutionPlan,
    WorkflowTask,
)

__all__ = [
    "Agent",
    "AgentCapabilities",
    "AgentMatch",
    "AgentRegistry",
    "AgentScope",
    "AgentTools",
    "DiscoveryEngine",
    "ExecutionResult",
    "ExecutionStatus",
    "FeatureType",
    "SemanticSearchEngine",
    "SynchronizationPoint",
    "TaskExecutionCoordinator",
    "WorkflowCoordinationEngine",
    "WorkflowExecutionPlan",
    "WorkflowTask",
]
