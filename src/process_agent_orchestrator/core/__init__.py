"""Core package initialization."""

from process_agent_orchestrator.core.config import OrchestratorConfig
from process_agent_orchestrator.core.errors import ErrorKind, OrchestratorError
from process_agent_orchestrator.core.orchestrator import Orchestrator
from process_agent_orchestrator.core.result import Result

__all__ = [
    "ErrorKind",
    "Orchestrator",
    "OrchestratorConfig",
    "OrchestratorError",
    "Result",
]
