"""Workflow stage lifecycle."""

from process_agent_orchestrator.orchestrator.workflow.state_machine import (
    ALLOWED_TRANSITIONS,
    IllegalTransitionError,
    StageSnapshot,
    StageState,
    transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "IllegalTransitionError",
    "StageSnapshot",
    "StageState",
    "transition",
]
