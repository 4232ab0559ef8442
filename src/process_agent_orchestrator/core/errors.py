"""Error taxonomy shared by the domain model and the orchestration engine.

Every failure that crosses a public operation boundary is classified by one of
these kinds. Operations catch them at the boundary (see
:mod:`process_agent_orchestrator.core.result`) and report a failed ``Result``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INFRASTRUCTURE = "infrastructure"
    TIMEOUT = "timeout"


class OrchestratorError(Exception):
    """Base class for classified domain and engine failures."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DomainValidationError(OrchestratorError):
    """Malformed input or a payload that violates a node/agent invariant."""

    kind = ErrorKind.VALIDATION


class NotFoundError(OrchestratorError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(OrchestratorError):
    """Cycle, duplicate, or a rule that the current state forbids."""

    kind = ErrorKind.CONFLICT


class InfrastructureError(OrchestratorError):
    """Store or event sink failure."""

    kind = ErrorKind.INFRASTRUCTURE


class TaskTimeoutError(OrchestratorError):
    kind = ErrorKind.TIMEOUT


class ExecutionCountMismatchError(InfrastructureError):
    """A stage reported a different number of results than tasks it dispatched."""

    def __init__(self, *, stage: int, expected: int, actual: int) -> None:
        super().__init__(
            f"Stage {stage} returned {actual} results for {expected} dispatched tasks"
        )
        self.stage = stage
        self.expected = expected
        self.actual = actual
