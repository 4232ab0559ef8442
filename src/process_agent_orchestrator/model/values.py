"""Value objects and enums shared by the workflow model."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ModelStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    ERROR = "error"


class NodeStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class ActionStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0


class RetryPolicy(BaseModel):
    """How often and how patiently a failed action is retried."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_ms: int = Field(default=1000, ge=0)
    exponential: bool = True

    def delay_for(self, attempt: int) -> int:
        """Milliseconds to wait before retry number ``attempt`` (1-based)."""
        if attempt < 1:
            return 0
        if self.exponential:
            return self.backoff_ms * 2 ** (attempt - 1)
        return self.backoff_ms


class Raci(BaseModel):
    model_config = ConfigDict(frozen=True)

    responsible: str = ""
    accountable: str = ""
    consulted: tuple[str, ...] = ()
    informed: tuple[str, ...] = ()

    def principals(self) -> set[str]:
        named = {self.responsible, self.accountable, *self.consulted, *self.informed}
        return {p for p in named if p}
