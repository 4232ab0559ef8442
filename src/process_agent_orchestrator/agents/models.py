"""Agent definitions and execution records."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_AGENT_NAME = 100
MAX_AGENT_DESCRIPTION = 1000
MAX_AGENT_INSTRUCTIONS = 10_000

_FLAG_ALIASES: dict[str, str] = {
    "read": "can_read",
    "write": "can_write",
    "execute": "can_execute",
    "analyze": "can_analyze",
    "orchestrate": "can_orchestrate",
}


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class FeatureType(str, Enum):
    FUNCTION_MODEL = "function-model"
    KNOWLEDGE_BASE = "knowledge-base"
    SPINDLE = "spindle"
    EVENT_STORM = "event-storm"


class AgentScope(BaseModel):
    """Where an agent is attached: a feature entity and optionally one node in it."""

    model_config = ConfigDict(frozen=True)

    feature_type: FeatureType
    entity_id: str = Field(min_length=1)
    node_id: str | None = None


class AgentTools(BaseModel):
    available_tools: list[str] = Field(default_factory=list)
    tool_configurations: dict[str, dict[str, Any]] = Field(default_factory=dict)
    custom_tools: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("available_tools")
    @classmethod
    def _unique_tools(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("available_tools must not contain duplicates")
        return value

    @model_validator(mode="after")
    def _configurations_reference_tools(self) -> AgentTools:
        unknown = sorted(set(self.tool_configurations) - set(self.available_tools))
        if unknown:
            raise ValueError(
                "tool_configurations reference unavailable tools: " + ", ".join(unknown)
            )
        return self


class AgentCapabilities(BaseModel):
    can_read: bool = True
    can_write: bool = False
    can_execute: bool = False
    can_analyze: bool = False
    can_orchestrate: bool = False

    max_concurrent_tasks: int = Field(default=5, ge=1, le=100)
    timeout_ms: int = Field(default=30_000, ge=1, le=3_600_000)
    supported_data_types: list[str] = Field(default_factory=lambda: ["json"], min_length=1)

    skills: list[str] = Field(default_factory=list)
    domains: list[str] = Field(default_factory=list)
    processing_modes: list[str] = Field(default_factory=list)

    def flags(self) -> set[str]:
        return {name for name in _FLAG_ALIASES.values() if getattr(self, name)}


class AgentMetrics(BaseModel):
    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    timeout_count: int = 0
    total_execution_time_ms: int = 0
    last_execution_at: datetime | None = None

    @property
    def success_rate(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return self.success_count / self.execution_count

    @property
    def average_execution_time_ms(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return self.total_execution_time_ms / self.execution_count


class Agent(BaseModel):
    """An autonomous agent attached to a feature entity.

    Required-ness of name, instructions and tools is enforced by the registry at
    registration time so callers get a specific message for each.
    """

    agent_id: str = Field(default_factory=lambda: uuid.uuid4().hex, min_length=1)
    scope: AgentScope
    name: str = Field(default="", max_length=MAX_AGENT_NAME)
    description: str = Field(default="", max_length=MAX_AGENT_DESCRIPTION)
    instructions: str = Field(default="", max_length=MAX_AGENT_INSTRUCTIONS)
    tools: AgentTools = Field(default_factory=AgentTools)
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    tags: list[str] = Field(default_factory=list)
    enabled: bool = True
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def capability_tags(self) -> set[str]:
        """Bare capability vocabulary, lowercased."""
        caps = self.capabilities
        values = [
            *caps.skills,
            *caps.domains,
            *caps.processing_modes,
            *caps.supported_data_types,
            *self.tools.available_tools,
            *self.tags,
        ]
        return {v.strip().lower() for v in values if v.strip()} | caps.flags()

    def offers(self, capability: str) -> bool:
        """Whether this agent satisfies one capability requirement.

        Accepts flag names (``can_write`` or ``write``), prefixed forms
        (``tool:``, ``data_type:``, ``skill:``, ``domain:``, ``mode:``,
        ``min_concurrent_tasks:N``) and bare tags.
        """
        cap = capability.strip().lower()
        if not cap:
            return False
        caps = self.capabilities

        prefix, sep, value = cap.partition(":")
        if sep:
            value = value.strip()
            match prefix:
                case "tool":
                    return value in {t.lower() for t in self.tools.available_tools}
                case "data_type" | "datatype":
                    return value in {d.lower() for d in caps.supported_data_types}
                case "skill":
                    return value in {s.lower() for s in caps.skills}
                case "domain":
                    return value in {d.lower() for d in caps.domains}
                case "mode":
                    return value in {m.lower() for m in caps.processing_modes}
                case "min_concurrent_tasks" | "minconcurrenttasks":
                    try:
                        return caps.max_concurrent_tasks >= int(value)
                    except ValueError:
                        return False
                case _:
                    return False

        flag = _FLAG_ALIASES.get(cap, cap)
        if flag in _FLAG_ALIASES.values():
            return bool(getattr(caps, flag))
        return cap in self.capability_tags()


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class ExecutionRequest(BaseModel):
    execution_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    agent_id: str = Field(min_length=1)
    task: str = Field(min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=5, ge=0, le=10)
    timeout_ms: int | None = Field(default=None, ge=1)
    required_capabilities: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)

    @field_validator("task")
    @classmethod
    def _task_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("task must not be blank")
        return value


class ExecutionResult(BaseModel):
    execution_id: str
    agent_id: str
    status: ExecutionStatus
    output: Any = None
    error: str | None = None
    execution_time_ms: int = 0
    queued: bool = False
    capabilities_used: list[str] = Field(default_factory=list)
    context_accessed: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED


class AgentTaskOutcome(BaseModel):
    """What an executor reports back for one task."""

    success: bool = True
    output: Any = None
    error: str | None = None
    capabilities_used: list[str] | None = None
    context_accessed: list[str] | None = None
