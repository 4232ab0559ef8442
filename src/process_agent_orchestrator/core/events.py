"""Domain events and the event sink collaborator.

Events are published after a write commits. A failing sink never undoes the
write: :class:`EventPublisher` logs and records the failure instead of
propagating it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    NODE_ADDED = "NodeAdded"
    NODE_REMOVED = "NodeRemoved"
    ACTION_NODE_ADDED = "ActionNodeAdded"
    ACTION_NODE_REMOVED = "ActionNodeRemoved"
    EDGE_CREATED = "EdgeCreated"
    EDGE_DELETED = "EdgeDeleted"
    MODEL_CREATED = "ModelCreated"
    MODEL_PUBLISHED = "ModelPublished"
    MODEL_ARCHIVED = "ModelArchived"
    MODEL_SOFT_DELETED = "ModelSoftDeleted"
    MODEL_RESTORED = "ModelRestored"
    AGENT_REGISTERED = "AgentRegistered"
    AGENT_ENABLED = "AgentEnabled"
    AGENT_DISABLED = "AgentDisabled"
    AGENT_DELETED = "AgentDeleted"
    TASK_EXECUTED = "TaskExecuted"
    WORKFLOW_STAGE_COMPLETED = "WorkflowStageCompleted"
    WORKFLOW_COORDINATED = "WorkflowCoordinated"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    type: EventType
    payload: Mapping[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_json(self) -> dict[str, object]:
        return {
            "event_id": self.event_id,
            "type": self.type.value,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": dict(self.payload),
        }


class EventSink(Protocol):
    def publish(self, event: DomainEvent) -> None: ...


class InMemoryEventSink:
    """Collects events in order; useful for tests and the local server."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[DomainEvent]:
        return [e for e in self.events if e.type == event_type]


class LoggingEventSink:
    def publish(self, event: DomainEvent) -> None:
        logger.info("Domain event", extra={"event": event.to_json()})


class EventPublisher:
    """Best-effort publishing in front of an :class:`EventSink`."""

    def __init__(self, sink: EventSink | None = None) -> None:
        self._sink: EventSink = sink or LoggingEventSink()
        self.failures: list[tuple[DomainEvent, str]] = []

    def publish(self, event_type: EventType, **payload: Any) -> DomainEvent:
        event = DomainEvent(type=event_type, payload=payload)
        try:
            self._sink.publish(event)
        except Exception as exc:  # noqa: BLE001 (third-party sink)
            logger.warning(
                "Event publish failed",
                extra={"event_type": event_type.value, "error": str(exc)},
            )
            self.failures.append((event, str(exc)))
        return event
