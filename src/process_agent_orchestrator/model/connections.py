"""Edges between container nodes and their validation rules."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from process_agent_orchestrator.core.errors import ConflictError, DomainValidationError
from process_agent_orchestrator.core.result import Result, result_boundary
from process_agent_orchestrator.model.graph import build_graph, reaches

logger = logging.getLogger(__name__)

CONTAINER_KINDS: frozenset[str] = frozenset({"boundary", "stage", "nested_model"})
ACTION_KINDS: frozenset[str] = frozenset({"tether", "kb", "nested_invocation"})

VALID_HANDLES: frozenset[str] = frozenset(
    {"left", "right", "top", "bottom", "container-in", "container-out"}
)
_CONTAINER_HANDLES = {"container-in", "container-out"}


class ConnectionType(str, Enum):
    SIBLING = "sibling"
    PARENT_CHILD = "parent_child"


class Connection(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    connection_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    model_id: str = Field(min_length=1)
    source_node_id: str = Field(min_length=1)
    target_node_id: str = Field(min_length=1)
    source_handle: str = "right"
    target_handle: str = "left"
    connection_type: ConnectionType = ConnectionType.SIBLING
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def edge(self) -> tuple[str, str]:
        return self.source_node_id, self.target_node_id


class ConnectionValidationService:
    """Stateless checks run before an edge is persisted."""

    @result_boundary
    def validate_connection(
        self,
        *,
        source_id: str,
        target_id: str,
        source_kind: str,
        target_kind: str,
        source_handle: str = "right",
        target_handle: str = "left",
    ) -> Result[ConnectionType]:
        if not source_id or not target_id:
            raise DomainValidationError("Source and target node ids are required")
        if source_id == target_id:
            raise ConflictError("A node cannot be connected to itself")
        for label, kind in (("source", source_kind), ("target", target_kind)):
            if kind in ACTION_KINDS:
                raise DomainValidationError(
                    f"The {label} is an action node; only container nodes can be connected"
                )
            if kind not in CONTAINER_KINDS:
                raise DomainValidationError(f"Unknown {label} node type '{kind}'")
        for label, handle in (("source", source_handle), ("target", target_handle)):
            if handle not in VALID_HANDLES:
                raise DomainValidationError(
                    f"Invalid {label} handle '{handle}'; expected one of {sorted(VALID_HANDLES)}"
                )

        if source_handle in _CONTAINER_HANDLES or target_handle in _CONTAINER_HANDLES:
            return Result.success(ConnectionType.PARENT_CHILD)
        return Result.success(ConnectionType.SIBLING)

    @result_boundary
    def validate_circular_dependency(
        self,
        *,
        source_id: str,
        target_id: str,
        existing_edges: Iterable[tuple[str, str]],
    ) -> Result[None]:
        """Reject the edge ``source -> target`` if ``target`` already reaches ``source``."""
        if source_id == target_id:
            raise ConflictError("A node cannot be connected to itself")
        if reaches(build_graph(existing_edges), target_id, source_id):
            logger.info(
                "Rejected circular connection",
                extra={"source_id": source_id, "target_id": target_id},
            )
            raise ConflictError(
                f"Connecting {source_id} -> {target_id} would create a circular dependency"
            )
        return Result.success(None)
