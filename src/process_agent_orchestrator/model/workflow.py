"""The workflow model aggregate.

A :class:`WorkflowModel` owns its container nodes and action nodes. All
structural edits go through its methods, which check the model's invariants
before writing anything: a failed operation leaves the model untouched.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from process_agent_orchestrator.core.errors import (
    ConflictError,
    DomainValidationError,
    NotFoundError,
)
from process_agent_orchestrator.core.result import Result, result_boundary
from process_agent_orchestrator.model.graph import (
    build_graph,
    find_cycle,
    longest_path_length,
    reaches,
)
from process_agent_orchestrator.model.nodes import (
    ActionNode,
    BoundaryNode,
    ContainerNode,
    StageNode,
    holds_actions,
    referenced_model_id,
)
from process_agent_orchestrator.model.values import ModelStatus

logger = logging.getLogger(__name__)

_SEMVER = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")

ALLOWED_MODEL_TRANSITIONS: dict[ModelStatus, set[ModelStatus]] = {
    ModelStatus.DRAFT: {ModelStatus.PUBLISHED, ModelStatus.ARCHIVED, ModelStatus.ERROR},
    ModelStatus.PUBLISHED: {ModelStatus.ARCHIVED},
    ModelStatus.ERROR: {ModelStatus.ARCHIVED},
    ModelStatus.ARCHIVED: set(),
}


def parse_version(value: str) -> tuple[int, int, int]:
    match = _SEMVER.match(value.strip())
    if match is None:
        raise DomainValidationError(f"Version must look like MAJOR.MINOR.PATCH, got '{value}'")
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class WorkflowValidation:
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class ModelStatistics:
    node_count: int
    action_count: int
    dependency_count: int
    max_dependency_depth: int
    nodes_by_kind: dict[str, int] = field(default_factory=dict)
    actions_by_kind: dict[str, int] = field(default_factory=dict)


class WorkflowModel(BaseModel):
    """A versioned business process graph."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(default_factory=lambda: uuid.uuid4().hex, min_length=1)
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    version: str = "1.0.0"
    status: ModelStatus = ModelStatus.DRAFT
    current_version: str | None = None
    version_count: int = 0

    nodes: dict[str, ContainerNode] = Field(default_factory=dict)
    actions: dict[str, ActionNode] = Field(default_factory=dict)

    metadata: dict[str, Any] = Field(default_factory=dict)
    permissions: dict[str, list[str]] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    last_saved_at: datetime | None = None
    published_at: datetime | None = None
    published_by: str | None = None
    deleted_at: datetime | None = None
    deleted_by: str | None = None

    # --- state helpers -----------------------------------------------------

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def _touch(self) -> None:
        self.updated_at = _utc_now()

    def _ensure_editable(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Model '{self.name}' is deleted and cannot be modified")
        if self.status != ModelStatus.DRAFT:
            raise ConflictError(
                f"Model '{self.name}' is {self.status.value}; only draft models can be modified"
            )

    def _transition(self, to: ModelStatus) -> None:
        allowed = ALLOWED_MODEL_TRANSITIONS.get(self.status, set())
        if to not in allowed:
            raise ConflictError(f"Illegal transition: {self.status.value} -> {to.value}")
        self.status = to
        self._touch()

    def _require_node(self, node_id: str) -> ContainerNode:
        node = self.nodes.get(node_id)
        if node is None:
            raise NotFoundError(f"Node '{node_id}' not found in model '{self.name}'")
        return node

    def _check_id_free(self, element_id: str) -> None:
        if element_id in self.nodes or element_id in self.actions:
            raise ConflictError(f"An element with id '{element_id}' already exists")

    def _check_same_model(self, model_id: str, element_id: str) -> None:
        if model_id != self.model_id:
            raise DomainValidationError(
                f"Element '{element_id}' belongs to model '{model_id}', not '{self.model_id}'"
            )

    def dependency_edges(self) -> list[tuple[str, str]]:
        """Edges as (dependency, dependent) pairs."""
        return [
            (dep, node_id)
            for node_id, node in self.nodes.items()
            for dep in sorted(node.dependencies)
        ]

    def dependents_of(self, node_id: str) -> list[str]:
        return sorted(n for n, node in self.nodes.items() if node_id in node.dependencies)

    def actions_in(self, node_id: str) -> list[ActionNode]:
        return sorted(
            (a for a in self.actions.values() if a.parent_node_id == node_id),
            key=lambda a: (a.execution_order, a.name),
        )

    def boundary_nodes(self, boundary_type: str) -> list[BoundaryNode]:
        return [
            n
            for n in self.nodes.values()
            if isinstance(n, BoundaryNode) and n.boundary_type == boundary_type
        ]

    # --- structural edits --------------------------------------------------

    @result_boundary
    def add_node(self, node: ContainerNode) -> Result[ContainerNode]:
        self._ensure_editable()
        self._check_same_model(node.model_id, node.node_id)
        self._check_id_free(node.node_id)
        for dep in node.dependencies:
            self._require_node(dep)

        self.nodes[node.node_id] = node
        self._touch()
        logger.debug("Node added", extra={"model_id": self.model_id, "node_id": node.node_id})
        return Result.success(node)

    @result_boundary
    def remove_node(self, node_id: str) -> Result[list[str]]:
        """Remove a container node and cascade to its action nodes.

        Returns the ids of the removed action nodes.
        """
        self._ensure_editable()
        self._require_node(node_id)
        dependents = self.dependents_of(node_id)
        if dependents:
            raise ConflictError(
                f"Cannot remove node '{node_id}': nodes {dependents} depend on it"
            )

        removed_actions = [a.action_id for a in self.actions_in(node_id)]
        for action_id in removed_actions:
            del self.actions[action_id]
        del self.nodes[node_id]
        self._touch()
        return Result.success(removed_actions)

    @result_boundary
    def add_action_node(self, action: ActionNode) -> Result[ActionNode]:
        self._ensure_editable()
        self._check_same_model(action.model_id, action.action_id)
        parent = self.nodes.get(action.parent_node_id)
        if parent is None:
            raise NotFoundError("Parent container not found")
        if not holds_actions(parent):
            raise DomainValidationError(
                f"Node '{parent.name}' ({parent.kind}) cannot hold action nodes; "
                "only stage nodes can"
            )
        self._check_id_free(action.action_id)
        assert isinstance(parent, StageNode)
        parent.check_admission(action, self.actions_in(parent.node_id))

        self.actions[action.action_id] = action
        self._touch()
        return Result.success(action)

    @result_boundary
    def remove_action_node(self, action_id: str) -> Result[ActionNode]:
        self._ensure_editable()
        action = self.actions.get(action_id)
        if action is None:
            raise NotFoundError(f"Action node '{action_id}' not found")
        del self.actions[action_id]
        self._touch()
        return Result.success(action)

    @result_boundary
    def add_dependency(self, node_id: str, depends_on: str) -> Result[ContainerNode]:
        """Record that ``node_id`` depends on ``depends_on``."""
        self._ensure_editable()
        node = self._require_node(node_id)
        self._require_node(depends_on)
        if node_id == depends_on:
            raise ConflictError("A node cannot depend on itself")
        if depends_on in node.dependencies:
            return Result.success(node)
        if reaches(build_graph(self.dependency_edges()), node_id, depends_on):
            raise ConflictError(
                f"Dependency {depends_on} -> {node_id} would create a circular dependency"
            )

        updated = node.model_copy(update={"dependencies": {*node.dependencies, depends_on}})
        self.nodes[node_id] = updated
        self._touch()
        return Result.success(updated)

    @result_boundary
    def remove_dependency(self, node_id: str, depends_on: str) -> Result[ContainerNode]:
        self._ensure_editable()
        node = self._require_node(node_id)
        if depends_on not in node.dependencies:
            raise NotFoundError(f"Node '{node_id}' does not depend on '{depends_on}'")
        updated = node.model_copy(update={"dependencies": node.dependencies - {depends_on}})
        self.nodes[node_id] = updated
        self._touch()
        return Result.success(updated)

    # --- validation --------------------------------------------------------

    def validation_report(self) -> WorkflowValidation:
        errors: list[str] = []
        warnings: list[str] = []

        if not self.boundary_nodes("input"):
            errors.append("Model must have at least one input boundary node")
        if not self.boundary_nodes("output"):
            errors.append("Model must have at least one output boundary node")

        for node_id, node in sorted(self.nodes.items()):
            for dep in sorted(node.dependencies - self.nodes.keys()):
                errors.append(f"Node '{node_id}' depends on unknown node '{dep}'")
            if referenced_model_id(node) == self.model_id:
                errors.append(f"Node '{node.name}' nests the model inside itself")

        cycle = find_cycle(
            build_graph((s, t) for s, t in self.dependency_edges() if s in self.nodes)
        )
        if cycle:
            errors.append("Circular dependency detected: " + " -> ".join(cycle))

        for action in sorted(self.actions.values(), key=lambda a: a.action_id):
            parent = self.nodes.get(action.parent_node_id)
            if parent is None:
                errors.append(f"Action '{action.name}' has no parent container")
            elif not holds_actions(parent):
                errors.append(f"Action '{action.name}' is attached to non-stage '{parent.name}'")
            if referenced_model_id(action) == self.model_id:
                errors.append(f"Action '{action.name}' invokes the model inside itself")

        for node_id, node in sorted(self.nodes.items()):
            if not isinstance(node, StageNode):
                continue
            orders = Counter(a.execution_order for a in self.actions_in(node_id))
            for order, count in sorted(orders.items()):
                if count > 1:
                    errors.append(
                        f"Stage '{node.name}' has {count} actions with execution order {order}"
                    )
            if not orders:
                warnings.append(f"Stage '{node.name}' has no action nodes")

        if len(self.nodes) > 1:
            connected = {n for edge in self.dependency_edges() for n in edge}
            for node_id, node in sorted(self.nodes.items()):
                if node_id not in connected:
                    warnings.append(f"Node '{node.name}' is not connected to any other node")

        return WorkflowValidation(errors=tuple(errors), warnings=tuple(warnings))

    @result_boundary
    def validate_workflow(self) -> Result[WorkflowValidation]:
        return Result.success(self.validation_report())

    # --- lifecycle ---------------------------------------------------------

    @result_boundary
    def publish(self, version: str, user_id: str) -> Result[WorkflowModel]:
        parse_version(version)
        if not user_id.strip():
            raise DomainValidationError("user_id is required to publish")
        if self.is_deleted:
            raise ConflictError("Deleted models cannot be published")
        if self.status == ModelStatus.PUBLISHED:
            if self.current_version == version:
                return Result.success(self)
            raise ConflictError(
                f"Model is already published as version {self.current_version}; "
                "create a new version instead"
            )
        if self.status != ModelStatus.DRAFT:
            raise ConflictError(f"Only draft models can be published (status: {self.status.value})")
        if self.current_version is not None and parse_version(version) <= parse_version(
            self.current_version
        ):
            raise ConflictError(
                f"Version {version} must be greater than the published version "
                f"{self.current_version}"
            )

        report = self.validation_report()
        if not report.is_valid:
            raise DomainValidationError("Model is not valid: " + "; ".join(report.errors))

        self._transition(ModelStatus.PUBLISHED)
        self.version = version
        self.current_version = version
        self.version_count += 1
        self.published_at = self.updated_at
        self.published_by = user_id
        logger.info(
            "Model published",
            extra={"model_id": self.model_id, "version": version, "user_id": user_id},
        )
        return Result.success(self)

    @result_boundary
    def archive(self) -> Result[WorkflowModel]:
        if self.is_deleted:
            raise ConflictError("Deleted models cannot be archived")
        self._transition(ModelStatus.ARCHIVED)
        return Result.success(self)

    @result_boundary
    def mark_error(self, reason: str) -> Result[WorkflowModel]:
        self._transition(ModelStatus.ERROR)
        self.metadata["error"] = reason
        return Result.success(self)

    @result_boundary
    def soft_delete(self, user_id: str) -> Result[WorkflowModel]:
        if self.is_deleted:
            raise ConflictError(f"Model '{self.name}' is already deleted")
        if self.status == ModelStatus.ARCHIVED:
            raise ConflictError("Archived models cannot be deleted")
        self.deleted_at = _utc_now()
        self.deleted_by = user_id
        self._touch()
        return Result.success(self)

    @result_boundary
    def restore(self) -> Result[WorkflowModel]:
        if not self.is_deleted:
            raise ConflictError(f"Model '{self.name}' is not deleted")
        self.deleted_at = None
        self.deleted_by = None
        self._touch()
        return Result.success(self)

    @result_boundary
    def create_version(self, new_version: str) -> Result[WorkflowModel]:
        """Fork a published model into a new draft carrying a greater version."""
        if self.status != ModelStatus.PUBLISHED or self.is_deleted:
            raise ConflictError("New versions can only be created from published models")
        if parse_version(new_version) <= parse_version(self.version):
            raise DomainValidationError(
                f"New version {new_version} must be greater than {self.version}"
            )

        fork_id = uuid.uuid4().hex
        now = _utc_now()
        fork = WorkflowModel(
            model_id=fork_id,
            name=self.name,
            description=self.description,
            version=new_version,
            status=ModelStatus.DRAFT,
            current_version=self.current_version,
            version_count=self.version_count,
            nodes={
                k: n.model_copy(update={"model_id": fork_id}) for k, n in self.nodes.items()
            },
            actions={
                k: a.model_copy(update={"model_id": fork_id}) for k, a in self.actions.items()
            },
            metadata={
                **self.metadata,
                "forked_from": {"model_id": self.model_id, "version": self.version},
            },
            permissions={k: list(v) for k, v in self.permissions.items()},
            created_at=now,
            updated_at=now,
        )
        return Result.success(fork)

    def statistics(self) -> ModelStatistics:
        edges = self.dependency_edges()
        known = [(s, t) for s, t in edges if s in self.nodes]
        depth = longest_path_length(build_graph(known, self.nodes))
        return ModelStatistics(
            node_count=len(self.nodes),
            action_count=len(self.actions),
            dependency_count=len(edges),
            max_dependency_depth=depth,
            nodes_by_kind=dict(Counter(n.kind for n in self.nodes.values())),
            actions_by_kind=dict(Counter(a.kind for a in self.actions.values())),
        )
