"""Application service for editing workflow graphs against the stores.

Each operation loads the aggregate, applies the change through it, persists,
and only then publishes a domain event.
"""

from __future__ import annotations

import logging
from typing import Any

from process_agent_orchestrator.core.errors import ConflictError, NotFoundError
from process_agent_orchestrator.core.events import EventPublisher, EventType
from process_agent_orchestrator.core.result import Result, result_boundary
from process_agent_orchestrator.model.connections import (
    Connection,
    ConnectionValidationService,
)
from process_agent_orchestrator.model.nodes import ActionNode, ContainerNode
from process_agent_orchestrator.model.store import ConnectionStore, WorkflowModelStore
from process_agent_orchestrator.model.values import ModelStatus
from process_agent_orchestrator.model.workflow import WorkflowModel, WorkflowValidation

logger = logging.getLogger(__name__)


class WorkflowGraphService:
    def __init__(
        self,
        *,
        models: WorkflowModelStore,
        connections: ConnectionStore,
        events: EventPublisher,
        validator: ConnectionValidationService | None = None,
    ) -> None:
        self._models = models
        self._connections = connections
        self._events = events
        self._validator = validator or ConnectionValidationService()

    def _load(self, model_id: str) -> WorkflowModel:
        return self._models.find_by_id(model_id).unwrap()

    def _node_kind(self, model: WorkflowModel, element_id: str) -> str:
        if element_id in model.nodes:
            return model.nodes[element_id].kind
        if element_id in model.actions:
            return model.actions[element_id].kind
        raise NotFoundError(f"Node '{element_id}' not found in model '{model.model_id}'")

    # --- models ------------------------------------------------------------

    @result_boundary
    def create_model(
        self, *, name: str, description: str = "", metadata: dict[str, Any] | None = None
    ) -> Result[WorkflowModel]:
        model = WorkflowModel(name=name, description=description, metadata=metadata or {})
        self._models.save(model).unwrap()
        self._events.publish(EventType.MODEL_CREATED, model_id=model.model_id, name=model.name)
        return Result.success(model)

    @result_boundary
    def get_model(self, model_id: str) -> Result[WorkflowModel]:
        return self._models.find_by_id(model_id)

    @result_boundary
    def validate_model(self, model_id: str) -> Result[WorkflowValidation]:
        return self._load(model_id).validate_workflow()

    @result_boundary
    def publish_model(self, model_id: str, *, version: str, user_id: str) -> Result[WorkflowModel]:
        model = self._load(model_id)
        was_published = (
            model.status == ModelStatus.PUBLISHED and model.current_version == version
        )
        model.publish(version, user_id).unwrap()
        if was_published:
            return Result.success(model)
        self._models.save(model).unwrap()
        self._events.publish(
            EventType.MODEL_PUBLISHED, model_id=model_id, version=version, user_id=user_id
        )
        return Result.success(model)

    @result_boundary
    def archive_model(self, model_id: str) -> Result[WorkflowModel]:
        model = self._load(model_id)
        model.archive().unwrap()
        self._models.save(model).unwrap()
        self._events.publish(EventType.MODEL_ARCHIVED, model_id=model_id)
        return Result.success(model)

    @result_boundary
    def soft_delete_model(self, model_id: str, *, user_id: str) -> Result[WorkflowModel]:
        model = self._models.soft_delete(model_id, user_id).unwrap()
        self._events.publish(EventType.MODEL_SOFT_DELETED, model_id=model_id, user_id=user_id)
        return Result.success(model)

    @result_boundary
    def restore_model(self, model_id: str) -> Result[WorkflowModel]:
        model = self._models.restore(model_id).unwrap()
        self._events.publish(EventType.MODEL_RESTORED, model_id=model_id)
        return Result.success(model)

    @result_boundary
    def create_version(self, model_id: str, *, new_version: str) -> Result[WorkflowModel]:
        fork = self._load(model_id).create_version(new_version).unwrap()
        self._models.save(fork).unwrap()
        for connection in self._connections.find_by_model(model_id).unwrap():
            self._connections.add(
                Connection(
                    model_id=fork.model_id,
                    source_node_id=connection.source_node_id,
                    target_node_id=connection.target_node_id,
                    source_handle=connection.source_handle,
                    target_handle=connection.target_handle,
                    connection_type=connection.connection_type,
                )
            ).unwrap()
        self._events.publish(
            EventType.MODEL_CREATED,
            model_id=fork.model_id,
            name=fork.name,
            forked_from=model_id,
            version=new_version,
        )
        return Result.success(fork)

    # --- nodes -------------------------------------------------------------

    @result_boundary
    def add_node(self, model_id: str, node: ContainerNode) -> Result[ContainerNode]:
        model = self._load(model_id)
        added = model.add_node(node).unwrap()
        self._models.save(model).unwrap()
        self._events.publish(
            EventType.NODE_ADDED, model_id=model_id, node_id=added.node_id, kind=added.kind
        )
        return Result.success(added)

    @result_boundary
    def remove_node(self, model_id: str, node_id: str) -> Result[list[str]]:
        model = self._load(model_id)
        removed_actions = model.remove_node(node_id).unwrap()
        self._models.save(model).unwrap()
        for connection in self._connections.find_by_model(model_id).unwrap():
            if node_id in connection.edge:
                self._connections.remove(connection.connection_id).unwrap()
        self._events.publish(
            EventType.NODE_REMOVED,
            model_id=model_id,
            node_id=node_id,
            removed_actions=removed_actions,
        )
        return Result.success(removed_actions)

    @result_boundary
    def add_action_node(self, model_id: str, action: ActionNode) -> Result[ActionNode]:
        model = self._load(model_id)
        added = model.add_action_node(action).unwrap()
        self._models.save(model).unwrap()
        self._events.publish(
            EventType.ACTION_NODE_ADDED,
            model_id=model_id,
            action_id=added.action_id,
            parent_node_id=added.parent_node_id,
            kind=added.kind,
        )
        return Result.success(added)

    @result_boundary
    def remove_action_node(self, model_id: str, action_id: str) -> Result[ActionNode]:
        model = self._load(model_id)
        removed = model.remove_action_node(action_id).unwrap()
        self._models.save(model).unwrap()
        self._events.publish(
            EventType.ACTION_NODE_REMOVED, model_id=model_id, action_id=action_id
        )
        return Result.success(removed)

    # --- edges -------------------------------------------------------------

    @result_boundary
    def create_edge(
        self,
        model_id: str,
        *,
        source_id: str,
        target_id: str,
        source_handle: str = "right",
        target_handle: str = "left",
    ) -> Result[Connection]:
        model = self._load(model_id)
        connection_type = self._validator.validate_connection(
            source_id=source_id,
            target_id=target_id,
            source_kind=self._node_kind(model, source_id),
            target_kind=self._node_kind(model, target_id),
            source_handle=source_handle,
            target_handle=target_handle,
        ).unwrap()

        existing = self._connections.find_by_model(model_id).unwrap()
        edges = [c.edge for c in existing]
        if (source_id, target_id) in edges:
            raise ConflictError(f"Nodes {source_id} and {target_id} are already connected")
        self._validator.validate_circular_dependency(
            source_id=source_id,
            target_id=target_id,
            existing_edges=[*edges, *model.dependency_edges()],
        ).unwrap()

        model.add_dependency(target_id, source_id).unwrap()
        connection = Connection(
            model_id=model_id,
            source_node_id=source_id,
            target_node_id=target_id,
            source_handle=source_handle,
            target_handle=target_handle,
            connection_type=connection_type,
        )
        self._connections.add(connection).unwrap()
        saved = self._models.save(model)
        if not saved.ok:
            self._connections.remove(connection.connection_id)
            return saved

        self._events.publish(
            EventType.EDGE_CREATED,
            model_id=model_id,
            connection_id=connection.connection_id,
            source_node_id=source_id,
            target_node_id=target_id,
        )
        return Result.success(connection)

    @result_boundary
    def delete_edge(self, model_id: str, connection_id: str) -> Result[Connection]:
        """Remove an edge.

        Dependencies recorded on the target node are left in place; consumers of
        the EdgeDeleted event decide whether to recompute them.
        """
        connection = self._connections.find_by_id(connection_id).unwrap()
        if connection.model_id != model_id:
            raise NotFoundError(f"Connection '{connection_id}' not found in model '{model_id}'")
        removed = self._connections.remove(connection_id).unwrap()
        self._events.publish(
            EventType.EDGE_DELETED,
            model_id=model_id,
            connection_id=connection_id,
            source_node_id=removed.source_node_id,
            target_node_id=removed.target_node_id,
        )
        return Result.success(removed)

    @result_boundary
    def list_edges(self, model_id: str) -> Result[list[Connection]]:
        self._load(model_id)
        return self._connections.find_by_model(model_id)
