"""Workflow graph domain model."""

from process_agent_orchestrator.model.connections import (
    Connection,
    ConnectionType,
    ConnectionValidationService,
)
from process_agent_orchestrator.model.graph_service import WorkflowGraphService
from process_agent_orchestrator.model.nodes import (
    ActionNode,
    BoundaryNode,
    ContainerNode,
    ExternalCallAction,
    KnowledgeLookupAction,
    NestedModelInvocationAction,
    NestedModelWrapperNode,
    StageNode,
    holds_actions,
)
from process_agent_orchestrator.model.workflow import WorkflowModel

__all__ = [
    "ActionNode",
    "BoundaryNode",
    "Connection",
    "ConnectionType",
    "ConnectionValidationService",
    "ContainerNode",
    "ExternalCallAction",
    "KnowledgeLookupAction",
    "NestedModelInvocationAction",
    "NestedModelWrapperNode",
    "StageNode",
    "WorkflowGraphService",
    "WorkflowModel",
    "holds_actions",
]
