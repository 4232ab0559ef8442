"""Unit tests for node variants and their construction-time validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from process_agent_orchestrator.core.errors import ConflictError
from process_agent_orchestrator.model.nodes import (
    BoundaryNode,
    ExternalCallAction,
    KnowledgeAccess,
    KnowledgeLookupAction,
    NestedModelInvocationAction,
    NestedModelWrapperNode,
    StageNode,
    action_node_adapter,
    container_node_adapter,
    holds_actions,
)
from process_agent_orchestrator.model.values import Raci, RetryPolicy


def _tether(action_id: str, order: int) -> ExternalCallAction:
    return ExternalCallAction(
        action_id=action_id,
        parent_node_id="stage",
        model_id="m",
        name=action_id,
        execution_order=order,
        tether_reference_id="crm",
    )


def test_boundary_type_must_be_input_or_output() -> None:
    BoundaryNode(node_id="in", model_id="m", name="In", boundary_type="input")
    with pytest.raises(ValidationError):
        BoundaryNode(node_id="x", model_id="m", name="X", boundary_type="sideways")


def test_only_stage_nodes_hold_actions() -> None:
    stage = StageNode(node_id="s", model_id="m", name="S")
    io = BoundaryNode(node_id="o", model_id="m", name="O", boundary_type="output")
    nested = NestedModelWrapperNode(node_id="n", model_id="m", name="N", nested_model_id="other")

    assert holds_actions(stage) is True
    assert holds_actions(io) is False
    assert holds_actions(nested) is False


def test_stage_goals_are_capped() -> None:
    with pytest.raises(ValidationError):
        StageNode(node_id="s", model_id="m", name="S", goals=[f"g{i}" for i in range(11)])


def test_tether_requires_reference() -> None:
    with pytest.raises(ValidationError):
        ExternalCallAction(
            action_id="a",
            parent_node_id="s",
            model_id="m",
            name="Call",
            tether_reference_id="   ",
        )


def test_kb_editors_must_be_viewers() -> None:
    ok = KnowledgeLookupAction(
        action_id="kb",
        parent_node_id="s",
        model_id="m",
        name="Lookup",
        kb_reference_id="kb-1",
        short_description="Policy handbook",
        access=KnowledgeAccess(view=("alice", "bob"), edit=("alice",)),
    )
    assert ok.access.edit == ("alice",)

    with pytest.raises(ValidationError, match="edit permission"):
        KnowledgeLookupAction(
            action_id="kb",
            parent_node_id="s",
            model_id="m",
            name="Lookup",
            kb_reference_id="kb-1",
            short_description="Policy handbook",
            access=KnowledgeAccess(view=("bob",), edit=("alice",)),
        )


def test_kb_short_description_limits() -> None:
    with pytest.raises(ValidationError):
        KnowledgeLookupAction(
            action_id="kb",
            parent_node_id="s",
            model_id="m",
            name="Lookup",
            kb_reference_id="kb-1",
            short_description="x" * 501,
        )


def test_nested_invocation_requires_model_id() -> None:
    with pytest.raises(ValidationError):
        NestedModelInvocationAction(
            action_id="n", parent_node_id="s", model_id="m", name="Sub", nested_model_id=""
        )


def test_action_priority_and_order_bounds() -> None:
    with pytest.raises(ValidationError):
        ExternalCallAction(
            action_id="a",
            parent_node_id="s",
            model_id="m",
            name="Call",
            tether_reference_id="crm",
            priority=11,
        )
    with pytest.raises(ValidationError):
        _tether("a", 0)


def test_stage_admission_rejects_duplicate_order_and_overflow() -> None:
    stage = StageNode(node_id="stage", model_id="m", name="Stage", max_actions=2)
    first = _tether("a1", 1)

    stage.check_admission(_tether("a2", 2), [first])
    with pytest.raises(ConflictError, match="Execution order 1"):
        stage.check_admission(_tether("a2", 1), [first])
    with pytest.raises(ConflictError, match="capacity"):
        stage.check_admission(_tether("a3", 3), [first, _tether("a2", 2)])


def test_tagged_union_round_trip_through_adapters() -> None:
    node = container_node_adapter.validate_python(
        {"kind": "stage", "node_id": "s", "model_id": "m", "name": "S"}
    )
    assert isinstance(node, StageNode)

    action = action_node_adapter.validate_python(
        {
            "kind": "kb",
            "action_id": "k",
            "parent_node_id": "s",
            "model_id": "m",
            "name": "K",
            "kb_reference_id": "kb",
            "short_description": "desc",
        }
    )
    assert isinstance(action, KnowledgeLookupAction)


def test_retry_policy_backoff() -> None:
    policy = RetryPolicy(max_attempts=4, backoff_ms=100, exponential=True)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [100, 200, 400]
    assert RetryPolicy(backoff_ms=50, exponential=False).delay_for(3) == 50
    with pytest.raises(ValidationError):
        RetryPolicy(max_attempts=11)


def test_raci_principals() -> None:
    raci = Raci(responsible="r", accountable="a", consulted=("c",), informed=("i", ""))
    assert raci.principals() == {"r", "a", "c", "i"}
