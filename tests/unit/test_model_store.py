"""Unit tests for the JSON model and connection stores."""

from __future__ import annotations

from pathlib import Path

from process_agent_orchestrator.core.errors import ErrorKind
from process_agent_orchestrator.model.connections import Connection
from process_agent_orchestrator.model.nodes import KnowledgeLookupAction, StageNode
from process_agent_orchestrator.model.store import ConnectionStore, WorkflowModelStore
from process_agent_orchestrator.model.workflow import WorkflowModel


def test_model_round_trip_keeps_node_variants(tmp_path: Path) -> None:
    store = WorkflowModelStore(tmp_path / "models")
    model = WorkflowModel(model_id="m", name="Claims")
    model.add_node(StageNode(node_id="s", model_id="m", name="Review", goals=["fast"]))
    model.add_action_node(
        KnowledgeLookupAction(
            action_id="kb1",
            parent_node_id="s",
            model_id="m",
            name="Policy",
            kb_reference_id="kb-7",
            short_description="Claims policy",
        )
    )
    assert store.save(model).ok
    assert model.last_saved_at is not None

    loaded = store.find_by_id("m").unwrap()
    assert isinstance(loaded.nodes["s"], StageNode)
    assert loaded.nodes["s"].goals == ["fast"]
    assert isinstance(loaded.actions["kb1"], KnowledgeLookupAction)


def test_missing_and_unsafe_ids_are_not_found(tmp_path: Path) -> None:
    store = WorkflowModelStore(tmp_path / "models")
    assert store.find_by_id("ghost").kind == ErrorKind.NOT_FOUND
    assert store.find_by_id("../etc").kind == ErrorKind.NOT_FOUND


def test_soft_deleted_models_are_hidden_until_restored(tmp_path: Path) -> None:
    store = WorkflowModelStore(tmp_path / "models")
    store.save_many(
        [WorkflowModel(model_id="a", name="A"), WorkflowModel(model_id="b", name="B")]
    ).unwrap()

    assert store.soft_delete("a", "carol").ok
    assert [m.model_id for m in store.list_all().unwrap()] == ["b"]
    assert [m.model_id for m in store.list_deleted().unwrap()] == ["a"]
    assert store.find_by_id("a").kind == ErrorKind.NOT_FOUND
    assert store.find_by_id("a", include_deleted=True).unwrap().deleted_by == "carol"

    assert store.restore("a").ok
    assert len(store.list_all().unwrap()) == 2


def test_find_where_and_delete(tmp_path: Path) -> None:
    store = WorkflowModelStore(tmp_path / "models")
    store.save(WorkflowModel(model_id="a", name="Alpha")).unwrap()
    store.save(WorkflowModel(model_id="b", name="Beta")).unwrap()

    found = store.find_where(lambda m: m.name.startswith("B")).unwrap()
    assert [m.model_id for m in found] == ["b"]

    assert store.delete("b").ok
    assert store.delete("b").kind == ErrorKind.NOT_FOUND


def test_corrupt_model_file_is_infrastructure_failure(tmp_path: Path) -> None:
    root = tmp_path / "models"
    root.mkdir()
    (root / "bad.json").write_text('{"model_id": "bad"}', encoding="utf-8")
    store = WorkflowModelStore(root)

    assert store.find_by_id("bad").kind == ErrorKind.INFRASTRUCTURE


def test_connection_store_rejects_duplicate_edges(tmp_path: Path) -> None:
    store = ConnectionStore(tmp_path / "connections.json")
    first = Connection(model_id="m", source_node_id="a", target_node_id="b")
    assert store.add(first).ok

    again = store.add(Connection(model_id="m", source_node_id="a", target_node_id="b"))
    assert again.kind == ErrorKind.CONFLICT

    other_model = Connection(model_id="n", source_node_id="a", target_node_id="b")
    assert store.add(other_model).ok
    assert [c.connection_id for c in store.find_by_model("m").unwrap()] == [first.connection_id]

    assert store.remove(first.connection_id).ok
    assert store.find_by_id(first.connection_id).kind == ErrorKind.NOT_FOUND
    assert store.remove(first.connection_id).kind == ErrorKind.NOT_FOUND
