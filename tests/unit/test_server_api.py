"""API tests for the REST server."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from process_agent_orchestrator.core.config import OrchestratorConfig
from process_agent_orchestrator.core.events import EventType, InMemoryEventSink
from process_agent_orchestrator.core.orchestrator import Orchestrator
from process_agent_orchestrator.server.app import create_app

if TYPE_CHECKING:
    from conftest import FakeExecutor


@pytest.fixture
def client(
    orchestrator_config: OrchestratorConfig,
    fake_executor: FakeExecutor,
    event_sink: InMemoryEventSink,
) -> TestClient:
    orchestrator = Orchestrator(
        orchestrator_config,
        executor=fake_executor,
        event_sink=event_sink,
        sync_actions={"merge-results": lambda ctx: len(ctx.results[ctx.stage])},
    )
    return TestClient(create_app(orchestrator))


def _agent_payload(name: str, **overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "feature_type": "function-model",
        "entity_id": "model-1",
        "name": name,
        "instructions": "Do the work.",
        "available_tools": ["http"],
    }
    payload.update(overrides)
    return payload


def _build_model(client: TestClient) -> str:
    model_id = client.post("/api/models", json={"name": "Intake"}).json()["model_id"]
    for node in (
        {"kind": "boundary", "node_id": "in", "name": "In", "boundary_type": "input"},
        {"kind": "stage", "node_id": "triage", "name": "Triage", "goals": ["sort"]},
        {"kind": "boundary", "node_id": "out", "name": "Out", "boundary_type": "output"},
    ):
        assert client.post(f"/api/models/{model_id}/nodes", json=node).status_code == 201
    action = {
        "kind": "tether",
        "action_id": "notify",
        "parent_node_id": "triage",
        "name": "Notify",
        "tether_reference_id": "mailer",
    }
    assert client.post(f"/api/models/{model_id}/actions", json=action).status_code == 201
    return model_id


def test_health(client: TestClient) -> None:
    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["ok"] is True
    assert "version" in health


def test_model_graph_editing_and_publish(client: TestClient) -> None:
    model_id = _build_model(client)

    edge = client.post(
        f"/api/models/{model_id}/edges",
        json={"source_node_id": "in", "target_node_id": "triage"},
    )
    assert edge.status_code == 201
    assert edge.json()["connection_type"] == "sibling"
    client.post(
        f"/api/models/{model_id}/edges",
        json={"source_node_id": "triage", "target_node_id": "out"},
    )

    reverse = client.post(
        f"/api/models/{model_id}/edges",
        json={"source_node_id": "out", "target_node_id": "in"},
    )
    assert reverse.status_code == 409
    assert reverse.json()["detail"]["kind"] == "conflict"

    validation = client.get(f"/api/models/{model_id}/validation").json()
    assert validation["is_valid"] is True

    published = client.post(
        f"/api/models/{model_id}/publish", json={"version": "1.0.0", "user_id": "ops"}
    )
    assert published.status_code == 200
    assert published.json()["status"] == "published"

    late = client.post(
        f"/api/models/{model_id}/nodes", json={"kind": "stage", "name": "Late"}
    )
    assert late.status_code == 409

    nodes = client.get(f"/api/models/{model_id}/nodes").json()
    triage = next(n for n in nodes if n["node_id"] == "triage")
    assert triage["dependencies"] == ["in"]


def test_graph_errors_map_to_status_codes(client: TestClient) -> None:
    model_id = _build_model(client)

    orphan = client.post(
        f"/api/models/{model_id}/actions",
        json={
            "kind": "tether",
            "parent_node_id": "nowhere",
            "name": "Lost",
            "tether_reference_id": "x",
        },
    )
    assert orphan.status_code == 404
    assert orphan.json()["detail"]["error"] == "Parent container not found"

    bad_kb = client.post(
        f"/api/models/{model_id}/actions",
        json={
            "kind": "kb",
            "parent_node_id": "triage",
            "name": "Docs",
            "kb_reference_id": "kb",
            "short_description": "x" * 501,
        },
    )
    assert bad_kb.status_code == 422

    assert client.get("/api/models/missing").status_code == 404
    to_action = client.post(
        f"/api/models/{model_id}/edges",
        json={"source_node_id": "in", "target_node_id": "notify"},
    )
    assert to_action.status_code == 422


def test_soft_delete_and_restore(client: TestClient) -> None:
    model_id = client.post("/api/models", json={"name": "Temp"}).json()["model_id"]

    deleted = client.post(f"/api/models/{model_id}/delete", json={"user_id": "ops"})
    assert deleted.status_code == 200
    assert client.get(f"/api/models/{model_id}").status_code == 404
    assert [m["model_id"] for m in client.get("/api/models/deleted").json()] == [model_id]

    assert client.post(f"/api/models/{model_id}/restore").status_code == 200
    assert client.get(f"/api/models/{model_id}").status_code == 200


def test_agent_registration_and_discovery(client: TestClient) -> None:
    created = client.post("/api/agents", json=_agent_payload("Parser", skills=["parse"]))
    assert created.status_code == 201
    agent_id = created.json()["agent_id"]

    no_tools = client.post("/api/agents", json=_agent_payload("Empty", available_tools=[]))
    assert no_tools.status_code == 422
    assert no_tools.json()["detail"]["error"] == "Agent must have at least one available tool"

    duplicate = client.post("/api/agents", json=_agent_payload("parser"))
    assert duplicate.status_code == 409

    matches = client.post(
        "/api/agents/discover", json={"required_capabilities": ["skill:parse"]}
    ).json()
    assert [m["agent_id"] for m in matches] == [agent_id]
    assert matches[0]["score"] == pytest.approx(0.8)

    empty = client.post("/api/agents/discover", json={"required_capabilities": []})
    assert empty.status_code == 422

    search = client.post("/api/agents/search", json={"query": "parser for invoices"}).json()
    assert search["matches"][0]["agent_id"] == agent_id
    assert "parser" in search["keywords"]


def test_task_execution_and_metrics(
    client: TestClient, fake_executor: FakeExecutor, event_sink: InMemoryEventSink
) -> None:
    agent_id = client.post("/api/agents", json=_agent_payload("Runner")).json()["agent_id"]

    executed = client.post(
        f"/api/agents/{agent_id}/execute", json={"task": "go", "context": {"ticket": 7}}
    )
    assert executed.status_code == 200
    body = executed.json()
    assert body["status"] == "completed"
    assert body["output"] == "Runner: go"
    assert body["context_accessed"] == ["ticket"]
    assert body["capabilities_used"] == []

    lookup = client.get(f"/api/executions/{body['execution_id']}").json()
    assert lookup["success"] is True
    metrics = client.get(f"/api/agents/{agent_id}/metrics").json()
    assert metrics["execution_count"] == 1
    assert metrics["success_rate"] == 1.0
    assert len(event_sink.of_type(EventType.TASK_EXECUTED)) == 1

    client.post(f"/api/agents/{agent_id}/disable")
    refused = client.post(f"/api/agents/{agent_id}/execute", json={"task": "again"})
    assert refused.status_code == 409
    assert fake_executor.calls == [(agent_id, "go")]


def test_workflow_coordination(client: TestClient) -> None:
    first = client.post("/api/agents", json=_agent_payload("First")).json()["agent_id"]
    second = client.post("/api/agents", json=_agent_payload("Second")).json()["agent_id"]

    report = client.post(
        "/api/workflows/coordinate",
        json={
            "workflow_id": "wf-1",
            "tasks": [
                {"stage": 1, "description": "collect", "agent_id": first},
                {"stage": 2, "description": "publish", "agent_id": second},
            ],
            "sync_points": [{"after_stage": 1, "action": "merge-results"}],
        },
    )
    assert report.status_code == 200
    body = report.json()
    assert body["status"] == "completed"
    assert [s["state"] for s in body["stages"]] == ["completed", "completed"]
    assert body["stages"][0]["sync_ok"] is True

    gap = client.post(
        "/api/workflows/coordinate",
        json={
            "tasks": [
                {"stage": 1, "description": "a", "agent_id": first},
                {"stage": 3, "description": "b", "agent_id": second},
            ]
        },
    )
    assert gap.status_code == 422
    assert "missing stage 2" in gap.json()["detail"]["error"]


def test_execution_without_llm_credentials_is_unavailable(
    orchestrator_config: OrchestratorConfig,
) -> None:
    client = TestClient(create_app(Orchestrator(orchestrator_config)))
    agent_id = client.post("/api/agents", json=_agent_payload("Idle")).json()["agent_id"]

    response = client.post(f"/api/agents/{agent_id}/execute", json={"task": "go"})
    assert response.status_code == 503
    assert response.json()["detail"]["kind"] == "infrastructure"
