"""Unit tests for the command-line entrypoint."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from process_agent_orchestrator.agents.models import Agent
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.agents.store import AgentStore
from process_agent_orchestrator.model.nodes import BoundaryNode, StageNode
from process_agent_orchestrator.model.store import WorkflowModelStore
from process_agent_orchestrator.model.workflow import WorkflowModel
from process_agent_orchestrator.orchestrator.main import main


@pytest.fixture
def state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ORCHESTRATOR_STORE_STORAGE_PATH", str(tmp_path / "state"))
    monkeypatch.delenv("ORCHESTRATOR_LLM_OPENAI_API_KEY", raising=False)
    return tmp_path / "state"


@pytest.fixture
def seeded(state_dir: Path, make_agent: Callable[..., Agent]) -> Path:
    registry = AgentRegistry(AgentStore(state_dir / "agents.json"))
    registry.save_many(
        [
            make_agent("Parser", agent_id="parser", skills=["parse"]),
            make_agent("Sleeper", agent_id="sleeper", enabled=False),
        ]
    ).unwrap()

    models = WorkflowModelStore(state_dir / "models")
    draft = WorkflowModel(model_id="draft", name="Half built")
    draft.add_node(StageNode(node_id="s", model_id="draft", name="S")).unwrap()
    ready = WorkflowModel(model_id="ready", name="Ready")
    ready.add_node(
        BoundaryNode(node_id="in", model_id="ready", name="In", boundary_type="input")
    ).unwrap()
    ready.add_node(
        BoundaryNode(node_id="out", model_id="ready", name="Out", boundary_type="output")
    ).unwrap()
    ready.add_dependency("out", "in").unwrap()
    models.save_many([draft, ready]).unwrap()
    return state_dir


def test_list_agents(seeded: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["list-agents"]) == 0
    out = capsys.readouterr().out
    assert "parser  enabled   Parser" in out
    assert "sleeper  disabled  Sleeper" in out


def test_discover_prints_ranked_matches(
    seeded: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(["discover", "--required", "skill:parse", "--strict"]) == 0
    matches = json.loads(capsys.readouterr().out)
    assert [m["agent_id"] for m in matches] == ["parser"]

    assert main(["discover", "--required", " , "]) == 1
    assert "validation" in capsys.readouterr().err


def test_validate_and_publish_model(seeded: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["validate-model", "--model-id", "draft"]) == 4
    report = json.loads(capsys.readouterr().out)
    assert report["is_valid"] is False

    assert main(["validate-model", "--model-id", "nope"]) == 1
    capsys.readouterr()

    assert main(["publish-model", "--model-id", "ready", "--version", "1.0.0", "--user", "ci"]) == 0
    assert "Published Ready as version 1.0.0" in capsys.readouterr().out

    assert main(["list-models"]) == 0
    assert "published" in capsys.readouterr().out


def test_coordinate_rejects_bad_plan_files(
    seeded: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(["coordinate", "--plan", str(tmp_path / "missing.json")]) == 2

    gap = tmp_path / "gap.json"
    gap.write_text(
        json.dumps(
            {
                "tasks": [
                    {"stage": 1, "description": "a", "agent_id": "parser"},
                    {"stage": 3, "description": "b", "agent_id": "parser"},
                ]
            }
        ),
        encoding="utf-8",
    )
    assert main(["coordinate", "--plan", str(gap)]) == 1
    assert "missing stage 2" in capsys.readouterr().err


def test_coordinate_without_executor_is_an_infrastructure_failure(
    seeded: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    plan = tmp_path / "plan.json"
    plan.write_text(
        json.dumps({"tasks": [{"stage": 1, "description": "parse it", "agent_id": "parser"}]}),
        encoding="utf-8",
    )
    assert main(["coordinate", "--plan", str(plan)]) == 1
    assert "Error (infrastructure)" in capsys.readouterr().err
