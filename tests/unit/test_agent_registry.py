"""Unit tests for the agent registry."""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

from process_agent_orchestrator.agents.models import Agent, FeatureType
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.agents.store import AgentStore
from process_agent_orchestrator.core.errors import ErrorKind
from process_agent_orchestrator.core.events import EventType, InMemoryEventSink


def test_register_requires_at_least_one_tool(
    registry: AgentRegistry, make_agent: Callable[..., Agent]
) -> None:
    outcome = registry.register(make_agent("Toolless", tools=[]))
    assert not outcome.ok
    assert outcome.kind == ErrorKind.VALIDATION
    assert outcome.error == "Agent must have at least one available tool"


def test_register_requires_name_and_instructions(
    registry: AgentRegistry, make_agent: Callable[..., Agent]
) -> None:
    assert registry.register(make_agent("  ")).error == "Agent name is required"
    assert registry.register(make_agent("Quiet", instructions="")).error == (
        "Agent instructions are required"
    )
    assert registry.count().unwrap() == 0


def test_duplicate_name_in_same_scope_is_a_conflict(
    registry: AgentRegistry, make_agent: Callable[..., Agent]
) -> None:
    registry.register(make_agent("Analyst")).unwrap()

    clash = registry.register(make_agent("analyst"))
    assert clash.kind == ErrorKind.CONFLICT

    elsewhere = registry.register(make_agent("Analyst", entity_id="model-2"))
    assert elsewhere.ok
    assert registry.count().unwrap() == 2


def test_duplicate_id_is_a_conflict(
    registry: AgentRegistry, make_agent: Callable[..., Agent]
) -> None:
    registry.register(make_agent("One", agent_id="a1")).unwrap()
    assert registry.register(make_agent("Two", agent_id="a1")).kind == ErrorKind.CONFLICT


def test_registered_agents_survive_reload(
    temp_state_dir: Path, registry: AgentRegistry, make_agent: Callable[..., Agent]
) -> None:
    registry.register(make_agent("Persisted", agent_id="p1")).unwrap()

    reloaded = AgentRegistry(AgentStore(temp_state_dir / "agents.json"))
    assert reloaded.get("p1").unwrap().name == "Persisted"


def test_delete_refused_while_in_flight(
    registry: AgentRegistry, make_agent: Callable[..., Agent]
) -> None:
    registry.register(make_agent("Busy", agent_id="b1")).unwrap()
    registry.mark_in_flight("b1")

    assert registry.delete("b1").kind == ErrorKind.CONFLICT
    assert registry.delete_many(["b1"]).kind == ErrorKind.CONFLICT

    registry.release("b1")
    assert registry.in_flight_count("b1") == 0
    assert registry.delete("b1").ok
    assert registry.get("b1").kind == ErrorKind.NOT_FOUND


def test_enable_disable_emit_events(
    registry: AgentRegistry,
    make_agent: Callable[..., Agent],
    event_sink: InMemoryEventSink,
) -> None:
    registry.register(make_agent("Toggle", agent_id="t1")).unwrap()
    registry.disable("t1").unwrap()

    assert [a.agent_id for a in registry.find_disabled().unwrap()] == ["t1"]
    assert registry.find_enabled().unwrap() == []

    registry.enable("t1").unwrap()
    kinds = [e.type for e in event_sink.events]
    assert kinds == [EventType.AGENT_REGISTERED, EventType.AGENT_DISABLED, EventType.AGENT_ENABLED]


def test_record_execution_updates_metrics(
    registry: AgentRegistry, make_agent: Callable[..., Agent]
) -> None:
    registry.register(make_agent("Worker", agent_id="w1")).unwrap()
    registry.record_execution("w1", success=True, execution_time_ms=100).unwrap()
    registry.record_execution("w1", success=False, execution_time_ms=300).unwrap()
    metrics = registry.record_execution(
        "w1", success=False, execution_time_ms=50, timed_out=True
    ).unwrap()

    assert metrics.execution_count == 3
    assert metrics.success_count == 1
    assert metrics.failure_count == 1
    assert metrics.timeout_count == 1
    assert metrics.average_execution_time_ms == 150

    assert [a.agent_id for a in registry.find_by_execution_count(3).unwrap()] == ["w1"]
    assert registry.find_by_success_rate(0.5).unwrap() == []
    assert len(registry.find_recently_executed(timedelta(minutes=5)).unwrap()) == 1
    assert registry.find_by_success_rate(1.5).kind == ErrorKind.VALIDATION


def test_queries_by_scope_capability_and_tool(
    registry: AgentRegistry, make_agent: Callable[..., Agent]
) -> None:
    registry.save_many(
        [
            make_agent("Reader", agent_id="r", node_id="n1", skills=["sql"]),
            make_agent(
                "Storm",
                agent_id="s",
                feature_type=FeatureType.EVENT_STORM,
                tools=["slack"],
                can_write=True,
            ),
        ]
    ).unwrap()

    assert [a.agent_id for a in registry.find_by_node("n1").unwrap()] == ["r"]
    by_scope = registry.find_by_scope(FeatureType.EVENT_STORM, "model-1").unwrap()
    assert [a.agent_id for a in by_scope] == ["s"]
    assert [a.agent_id for a in registry.find_by_capability("SQ").unwrap()] == ["r"]
    assert [a.agent_id for a in registry.find_by_capability("write").unwrap()] == ["s"]
    assert [a.agent_id for a in registry.find_by_tool("slack").unwrap()] == ["s"]
    assert registry.find_by_capability(" ").kind == ErrorKind.VALIDATION

    counts = registry.count_by_feature().unwrap()
    assert counts["function-model"] == 1
    assert counts["event-storm"] == 1
    assert counts["spindle"] == 0
