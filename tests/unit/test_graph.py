"""Unit tests for the dependency graph helpers."""

from __future__ import annotations

from process_agent_orchestrator.model.graph import (
    build_graph,
    find_cycle,
    longest_path_length,
    reaches,
)


def test_reaches_follows_edge_direction() -> None:
    graph = build_graph([("a", "b"), ("b", "c")])

    assert reaches(graph, "a", "c")
    assert not reaches(graph, "c", "a")
    assert reaches(graph, "x", "x")
    assert not reaches(graph, "a", "unknown")


def test_find_cycle_returns_closed_path() -> None:
    assert find_cycle(build_graph([("a", "b"), ("b", "c")])) is None

    cycle = find_cycle(build_graph([("a", "b"), ("b", "c"), ("c", "a")]))
    assert cycle is not None
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}

    assert find_cycle(build_graph([("solo", "solo")])) == ["solo", "solo"]


def test_longest_path_counts_edges_and_ignores_cyclic_graphs() -> None:
    assert longest_path_length(build_graph([], ["lonely"])) == 0
    assert longest_path_length(build_graph([("a", "b"), ("b", "c"), ("a", "c")])) == 2
    assert longest_path_length(build_graph([("a", "b"), ("b", "a")])) == 0
