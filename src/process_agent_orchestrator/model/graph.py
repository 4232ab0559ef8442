"""Dependency graph helpers built on networkx."""

from __future__ import annotations

from collections.abc import Iterable

import networkx as nx


def build_graph(edges: Iterable[tuple[str, str]], nodes: Iterable[str] = ()) -> nx.DiGraph:
    graph = nx.DiGraph()
    graph.add_nodes_from(nodes)
    graph.add_edges_from(edges)
    return graph


def reaches(graph: nx.DiGraph, start: str, goal: str) -> bool:
    """True if a directed path leads from ``start`` to ``goal``."""
    if start == goal:
        return True
    if start not in graph or goal not in graph:
        return False
    return nx.has_path(graph, start, goal)


def find_cycle(graph: nx.DiGraph) -> list[str] | None:
    """Return one cycle as a node list (first node repeated at the end), or None."""
    try:
        edges = nx.find_cycle(graph)
    except nx.NetworkXNoCycle:
        return None
    return [source for source, _ in edges] + [edges[0][0]]


def longest_path_length(graph: nx.DiGraph) -> int:
    """Number of edges on the longest path; 0 when the graph has a cycle."""
    if not nx.is_directed_acyclic_graph(graph):
        return 0
    return nx.dag_longest_path_length(graph)
