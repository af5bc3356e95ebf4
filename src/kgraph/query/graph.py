"""Relationship graph traversal."""

from typing import Any

from ..models import GraphData


def adjacency(graph: GraphData) -> dict[str, list[str]]:
    """Build an undirected adjacency list from the graph's edges.

    Returns dict mapping node id -> list of neighbor ids, in edge order.
    """
    adj: dict[str, list[str]] = {n.id: [] for n in graph.nodes}
    for e in graph.edges:
        adj.setdefault(e.source, []).append(e.target)
        adj.setdefault(e.target, []).append(e.source)
    return adj


def find_related(graph: GraphData, node_id: str, depth: int = 1) -> dict[str, Any]:
    """Find nodes related to a start node by walking edges.

    Args:
        graph: The built knowledge graph.
        node_id: Id of the node to start from.
        depth: How many hops to traverse.

    Returns:
        Dict with related node ids at each depth level.
    """
    adj = adjacency(graph)
    visited = {node_id}
    current = {node_id}
    result: dict[int, list[str]] = {}

    for d in range(depth):
        next_level = set()
        for node in current:
            for linked in adj.get(node, []):
                if linked not in visited:
                    next_level.add(linked)
        visited |= next_level
        result[d + 1] = sorted(next_level)
        current = next_level

    return {
        "node": node_id,
        "related": result,
        "total": sum(len(v) for v in result.values()),
    }
