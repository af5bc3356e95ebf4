"""Structural metrics over a built graph."""

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from ..models import NOISE, GraphEdge, GraphMetrics, GraphNode


def degrees(nodes: list[GraphNode], edges: list[GraphEdge]) -> dict[str, int]:
    deg = {n.id: 0 for n in nodes}
    for e in edges:
        deg[e.source] = deg.get(e.source, 0) + 1
        deg[e.target] = deg.get(e.target, 0) + 1
    return deg


def count_components(nodes: list[GraphNode], edges: list[GraphEdge]) -> int:
    """Number of connected components; isolated nodes count as their own."""
    n = len(nodes)
    if n == 0:
        return 0
    position = {node.id: i for i, node in enumerate(nodes)}
    rows = np.array([position[e.source] for e in edges], dtype=int)
    cols = np.array([position[e.target] for e in edges], dtype=int)
    adjacency = coo_matrix((np.ones(len(edges)), (rows, cols)), shape=(n, n))
    count, _ = connected_components(adjacency, directed=False)
    return int(count)


def modularity(nodes: list[GraphNode], edges: list[GraphEdge]) -> float:
    """Same-cluster edge fraction minus 1/|V|^2.

    A simplified baseline rather than Newman modularity; kept in this shape
    for compatibility with previously reported values.
    """
    n = len(nodes)
    if n == 0:
        return 0.0
    group = {node.id: node.group for node in nodes}
    intra = sum(
        1 for e in edges
        if group[e.source] == group[e.target] and group[e.source] != NOISE
    )
    fraction = intra / len(edges) if edges else 0.0
    return fraction - 1.0 / (n * n)


def quality_score(silhouette: float, modularity_value: float, density: float) -> int:
    """Composite 0-100 style score shown next to the raw metrics."""
    return round(((silhouette + modularity_value + density * 5) / 3) * 100)


def compute_metrics(
    nodes: list[GraphNode],
    edges: list[GraphEdge],
    silhouette: float = 0.0,
) -> GraphMetrics:
    """Recompute every metric and fill in node centrality in place."""
    n = len(nodes)
    deg = degrees(nodes, edges)
    for node in nodes:
        node.centrality = deg[node.id] / (n - 1) if n > 1 else 0.0

    density = 2 * len(edges) / (n * (n - 1)) if n > 1 else 0.0
    average_degree = sum(deg.values()) / n if n else 0.0
    mod = modularity(nodes, edges)

    return GraphMetrics(
        node_count=n,
        edge_count=len(edges),
        density=density,
        average_degree=average_degree,
        modularity=mod,
        silhouette=silhouette,
        connected_components=count_components(nodes, edges),
        quality_score=quality_score(silhouette, mod, density),
    )
