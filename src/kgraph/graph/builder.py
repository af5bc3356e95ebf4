"""Build a confidence-weighted knowledge graph from clustered, keyword-tagged entities.

Semantic candidates come from an inverted keyword index, so only pairs that
share at least one informative keyword are ever scored. Structural
(co-occurrence) evidence links members of the same cluster. Repeated
evidence for a pair reinforces a single edge instead of adding another.
"""

import logging
from itertools import combinations
from typing import Any

from ..models import (
    NOISE,
    ClusterAssignment,
    EdgeType,
    Entity,
    GraphData,
    GraphEdge,
    GraphNode,
)
from .metrics import compute_metrics

logger = logging.getLogger(__name__)


def edge_key(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a <= b else (b, a)


class EdgeAccumulator:
    """Holds at most one edge per unordered id pair and applies the merge policy."""

    def __init__(self, reinforce_weight: float = 0.5, reinforce_confidence: float = 0.2):
        self.reinforce_weight = reinforce_weight
        self.reinforce_confidence = reinforce_confidence
        self.edges: dict[tuple[str, str], GraphEdge] = {}

    def add(self, a: str, b: str, weight: float, confidence: float, edge_type: EdgeType) -> GraphEdge:
        if a == b:
            raise ValueError(f"Self-loop on {a!r}")
        key = edge_key(a, b)
        edge = self.edges.get(key)
        if edge is None:
            edge = GraphEdge(
                source=key[0],
                target=key[1],
                weight=min(max(weight, 0.0), 1.0),
                confidence=min(max(confidence, 0.0), 1.0),
                type=edge_type,
            )
            self.edges[key] = edge
            return edge

        edge.weight = min(1.0, edge.weight + self.reinforce_weight * max(weight, 0.0))
        edge.confidence = min(1.0, edge.confidence + self.reinforce_confidence * max(confidence, 0.0))
        # promotion only: co-occurrence < semantic < hierarchical
        if edge_type > edge.type:
            edge.type = edge_type
        return edge

    def filtered(self, min_confidence: float) -> list[GraphEdge]:
        return [e for e in self.edges.values() if e.confidence > min_confidence]


def build_inverted_index(keyword_sets: list[frozenset[str]], stopword_ratio: float = 0.6) -> dict[str, list[int]]:
    """Map keyword -> node indices, dropping keywords that cover too many nodes.

    A keyword is suppressed when its posting list exceeds `stopword_ratio`
    of all nodes; a keyword shared by only two nodes is always kept.
    """
    index: dict[str, list[int]] = {}
    for i, keywords in enumerate(keyword_sets):
        for k in keywords:
            index.setdefault(k, []).append(i)

    n = len(keyword_sets)
    limit = stopword_ratio * n
    return {k: postings for k, postings in index.items() if len(postings) <= 2 or len(postings) <= limit}


def candidate_pairs(index: dict[str, list[int]]) -> set[tuple[int, int]]:
    pairs: set[tuple[int, int]] = set()
    for postings in index.values():
        for i, j in combinations(sorted(postings), 2):
            pairs.add((i, j))
    return pairs


def keyword_confidence(
    a: frozenset[str],
    b: frozenset[str],
    overlap_weight: float = 0.6,
    jaccard_weight: float = 0.4,
) -> float:
    """Blend of overlap coefficient and Jaccard index of two keyword sets."""
    if not a or not b:
        return 0.0
    inter = len(a & b)
    jaccard = inter / len(a | b)
    overlap = inter / min(len(a), len(b))
    return overlap_weight * overlap + jaccard_weight * jaccard


def _shares_cluster(a: int, b: int) -> bool:
    return a == b and a != NOISE


def build_graph(
    entities: list[Entity],
    assignment: ClusterAssignment,
    config: dict[str, Any],
) -> GraphData:
    """Turn clustered entities into nodes, merged edges and metrics."""
    g = config.get("graph", {})
    threshold = g.get("semantic_threshold", 0.35)
    damping = g.get("semantic_weight_damping", 0.8)
    co_conf = g.get("cooccurrence_confidence", {"same_type": 0.6, "other_type": 0.3})
    co_weight = g.get("cooccurrence_weight", {"same_type": 0.4, "other_type": 0.2})

    nodes = [
        GraphNode(
            id=e.id,
            label=e.entity_label or e.id,
            group=assignment.labels.get(e.id, NOISE),
            content=e.content,
            entity_type=e.entity_type,
            keywords=list(e.keywords),
        )
        for e in entities
    ]
    keyword_sets = [e.keyword_set for e in entities]
    acc = EdgeAccumulator(
        reinforce_weight=g.get("reinforce_weight", 0.5),
        reinforce_confidence=g.get("reinforce_confidence", 0.2),
    )

    # Semantic evidence
    index = build_inverted_index(keyword_sets, g.get("stopword_ratio", 0.6))
    pairs = candidate_pairs(index)
    for i, j in sorted(pairs):
        ka, kb = keyword_sets[i], keyword_sets[j]
        confidence = keyword_confidence(
            ka, kb,
            overlap_weight=g.get("overlap_weight", 0.6),
            jaccard_weight=g.get("jaccard_weight", 0.4),
        )
        if confidence <= threshold:
            continue
        edge_type = EdgeType.HIERARCHICAL if (ka < kb or kb < ka) else EdgeType.SEMANTIC
        acc.add(nodes[i].id, nodes[j].id, confidence * damping, confidence, edge_type)

    # Structural evidence
    members: dict[int, list[int]] = {}
    for i, node in enumerate(nodes):
        if node.group != NOISE:
            members.setdefault(node.group, []).append(i)
    for indices in members.values():
        for i, j in combinations(indices, 2):
            same = bool(nodes[i].entity_type) and nodes[i].entity_type == nodes[j].entity_type
            key = "same_type" if same else "other_type"
            acc.add(nodes[i].id, nodes[j].id, co_weight[key], co_conf[key], EdgeType.CO_OCCURRENCE)

    edges = acc.filtered(g.get("min_confidence", 0.3))
    logger.info(
        f"Graph: {len(nodes)} nodes, {len(pairs)} candidate pairs, "
        f"{len(acc.edges)} edges accumulated, {len(edges)} kept"
    )

    metrics = compute_metrics(nodes, edges, silhouette=assignment.silhouette)
    return GraphData(nodes=nodes, edges=edges, metrics=metrics)
