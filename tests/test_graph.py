"""Tests for graph construction, metrics and traversal."""

import pytest

from kgraph.config import DEFAULT_CONFIG
from kgraph.graph.builder import (
    EdgeAccumulator,
    build_graph,
    build_inverted_index,
    candidate_pairs,
    keyword_confidence,
)
from kgraph.graph.metrics import compute_metrics, count_components, modularity
from kgraph.models import NOISE, ClusterAssignment, EdgeType, Entity, GraphData, GraphEdge, GraphNode
from kgraph.query.graph import adjacency, find_related


def _assignment(labels, silhouette=0.0):
    return ClusterAssignment(labels=labels, centroids=[], k=len(set(labels.values())), silhouette=silhouette)


def _scenario(entity_type=""):
    entities = [
        Entity(id="A", content="alpha", order=0, keywords=["x", "y"], entity_type=entity_type),
        Entity(id="B", content="beta", order=1, keywords=["x", "z"], entity_type=entity_type),
        Entity(id="C", content="gamma", order=2, keywords=["q"], entity_type=entity_type),
    ]
    return build_graph(entities, _assignment({"A": 0, "B": 0, "C": 1}), DEFAULT_CONFIG)


def test_three_entity_scenario():
    graph = _scenario()

    assert len(graph.edges) == 1
    edge = graph.edges[0]
    assert edge.key == ("A", "B")
    assert edge.type is EdgeType.SEMANTIC
    # semantic evidence, then reinforced by cross-type co-occurrence
    semantic = 0.6 * 0.5 + 0.4 * (1 / 3)
    assert edge.confidence == pytest.approx(semantic + 0.2 * 0.3)
    assert edge.weight == pytest.approx(semantic * 0.8 + 0.5 * 0.2)

    m = graph.metrics
    assert m.node_count == 3
    assert m.edge_count == 1
    assert m.density == pytest.approx(1 / 3)
    assert m.average_degree == pytest.approx(2 / 3)
    assert m.connected_components == 2
    assert m.modularity == pytest.approx(1 - 1 / 9)


def test_scenario_with_matching_types():
    edge = _scenario(entity_type="ARTICLE").edges[0]
    semantic = 0.6 * 0.5 + 0.4 * (1 / 3)
    assert edge.confidence == pytest.approx(semantic + 0.2 * 0.6)
    assert edge.weight == pytest.approx(semantic * 0.8 + 0.5 * 0.4)
    assert edge.type is EdgeType.SEMANTIC


def test_metric_identity_and_centrality():
    graph = _scenario()
    m = graph.metrics
    n = m.node_count
    assert m.density * n * (n - 1) == pytest.approx(m.average_degree * n)
    assert m.average_degree * n == pytest.approx(2 * m.edge_count)

    centrality = {node.id: node.centrality for node in graph.nodes}
    assert centrality == {"A": 0.5, "B": 0.5, "C": 0.0}


def test_subset_keywords_make_hierarchical_edge():
    entities = [
        Entity(id="A", content="", order=0, keywords=["x", "y"]),
        Entity(id="B", content="", order=1, keywords=["x"]),
    ]
    graph = build_graph(entities, _assignment({"A": 0, "B": 1}), DEFAULT_CONFIG)
    assert len(graph.edges) == 1
    assert graph.edges[0].type is EdgeType.HIERARCHICAL
    assert graph.edges[0].confidence == pytest.approx(0.8)
    assert graph.edges[0].weight == pytest.approx(0.64)


def test_weak_overlap_rejected():
    entities = [
        Entity(id="A", content="", order=0, keywords=["x", "a", "b", "c"]),
        Entity(id="B", content="", order=1, keywords=["x", "d", "e", "f"]),
    ]
    # overlap 1/4, jaccard 1/7 -> 0.207 < 0.35
    graph = build_graph(entities, _assignment({"A": 0, "B": 1}), DEFAULT_CONFIG)
    assert graph.edges == []


def test_cross_type_cooccurrence_alone_is_filtered():
    entities = [
        Entity(id="A", content="", order=0, entity_type="ARTICLE"),
        Entity(id="B", content="", order=1, entity_type="ITEM"),
    ]
    # confidence 0.3 does not clear the > 0.3 filter
    graph = build_graph(entities, _assignment({"A": 0, "B": 0}), DEFAULT_CONFIG)
    assert graph.edges == []


def test_same_type_cooccurrence_edge():
    entities = [
        Entity(id="A", content="", order=0, entity_type="ARTICLE"),
        Entity(id="B", content="", order=1, entity_type="ARTICLE"),
    ]
    graph = build_graph(entities, _assignment({"A": 0, "B": 0}), DEFAULT_CONFIG)
    assert len(graph.edges) == 1
    assert graph.edges[0].type is EdgeType.CO_OCCURRENCE
    assert graph.edges[0].confidence == pytest.approx(0.6)
    assert graph.edges[0].weight == pytest.approx(0.4)


def test_noise_points_get_no_cooccurrence_edges():
    entities = [
        Entity(id="A", content="", order=0, entity_type="ARTICLE"),
        Entity(id="B", content="", order=1, entity_type="ARTICLE"),
    ]
    graph = build_graph(entities, _assignment({"A": NOISE, "B": NOISE}), DEFAULT_CONFIG)
    assert graph.edges == []
    assert [n.group for n in graph.nodes] == [NOISE, NOISE]


def test_stopword_suppression():
    keyword_sets = [frozenset({"common", f"k{i}"}) for i in range(5)]
    index = build_inverted_index(keyword_sets, stopword_ratio=0.6)
    assert "common" not in index
    assert candidate_pairs(index) == set()


def test_small_posting_lists_survive_suppression():
    keyword_sets = [frozenset({"x"}), frozenset({"x"}), frozenset({"q"})]
    index = build_inverted_index(keyword_sets, stopword_ratio=0.6)
    assert index["x"] == [0, 1]
    assert candidate_pairs(index) == {(0, 1)}


def test_keyword_confidence():
    assert keyword_confidence(frozenset(), frozenset({"x"})) == 0.0
    assert keyword_confidence(frozenset({"x"}), frozenset({"x"})) == pytest.approx(1.0)


def test_one_edge_per_pair():
    entities = [
        Entity(id=f"n{i}", content="", order=i, entity_type="ARTICLE", keywords=["shared", f"k{i % 2}", "extra"])
        for i in range(4)
    ]
    entities.append(Entity(id="other", content="", order=4, keywords=["unrelated"]))
    graph = build_graph(entities, _assignment({e.id: 0 for e in entities}), DEFAULT_CONFIG)

    keys = [e.key for e in graph.edges]
    assert len(keys) == len(set(keys))
    for e in graph.edges:
        assert e.source < e.target
        assert 0.0 <= e.weight <= 1.0
        assert 0.0 <= e.confidence <= 1.0


def test_accumulator_caps_and_promotion():
    acc = EdgeAccumulator()
    acc.add("b", "a", 0.2, 0.6, EdgeType.CO_OCCURRENCE)
    edge = acc.edges[("a", "b")]
    assert (edge.source, edge.target) == ("a", "b")

    acc.add("a", "b", 0.5, 0.5, EdgeType.SEMANTIC)
    assert edge.type is EdgeType.SEMANTIC
    acc.add("a", "b", 0.5, 0.5, EdgeType.CO_OCCURRENCE)
    assert edge.type is EdgeType.SEMANTIC
    acc.add("a", "b", 0.5, 0.5, EdgeType.HIERARCHICAL)
    assert edge.type is EdgeType.HIERARCHICAL

    for _ in range(20):
        acc.add("a", "b", 1.0, 1.0, EdgeType.CO_OCCURRENCE)
    assert edge.weight == 1.0
    assert edge.confidence == 1.0
    assert edge.type is EdgeType.HIERARCHICAL
    assert len(acc.edges) == 1


def test_accumulator_reinforcement_is_monotone():
    acc = EdgeAccumulator()
    acc.add("a", "b", 0.1, 0.1, EdgeType.SEMANTIC)
    last = (0.1, 0.1)
    for _ in range(5):
        edge = acc.add("a", "b", 0.1, 0.1, EdgeType.SEMANTIC)
        assert edge.weight >= last[0] and edge.confidence >= last[1]
        last = (edge.weight, edge.confidence)


def test_accumulator_rejects_self_loop():
    with pytest.raises(ValueError):
        EdgeAccumulator().add("a", "a", 0.5, 0.5, EdgeType.SEMANTIC)


def test_filter_is_strict():
    acc = EdgeAccumulator()
    acc.add("a", "b", 0.2, 0.3, EdgeType.CO_OCCURRENCE)
    acc.add("a", "c", 0.2, 0.31, EdgeType.CO_OCCURRENCE)
    assert [e.key for e in acc.filtered(0.3)] == [("a", "c")]


def _nodes(groups):
    return [GraphNode(id=nid, label=nid, group=g, content="") for nid, g in groups.items()]


def _edge(a, b):
    return GraphEdge(source=a, target=b, weight=0.5, confidence=0.5, type=EdgeType.SEMANTIC)


def test_empty_and_single_node_metrics():
    m = compute_metrics([], [])
    assert (m.node_count, m.density, m.average_degree, m.connected_components) == (0, 0.0, 0.0, 0)

    nodes = _nodes({"a": 0})
    m = compute_metrics(nodes, [])
    assert m.density == 0.0
    assert m.connected_components == 1
    assert nodes[0].centrality == 0.0


def test_count_components():
    nodes = _nodes({"a": 0, "b": 0, "c": 1, "d": 1, "e": 2})
    edges = [_edge("a", "b"), _edge("c", "d")]
    assert count_components(nodes, edges) == 3


def test_modularity_without_edges():
    nodes = _nodes({"a": 0, "b": 1})
    assert modularity(nodes, []) == pytest.approx(-0.25)


def test_modularity_ignores_noise_pairs():
    nodes = _nodes({"a": NOISE, "b": NOISE, "c": 0, "d": 0})
    edges = [_edge("a", "b"), _edge("c", "d")]
    assert modularity(nodes, edges) == pytest.approx(0.5 - 1 / 16)


def test_quality_score():
    nodes = _nodes({"a": 0, "b": 0})
    m = compute_metrics(nodes, [_edge("a", "b")], silhouette=0.5)
    # density 1, modularity 1 - 1/4
    assert m.quality_score == round(((0.5 + 0.75 + 5) / 3) * 100)


def test_find_related():
    nodes = _nodes({"a": 0, "b": 0, "c": 0, "d": 0})
    graph = GraphData(nodes=nodes, edges=[_edge("a", "b"), _edge("b", "c"), _edge("c", "d")])

    related = find_related(graph, "a", depth=2)
    assert related["related"] == {1: ["b"], 2: ["c"]}
    assert related["total"] == 2
    assert sorted(adjacency(graph)["b"]) == ["a", "c"]
    assert adjacency(graph)["d"] == ["c"]
