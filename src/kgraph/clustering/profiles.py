"""Keyword profiles per cluster and similarity between clusters."""

from collections import Counter

from ..models import ClusterProfile, ClusterSimilarity, GraphNode, normalize_keyword


def analyze_cluster_profiles(nodes: list[GraphNode], top_n: int = 10) -> list[ClusterProfile]:
    """Aggregate node keywords per cluster into frequency profiles, sorted by cluster id."""
    counts: dict[int, Counter] = {}
    sizes: Counter = Counter()
    for node in nodes:
        sizes[node.group] += 1
        bucket = counts.setdefault(node.group, Counter())
        bucket.update(normalize_keyword(k) for k in node.keywords)

    profiles = []
    for cluster_id in sorted(sizes):
        # Counter.most_common keeps first-seen order among equal counts
        top = counts[cluster_id].most_common(top_n)
        profiles.append(ClusterProfile(
            cluster_id=cluster_id,
            node_count=sizes[cluster_id],
            top_keywords=top,
            main_topics=[word for word, _ in top[:3]],
        ))
    return profiles


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def find_similar_clusters(
    target_cluster_id: int,
    profiles: list[ClusterProfile],
    threshold: float = 0.05,
) -> list[ClusterSimilarity]:
    """Rank other clusters by Jaccard similarity of their top keywords."""
    target = next((p for p in profiles if p.cluster_id == target_cluster_id), None)
    if target is None:
        return []

    target_words = {w for w, _ in target.top_keywords}
    results = []
    for profile in profiles:
        if profile.cluster_id == target_cluster_id:
            continue
        words = {w for w, _ in profile.top_keywords}
        score = jaccard(target_words, words)
        if score > threshold:
            results.append(ClusterSimilarity(
                target_cluster_id=target_cluster_id,
                similar_cluster_id=profile.cluster_id,
                score=score,
                shared_keywords=sorted(target_words & words),
            ))

    results.sort(key=lambda s: s.score, reverse=True)
    return results
