"""K-Means clustering with silhouette-based selection of K."""

import logging
import math
from typing import Any

import numpy as np
from sklearn.cluster import DBSCAN, KMeans
from sklearn.metrics import pairwise_distances

from ..models import NOISE, ClusterAssignment, ClusterPoint
from ..vectors import as_matrix

logger = logging.getLogger(__name__)


def run_kmeans(vectors: np.ndarray, k: int, max_iter: int = 20) -> tuple[np.ndarray, np.ndarray]:
    """Lloyd K-Means seeded with the first k vectors.

    Stops when no point changes cluster or after max_iter iterations.
    Returns (labels, centroids).
    """
    k = min(k, len(vectors))
    km = KMeans(
        n_clusters=k,
        init=vectors[:k],
        n_init=1,
        max_iter=max_iter,
        tol=0.0,
        algorithm="lloyd",
    )
    labels = km.fit_predict(vectors)
    return labels, km.cluster_centers_


def silhouette_score(
    vectors: np.ndarray,
    labels: np.ndarray,
    sample_size: int | None = None,
    seed: int = 42,
) -> float:
    """Mean silhouette coefficient over (optionally sampled) points.

    For each point, a = mean distance to the rest of its cluster (0 when it
    is alone) and b = smallest mean distance to another cluster (0 when there
    is none); the point scores (b - a) / max(a, b), or 0 if both are 0.
    """
    n = len(vectors)
    if n == 0:
        return 0.0
    if sample_size and n > sample_size:
        rng = np.random.default_rng(seed)
        sampled = np.sort(rng.choice(n, size=sample_size, replace=False))
    else:
        sampled = np.arange(n)

    distances = pairwise_distances(vectors[sampled], vectors, metric="euclidean")
    clusters = np.unique(labels)
    total = 0.0
    for row, i in enumerate(sampled):
        own = labels[i]
        same = labels == own
        same[i] = False
        a = float(distances[row, same].mean()) if same.any() else 0.0
        b = math.inf
        for c in clusters:
            if c == own:
                continue
            b = min(b, float(distances[row, labels == c].mean()))
        if b == math.inf:
            b = 0.0
        denom = max(a, b)
        total += 0.0 if denom == 0 else (b - a) / denom
    return total / len(sampled)


def flag_noise(vectors: np.ndarray, labels: np.ndarray, eps: float, min_samples: int) -> np.ndarray:
    """Relabel DBSCAN outliers as NOISE, keeping K-Means labels for the rest."""
    density = DBSCAN(eps=eps, min_samples=min_samples).fit_predict(vectors)
    flagged = labels.copy()
    flagged[density == -1] = NOISE
    return flagged


def project_points(
    ids: list[str],
    labels: np.ndarray,
    k: int,
    seed: int = 42,
    radius: float = 100.0,
    jitter: float = 15.0,
) -> list[ClusterPoint]:
    """Lay clusters out on a circle, one angle per cluster, members jittered around it."""
    rng = np.random.default_rng(seed)
    points = []
    for eid, label in zip(ids, labels):
        angle = 2 * math.pi * int(label) / max(k, 1)
        r = radius + rng.uniform(-jitter, jitter)
        x = r * math.cos(angle) + rng.uniform(-jitter / 2, jitter / 2)
        y = r * math.sin(angle) + rng.uniform(-jitter / 2, jitter / 2)
        points.append(ClusterPoint(id=eid, x=float(x), y=float(y), cluster_id=int(label)))
    return points


def select_clusters(
    ids: list[str],
    vectors: list[list[float]] | np.ndarray,
    config: dict[str, Any],
) -> ClusterAssignment:
    """Sweep k = 2..max_k and keep the partition with the best silhouette.

    Ties go to the smaller k. Fewer than 3 vectors skip the search and land
    in a single cluster.
    """
    cluster_cfg = config.get("clustering", {})
    max_k = cluster_cfg.get("max_k", 6)
    max_iter = cluster_cfg.get("max_iter", 20)
    sample = cluster_cfg.get("silhouette_sample", 200)
    seed = cluster_cfg.get("seed", 42)

    matrix = as_matrix(vectors)
    n = len(ids)

    if n < 3:
        centroid = matrix.mean(axis=0).tolist() if n else []
        labels = np.zeros(n, dtype=int)
        return ClusterAssignment(
            labels={eid: 0 for eid in ids},
            centroids=[centroid] if n else [],
            k=1 if n else 0,
            silhouette=0.0,
            points=project_points(ids, labels, 1, seed=seed),
        )

    best_k, best_score = 2, -math.inf
    best_labels, best_centroids = None, None
    for k in range(2, min(max_k, n) + 1):
        labels, centroids = run_kmeans(matrix, k, max_iter=max_iter)
        score = silhouette_score(matrix, labels, sample_size=sample, seed=seed)
        logger.debug(f"k={k} silhouette={score:.4f}")
        if score > best_score:
            best_k, best_score = k, score
            best_labels, best_centroids = labels, centroids

    logger.info(f"Selected k={best_k} (silhouette {best_score:.4f}) for {n} vectors")

    points = project_points(ids, best_labels, best_k, seed=seed)
    final_labels = best_labels
    noise_eps = cluster_cfg.get("noise_eps")
    if noise_eps is not None:
        final_labels = flag_noise(matrix, best_labels, noise_eps, cluster_cfg.get("noise_min_samples", 2))
        flagged = int((final_labels == NOISE).sum())
        if flagged:
            logger.info(f"Flagged {flagged} point(s) as noise")
        for point, label in zip(points, final_labels):
            point.cluster_id = int(label)

    return ClusterAssignment(
        labels={eid: int(label) for eid, label in zip(ids, final_labels)},
        centroids=best_centroids.tolist(),
        k=best_k,
        silhouette=float(best_score),
        points=points,
    )
