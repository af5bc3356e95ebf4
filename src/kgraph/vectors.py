"""Vector math shared by refinement, clustering and retrieval."""

import numpy as np


EPSILON = 1e-8


def as_matrix(vectors) -> np.ndarray:
    """Stack a sequence of vectors into a 2-D float array."""
    if len(vectors) == 0:
        return np.zeros((0, 0))
    return np.vstack([np.asarray(v, dtype=float) for v in vectors])


def euclidean(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(a - b))


def normalize(v: np.ndarray) -> np.ndarray:
    """Scale to unit length; the zero vector is returned unchanged."""
    n = np.linalg.norm(v)
    if n == 0:
        return v.copy()
    return v / n


def cosine_top_n(query: np.ndarray, matrix: np.ndarray, n: int) -> list[tuple[int, float]]:
    """Return (row index, cosine score) for the n rows most similar to query.

    Ties keep the lower row index first. Zero rows score 0.
    """
    if matrix.size == 0 or n <= 0:
        return []
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.divide(dots, norms, out=np.zeros_like(dots, dtype=float), where=norms > 0)
    order = np.argsort(-scores, kind="stable")[:n]
    return [(int(i), float(scores[i])) for i in order]


def triplet_loss(anchor: np.ndarray, positive: np.ndarray, negative: np.ndarray, margin: float) -> float:
    """max(0, d(A,P) - d(A,N) + margin) with Euclidean distances."""
    return max(euclidean(anchor, positive) - euclidean(anchor, negative) + margin, 0.0)


def triplet_gradients(
    anchor: np.ndarray,
    positive: np.ndarray,
    negative: np.ndarray,
    eps: float = EPSILON,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Gradients of d(A,P) - d(A,N) with respect to A, P and N.

    Descending along them pulls A and P together and pushes A and N apart.
    """
    diff_ap = anchor - positive
    diff_an = anchor - negative
    grad_ap = diff_ap / (np.linalg.norm(diff_ap) + eps)
    grad_an = diff_an / (np.linalg.norm(diff_an) + eps)
    return grad_ap - grad_an, -grad_ap, grad_an
