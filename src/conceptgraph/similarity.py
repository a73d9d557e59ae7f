"""
Similarity metrics for node embeddings.

σ(a, b) = a^T b / (||a|| ||b||)

Zero vectors have similarity 0 with everything, including themselves.
"""

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as _sk_cosine_similarity


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        a: Shape (d,) - first vector
        b: Shape (d,) - second vector

    Returns:
        float: Cosine similarity in [-1, 1], or 0.0 if either vector is all-zero
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a < 1e-10 or norm_b < 1e-10:
        return 0.0

    value = float(np.dot(a, b) / (norm_a * norm_b))
    return float(np.clip(value, -1.0, 1.0))


def cosine_similarity_matrix(vectors: np.ndarray) -> np.ndarray:
    """
    Compute pairwise cosine similarity for all vector pairs.

    Args:
        vectors: Shape (N, d) - N vectors (need not be normalized)

    Returns:
        np.ndarray: Shape (N, N) - similarity matrix where S_ij = σ(v_i, v_j)
    """
    vectors = np.asarray(vectors, dtype=float)
    if vectors.ndim != 2 or len(vectors) == 0:
        return np.empty((0, 0))
    return np.clip(_sk_cosine_similarity(vectors), -1.0, 1.0)


def cosine_similarity_to_many(query: np.ndarray, vectors: np.ndarray) -> np.ndarray:
    """
    Similarity of one query vector against each row of `vectors`.

    Args:
        query: Shape (d,)
        vectors: Shape (N, d)

    Returns:
        np.ndarray: Shape (N,)
    """
    vectors = np.asarray(vectors, dtype=float)
    if len(vectors) == 0:
        return np.empty(0)
    query = np.asarray(query, dtype=float).reshape(1, -1)
    return np.clip(_sk_cosine_similarity(query, vectors)[0], -1.0, 1.0)


def centroid(vectors: np.ndarray) -> np.ndarray:
    """Mean vector of the rows of `vectors` (zeros for an empty input)."""
    vectors = np.asarray(vectors, dtype=float)
    if vectors.ndim != 2 or len(vectors) == 0:
        return np.zeros(vectors.shape[-1] if vectors.ndim == 2 else 0)
    return np.mean(vectors, axis=0)
