"""
Vector distance helpers for claim embeddings.
"""

import logging
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


def as_vector(embedding: Optional[Sequence[float]]) -> Optional[np.ndarray]:
    """
    Coerce an embedding into a finite 1-D float array.

    Returns:
        The array, or None when the embedding is missing or malformed
    """
    if embedding is None:
        return None
    try:
        vec = np.asarray(embedding, dtype=float)
    except (TypeError, ValueError):
        return None
    if vec.ndim != 1 or vec.size == 0 or not np.all(np.isfinite(vec)):
        return None
    return vec


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Euclidean distance sqrt(sum((a_i - b_i)^2)).

    Raises:
        ValueError: If either vector is malformed or the dimensions differ
    """
    va = as_vector(a)
    vb = as_vector(b)
    if va is None or vb is None:
        raise ValueError("Embeddings must be non-empty finite vectors")
    if va.shape != vb.shape:
        raise ValueError(f"Dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")
    return float(np.linalg.norm(va - vb))


def safe_distance(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Euclidean distance that degrades to 0.0 for missing or malformed pairs."""
    try:
        return euclidean_distance(a, b)
    except ValueError as e:
        logger.debug(f"[EMBED] Malformed embedding pair treated as distance 0.0: {e}")
        return 0.0


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity, 0.0 for malformed or zero vectors."""
    va = as_vector(a)
    vb = as_vector(b)
    if va is None or vb is None or va.shape != vb.shape:
        return 0.0

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))
