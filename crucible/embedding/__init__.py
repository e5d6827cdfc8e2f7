"""
Embedding utilities: distances, novelty, stagnation and the embedding client.
"""

from .similarity import as_vector, cosine_similarity, euclidean_distance, safe_distance
from .stagnation import StagnationDetector, StagnationResult, StagnationStatus
from .novelty import novelty_bonus, novelty_score
from .space import EmbeddingSpace

__all__ = [
    "as_vector",
    "cosine_similarity",
    "euclidean_distance",
    "safe_distance",
    "StagnationDetector",
    "StagnationResult",
    "StagnationStatus",
    "novelty_bonus",
    "novelty_score",
    "EmbeddingSpace",
]
