"""
Novelty scoring against the claim trajectory.

Novelty is the distance from a new embedding to the nearest point
already visited, normalized by the space diameter and clipped to [0, 1].
"""

from typing import Optional, Sequence

from .similarity import as_vector, safe_distance


def novelty_score(
    embedding: Optional[Sequence[float]],
    history: Sequence[Optional[Sequence[float]]],
    space_diameter: float = 10.0,
) -> float:
    """
    Novelty of an embedding relative to previously visited embeddings.

    An empty history is fully novel (1.0); a missing embedding is not
    novel at all (0.0).
    """
    if as_vector(embedding) is None:
        return 0.0

    visited = [h for h in history if as_vector(h) is not None]
    if not visited:
        return 1.0

    nearest = min(safe_distance(embedding, h) for h in visited)
    return max(0.0, min(1.0, nearest / space_diameter))


def novelty_bonus(
    embedding: Optional[Sequence[float]],
    history: Sequence[Optional[Sequence[float]]],
    max_bonus: float = 0.05,
    space_diameter: float = 10.0,
) -> float:
    """Support bonus proportional to novelty, at most ``max_bonus``."""
    return max_bonus * novelty_score(embedding, history, space_diameter)
