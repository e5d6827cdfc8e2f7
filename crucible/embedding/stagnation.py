"""
Stagnation Detector for Crucible.

Watches how far the claim embedding moves between consecutive cycles.
When the average movement over the recent window drops below the
movement threshold, the session is stagnant and the cartographer is
called in to navigate elsewhere.

Too little history is not an error: the verdict is UNDEFINED, which
the scheduler treats as not stagnant.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from .similarity import safe_distance

logger = logging.getLogger(__name__)


class StagnationStatus(str, Enum):
    """Verdict of a stagnation check."""
    STAGNANT = "stagnant"
    MOVING = "moving"
    UNDEFINED = "undefined"


@dataclass(frozen=True)
class StagnationResult:
    """Outcome of one stagnation check."""

    status: StagnationStatus
    average_distance: Optional[float]
    points_considered: int
    distances_considered: int

    @property
    def is_stagnant(self) -> bool:
        return self.status == StagnationStatus.STAGNANT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "average_distance": self.average_distance,
            "points_considered": self.points_considered,
            "distances_considered": self.distances_considered,
        }


class StagnationDetector:
    """
    Average-movement stagnation check over the trajectory tail.

    Args:
        window: Minimum number of trajectory points for a verdict
        lookback: Maximum number of trailing points considered
        movement_threshold: Average distance below which the window is stagnant
    """

    def __init__(self, window: int = 5, lookback: int = 10, movement_threshold: float = 0.1):
        if window < 2:
            raise ValueError("window must be at least 2")
        self.window = window
        self.lookback = max(lookback, window)
        self.movement_threshold = movement_threshold

    def check(self, trajectory: Sequence[Any]) -> StagnationResult:
        """
        Evaluate the trailing trajectory window.

        Args:
            trajectory: Trajectory points (objects with an ``embedding``
                attribute) or raw embedding vectors, oldest first

        Returns:
            StagnationResult
        """
        tail = list(trajectory)[-self.lookback:]
        if len(tail) < self.window:
            return StagnationResult(
                status=StagnationStatus.UNDEFINED,
                average_distance=None,
                points_considered=len(tail),
                distances_considered=max(len(tail) - 1, 0),
            )

        embeddings = [_embedding_of(point) for point in tail]
        distances = [
            safe_distance(embeddings[i], embeddings[i + 1])
            for i in range(len(embeddings) - 1)
        ]
        average = sum(distances) / len(distances)

        status = (
            StagnationStatus.STAGNANT
            if average < self.movement_threshold
            else StagnationStatus.MOVING
        )
        logger.debug(
            f"[STAGNATION] avg={average:.4f} over {len(distances)} moves -> {status.value}"
        )
        return StagnationResult(
            status=status,
            average_distance=average,
            points_considered=len(tail),
            distances_considered=len(distances),
        )

    def is_stagnant(self, trajectory: Sequence[Any]) -> bool:
        return self.check(trajectory).is_stagnant


def _embedding_of(point: Any) -> Optional[Sequence[float]]:
    if hasattr(point, "embedding"):
        return point.embedding
    if isinstance(point, dict):
        return point.get("embedding")
    return point
