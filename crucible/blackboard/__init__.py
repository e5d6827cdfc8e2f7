"""
Blackboard: single-owner session state with immutable snapshots.
"""

from .records import (
    BlackboardSnapshot,
    CemeteryEntry,
    GraduatedClaim,
    TrajectoryPoint,
    freeze_embedding,
)
from .server import (
    TRANSLATOR_FRAMEWORKS,
    Blackboard,
    BlackboardState,
    next_framework,
)

__all__ = [
    "BlackboardSnapshot",
    "CemeteryEntry",
    "GraduatedClaim",
    "TrajectoryPoint",
    "freeze_embedding",
    "TRANSLATOR_FRAMEWORKS",
    "Blackboard",
    "BlackboardState",
    "next_framework",
]
