"""
Claim evolution: detection and classification of claim changes.
"""

from .transitions import (
    ChangeType,
    ClaimChangeDetector,
    ClaimTransition,
    classify_change,
    concept_diff,
    extract_concepts,
)

__all__ = [
    "ChangeType",
    "ClaimChangeDetector",
    "ClaimTransition",
    "classify_change",
    "concept_diff",
    "extract_concepts",
]
