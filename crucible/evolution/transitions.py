"""
Claim Change Detection for Crucible.

Compares consecutive trajectory points and records a ClaimTransition when
the claim meaningfully changed between them.

A change is meaningful when the claim text differs and, if both points
carry embeddings, their cosine similarity is below the change threshold.
Each transition is classified as one of:

- pivot: similarity below the pivot threshold, or no shared concepts
- expansion: concepts were only added
- contraction: concepts were only removed
- refinement: anything else (reworded, or concepts swapped)

Concept diffs are word-level: lowercased content words, stop words
dropped, first occurrence order kept.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..blackboard.records import TrajectoryPoint
from ..embedding.similarity import as_vector, cosine_similarity

logger = logging.getLogger(__name__)

MAX_DIFF_ITEMS = 5

_WORD = re.compile(r"[a-z0-9]+(?:['-][a-z0-9]+)*")

_STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "been", "but", "by", "can", "do",
    "does", "for", "from", "has", "have", "if", "in", "into", "is", "it", "its",
    "more", "most", "no", "not", "of", "on", "or", "so", "such", "than", "that",
    "the", "their", "then", "there", "these", "they", "this", "those", "to",
    "was", "were", "when", "which", "while", "will", "with", "without",
})


class ChangeType(str, Enum):
    """How a claim changed between two trajectory points."""
    REFINEMENT = "refinement"
    PIVOT = "pivot"
    EXPANSION = "expansion"
    CONTRACTION = "contraction"


@dataclass(frozen=True)
class ClaimTransition:
    """A meaningful claim change between two surviving cycles."""

    from_cycle: int
    to_cycle: int
    previous_claim: str
    new_claim: str
    trigger_agent: str
    change_type: ChangeType
    similarity: Optional[float] = None
    diff_additions: Tuple[str, ...] = ()
    diff_removals: Tuple[str, ...] = ()
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_cycle": self.from_cycle,
            "to_cycle": self.to_cycle,
            "previous_claim": self.previous_claim,
            "new_claim": self.new_claim,
            "trigger_agent": self.trigger_agent,
            "change_type": self.change_type.value,
            "similarity": self.similarity,
            "diff_additions": list(self.diff_additions),
            "diff_removals": list(self.diff_removals),
            "recorded_at": self.recorded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimTransition":
        return cls(
            from_cycle=int(data["from_cycle"]),
            to_cycle=int(data["to_cycle"]),
            previous_claim=data["previous_claim"],
            new_claim=data["new_claim"],
            trigger_agent=data.get("trigger_agent") or "unknown",
            change_type=ChangeType(data.get("change_type", ChangeType.REFINEMENT.value)),
            similarity=data.get("similarity"),
            diff_additions=tuple(data.get("diff_additions") or ()),
            diff_removals=tuple(data.get("diff_removals") or ()),
            recorded_at=data.get("recorded_at") or datetime.now(timezone.utc).isoformat(),
        )


def extract_concepts(text: str) -> List[str]:
    """Content words of a claim in first-occurrence order."""
    seen = []
    for word in _WORD.findall((text or "").lower()):
        if word in _STOP_WORDS or word in seen:
            continue
        seen.append(word)
    return seen


def concept_diff(
    previous_claim: str,
    new_claim: str,
    max_items: int = MAX_DIFF_ITEMS,
) -> Tuple[List[str], List[str]]:
    """
    Concepts added to and removed from a claim.

    Returns:
        (additions, removals), each capped at max_items
    """
    before = extract_concepts(previous_claim)
    after = extract_concepts(new_claim)
    additions = [c for c in after if c not in before]
    removals = [c for c in before if c not in after]
    return additions[:max_items], removals[:max_items]


def classify_change(
    previous_claim: str,
    new_claim: str,
    similarity: Optional[float] = None,
    pivot_threshold: float = 0.6,
) -> ChangeType:
    """Classify a change from the embedding similarity and the concept diff."""
    if similarity is not None and similarity < pivot_threshold:
        return ChangeType.PIVOT

    before = set(extract_concepts(previous_claim))
    after = set(extract_concepts(new_claim))
    if similarity is None and before and after and not before & after:
        return ChangeType.PIVOT

    added = after - before
    removed = before - after
    if added and not removed:
        return ChangeType.EXPANSION
    if removed and not added:
        return ChangeType.CONTRACTION
    return ChangeType.REFINEMENT


def _normalize(text: Optional[str]) -> str:
    return " ".join((text or "").lower().split())


class ClaimChangeDetector:
    """
    Records transitions between consecutive trajectory points.

    Args:
        similarity_threshold: Embeddings at least this similar mean no change
        pivot_threshold: Similarity below this classifies as a pivot
    """

    def __init__(self, similarity_threshold: float = 0.95, pivot_threshold: float = 0.6):
        self.similarity_threshold = similarity_threshold
        self.pivot_threshold = pivot_threshold

    @classmethod
    def from_config(cls, config: Any) -> "ClaimChangeDetector":
        return cls(
            similarity_threshold=config.change_similarity_threshold,
            pivot_threshold=config.pivot_similarity_threshold,
        )

    def similarity(self, previous: TrajectoryPoint, current: TrajectoryPoint) -> Optional[float]:
        """Cosine similarity of two points, None unless both embeddings are usable."""
        va = as_vector(previous.embedding)
        vb = as_vector(current.embedding)
        if va is None or vb is None or va.shape != vb.shape:
            return None
        return cosine_similarity(va, vb)

    def detect(
        self,
        previous: TrajectoryPoint,
        current: TrajectoryPoint,
        trigger_agent: str = "unknown",
    ) -> Optional[ClaimTransition]:
        """
        Compare two consecutive trajectory points.

        Returns:
            The transition, or None when the claim did not meaningfully change
        """
        if _normalize(previous.claim_text) == _normalize(current.claim_text):
            return None

        similarity = self.similarity(previous, current)
        if similarity is not None and similarity >= self.similarity_threshold:
            logger.debug(
                f"[EVOLUTION] Cycle {current.cycle_number}: reworded claim kept "
                f"(similarity {similarity:.3f})"
            )
            return None

        additions, removals = concept_diff(previous.claim_text, current.claim_text)
        change_type = classify_change(
            previous.claim_text,
            current.claim_text,
            similarity,
            self.pivot_threshold,
        )
        transition = ClaimTransition(
            from_cycle=previous.cycle_number,
            to_cycle=current.cycle_number,
            previous_claim=previous.claim_text,
            new_claim=current.claim_text,
            trigger_agent=trigger_agent,
            change_type=change_type,
            similarity=similarity,
            diff_additions=tuple(additions),
            diff_removals=tuple(removals),
        )
        logger.info(
            f"[EVOLUTION] Cycle {previous.cycle_number} -> {current.cycle_number}: "
            f"{change_type.value} by {trigger_agent}"
        )
        return transition
