"""
Blackboard Records for Crucible.

Immutable records describing session state:
- TrajectoryPoint: one surviving cycle's (claim, support, embedding)
- CemeteryEntry: a claim that died
- GraduatedClaim: a claim that graduated
- BlackboardSnapshot: point-in-time copy of the whole blackboard

All records are frozen dataclasses with tuple fields, so a snapshot can
be handed to concurrently running workers without copying.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from ..frontier.pool import FrontierIdea


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def freeze_embedding(embedding: Optional[Sequence[float]]) -> Optional[Tuple[float, ...]]:
    """Copy an embedding into an immutable tuple (None stays None)."""
    if embedding is None:
        return None
    try:
        return tuple(float(x) for x in embedding)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class TrajectoryPoint:
    """Where the claim stood after one surviving cycle."""

    cycle_number: int
    claim_text: str
    support: float
    embedding: Optional[Tuple[float, ...]] = None
    recorded_at: str = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_number": self.cycle_number,
            "claim_text": self.claim_text,
            "support": self.support,
            "embedding": list(self.embedding) if self.embedding is not None else None,
            "recorded_at": self.recorded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrajectoryPoint":
        return cls(
            cycle_number=int(data["cycle_number"]),
            claim_text=data["claim_text"],
            support=float(data["support"]),
            embedding=freeze_embedding(data.get("embedding")),
            recorded_at=data.get("recorded_at") or _utcnow(),
        )


@dataclass(frozen=True)
class CemeteryEntry:
    """A claim whose support fell to the death threshold."""

    claim: str
    cycle_killed: int
    cause_of_death: str
    final_support: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claim": self.claim,
            "cycle_killed": self.cycle_killed,
            "cause_of_death": self.cause_of_death,
            "final_support": self.final_support,
        }


@dataclass(frozen=True)
class GraduatedClaim:
    """A claim whose support reached the graduation threshold."""

    claim: str
    cycle_graduated: int
    final_support: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claim": self.claim,
            "cycle_graduated": self.cycle_graduated,
            "final_support": self.final_support,
        }


@dataclass(frozen=True)
class BlackboardSnapshot:
    """
    Immutable copy of session state handed to the scheduler and workers.

    ``pivot_idea`` is only set on the snapshot given to a cycle in which
    the perturber was scheduled and a frontier idea was selected.
    """

    session_id: str
    claim: Optional[str]
    support: float
    cycle_count: int
    active_objection: Optional[str] = None
    analogy_of_record: Optional[str] = None
    cemetery: Tuple[CemeteryEntry, ...] = ()
    graduated: Tuple[GraduatedClaim, ...] = ()
    trajectory: Tuple[TrajectoryPoint, ...] = ()
    embedding: Optional[Tuple[float, ...]] = None
    frontier: Tuple[FrontierIdea, ...] = ()
    translator_frameworks_used: Tuple[str, ...] = ()
    cost_limit_usd: Optional[float] = None
    pivot_idea: Optional[FrontierIdea] = None
    taken_at: str = field(default_factory=_utcnow)

    def with_pivot(self, idea: Optional[FrontierIdea]) -> "BlackboardSnapshot":
        return replace(self, pivot_idea=idea)

    def recent_trajectory(self, count: int) -> Tuple[TrajectoryPoint, ...]:
        if count <= 0:
            return ()
        return self.trajectory[-count:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "claim": self.claim,
            "support": self.support,
            "cycle_count": self.cycle_count,
            "active_objection": self.active_objection,
            "analogy_of_record": self.analogy_of_record,
            "cemetery": [c.to_dict() for c in self.cemetery],
            "graduated": [g.to_dict() for g in self.graduated],
            "trajectory_length": len(self.trajectory),
            "frontier": [i.to_dict() for i in self.frontier],
            "translator_frameworks_used": list(self.translator_frameworks_used),
            "cost_limit_usd": self.cost_limit_usd,
            "taken_at": self.taken_at,
        }
