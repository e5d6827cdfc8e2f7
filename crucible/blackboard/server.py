"""
Blackboard: the single owner of a session's mutable state.

Readers get immutable snapshots. Writers pass a mutation callable to
``apply``, which runs it under the blackboard lock so no reader ever
sees a half-applied update.

The mutable BlackboardState is only reachable inside ``apply``; it
must not be stored or handed to workers.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from ..frontier.pool import FrontierPool
from .records import (
    BlackboardSnapshot,
    CemeteryEntry,
    GraduatedClaim,
    TrajectoryPoint,
    freeze_embedding,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSLATOR_FRAMEWORKS = (
    "physics",
    "information_theory",
    "economics",
    "biology",
    "mathematics",
)


@dataclass
class BlackboardState:
    """Mutable session state. Only touched inside Blackboard.apply."""

    claim: Optional[str]
    support: float
    cycle_count: int = 0
    active_objection: Optional[str] = None
    analogy_of_record: Optional[str] = None
    cemetery: List[CemeteryEntry] = field(default_factory=list)
    graduated: List[GraduatedClaim] = field(default_factory=list)
    trajectory: List[TrajectoryPoint] = field(default_factory=list)
    embedding: Optional[tuple] = None
    translator_frameworks_used: List[str] = field(default_factory=list)
    cost_limit_usd: Optional[float] = None

    def bury(self, cycle_number: int, cause_of_death: str, final_support: float) -> CemeteryEntry:
        """Move the current claim to the cemetery."""
        if self.claim is None:
            raise ValueError("No claim to bury")
        entry = CemeteryEntry(
            claim=self.claim,
            cycle_killed=cycle_number,
            cause_of_death=cause_of_death,
            final_support=final_support,
        )
        self.cemetery.append(entry)
        self._clear_claim(final_support)
        return entry

    def graduate(self, cycle_number: int, final_support: float) -> GraduatedClaim:
        """Move the current claim to the graduated list."""
        if self.claim is None:
            raise ValueError("No claim to graduate")
        entry = GraduatedClaim(
            claim=self.claim,
            cycle_graduated=cycle_number,
            final_support=final_support,
        )
        self.graduated.append(entry)
        self._clear_claim(final_support)
        return entry

    def _clear_claim(self, final_support: float) -> None:
        self.claim = None
        self.support = final_support
        self.active_objection = None
        self.analogy_of_record = None
        self.embedding = None

    def append_trajectory(
        self,
        cycle_number: int,
        embedding: Optional[Sequence[float]],
    ) -> TrajectoryPoint:
        point = TrajectoryPoint(
            cycle_number=cycle_number,
            claim_text=self.claim or "",
            support=self.support,
            embedding=freeze_embedding(embedding),
        )
        self.trajectory.append(point)
        return point


class Blackboard:
    """
    Thread-safe owner of one session's state.

    Args:
        seed_claim: Claim the session starts from
        birth_support: Initial support
        support_floor: Lower bound enforced on install
        support_ceiling: Upper bound enforced on install
        frontier_pool: Pool included in snapshots (created if omitted)
        session_id: Identifier (generated if omitted)
        cost_limit_usd: Optional cost ceiling recorded with the state
    """

    def __init__(
        self,
        seed_claim: Optional[str],
        birth_support: float = 0.5,
        support_floor: float = 0.2,
        support_ceiling: float = 0.9,
        frontier_pool: Optional[FrontierPool] = None,
        session_id: Optional[str] = None,
        cost_limit_usd: Optional[float] = None,
    ):
        if support_floor > support_ceiling:
            raise ValueError("support_floor must not exceed support_ceiling")

        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.support_floor = support_floor
        self.support_ceiling = support_ceiling
        self.frontier_pool = frontier_pool if frontier_pool is not None else FrontierPool()

        seed = seed_claim.strip() if seed_claim else None
        self._state = BlackboardState(
            claim=seed or None,
            support=self._clamp(birth_support),
            cost_limit_usd=cost_limit_usd,
        )
        self._lock = threading.RLock()

        logger.info(f"[BLACKBOARD] Session {self.session_id} created (support={self._state.support})")

    @classmethod
    def from_config(cls, config: Any, seed_claim: Optional[str] = None, **kwargs: Any) -> "Blackboard":
        """Build a blackboard whose thresholds come from a CrucibleConfig."""
        pool = kwargs.pop("frontier_pool", None) or FrontierPool(
            min_sponsors=config.frontier_min_sponsors,
            max_age=config.frontier_max_age,
        )
        return cls(
            seed_claim=seed_claim if seed_claim is not None else config.seed_claim,
            birth_support=config.birth_support,
            support_floor=config.support_floor,
            support_ceiling=config.support_ceiling,
            frontier_pool=pool,
            cost_limit_usd=config.cost_limit_usd,
            **kwargs,
        )

    def _clamp(self, value: float) -> float:
        return max(self.support_floor, min(self.support_ceiling, value))

    def snapshot(self) -> BlackboardSnapshot:
        """Immutable copy of the current state."""
        frontier = tuple(self.frontier_pool.ideas())
        with self._lock:
            state = self._state
            return BlackboardSnapshot(
                session_id=self.session_id,
                claim=state.claim,
                support=state.support,
                cycle_count=state.cycle_count,
                active_objection=state.active_objection,
                analogy_of_record=state.analogy_of_record,
                cemetery=tuple(state.cemetery),
                graduated=tuple(state.graduated),
                trajectory=tuple(state.trajectory),
                embedding=state.embedding,
                frontier=frontier,
                translator_frameworks_used=tuple(state.translator_frameworks_used),
                cost_limit_usd=state.cost_limit_usd,
            )

    def apply(self, mutation: Callable[[BlackboardState], T]) -> T:
        """
        Run a mutation atomically with respect to snapshot reads.

        If the mutation raises, the exception propagates and any partial
        change is rolled back.
        """
        with self._lock:
            backup = _copy_state(self._state)
            try:
                result = mutation(self._state)
            except Exception:
                self._state = backup
                raise
            if not (self.support_floor <= self._state.support <= self.support_ceiling):
                self._state = backup
                raise ValueError("Mutation left support outside [floor, ceiling]")
            return result

    def install_claim(self, claim: str, support: float) -> BlackboardSnapshot:
        """
        Start a new claim, replacing whatever is current.

        Used by the claim replacement policy after a death or graduation.
        """
        claim = (claim or "").strip()
        if not claim:
            raise ValueError("Cannot install an empty claim")

        def _install(state: BlackboardState) -> None:
            state.claim = claim
            state.support = self._clamp(support)
            state.active_objection = None
            state.analogy_of_record = None
            state.embedding = None

        self.apply(_install)
        logger.info(f"[BLACKBOARD] Installed claim at support {self._clamp(support):.2f}: {claim[:80]}")
        return self.snapshot()

    @property
    def has_claim(self) -> bool:
        with self._lock:
            return self._state.claim is not None

    @property
    def support(self) -> float:
        with self._lock:
            return self._state.support

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot().to_dict()


def next_framework(used: Sequence[str]) -> str:
    """First framework not yet used, restarting the rotation when all are used."""
    used = list(used)
    round_length = len(used) % len(TRANSLATOR_FRAMEWORKS)
    current_round = used[len(used) - round_length:] if round_length else []
    for framework in TRANSLATOR_FRAMEWORKS:
        if framework not in current_round:
            return framework
    return TRANSLATOR_FRAMEWORKS[0]


def _copy_state(state: BlackboardState) -> BlackboardState:
    return BlackboardState(
        claim=state.claim,
        support=state.support,
        cycle_count=state.cycle_count,
        active_objection=state.active_objection,
        analogy_of_record=state.analogy_of_record,
        cemetery=list(state.cemetery),
        graduated=list(state.graduated),
        trajectory=list(state.trajectory),
        embedding=state.embedding,
        translator_frameworks_used=list(state.translator_frameworks_used),
        cost_limit_usd=state.cost_limit_usd,
    )
