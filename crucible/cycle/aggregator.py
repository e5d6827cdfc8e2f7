"""
Confidence Aggregator for Crucible.

Merges one cycle's worker outcomes into the claim's support and decides
its fate:

    new_support = clamp(support + sum(accepted valid deltas) - decay + bonus,
                        floor, ceiling)

    new_support <= death_threshold      -> cemetery
    new_support >= graduation_threshold -> graduated
    otherwise                           -> survive, append trajectory point

Before summing, an explorer proposal is rejected when a valid critic in
the same cycle targets exactly the proposed claim.

The whole update runs inside one Blackboard.apply call.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..agents.registry import get_behavior
from ..agents.roles import Role
from ..blackboard.records import TrajectoryPoint, freeze_embedding
from ..blackboard.server import Blackboard, BlackboardState
from .orchestrator import WorkerOutcome

logger = logging.getLogger(__name__)

MIN_MATCH_LENGTH = 5


class Transition(str, Enum):
    """What happened to the claim this cycle."""
    SURVIVED = "survived"
    DIED = "died"
    GRADUATED = "graduated"


@dataclass(frozen=True)
class AggregationResult:
    """Outcome of aggregating one cycle."""

    cycle_number: int
    transition: Transition
    previous_support: float
    raw_support: float
    new_support: float
    delta_sum: float
    novelty_bonus: float
    claim_before: Optional[str]
    claim_after: Optional[str]
    accepted_roles: Tuple[Role, ...] = ()
    rejected_roles: Tuple[Role, ...] = ()
    cause_of_death: Optional[str] = None
    trajectory_point: Optional[TrajectoryPoint] = None
    archive_entry: Dict[str, Any] = field(default_factory=dict)

    @property
    def claim_changed(self) -> bool:
        return self.claim_before != self.claim_after

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_number": self.cycle_number,
            "transition": self.transition.value,
            "previous_support": self.previous_support,
            "raw_support": self.raw_support,
            "new_support": self.new_support,
            "delta_sum": self.delta_sum,
            "novelty_bonus": self.novelty_bonus,
            "claim_before": self.claim_before,
            "claim_after": self.claim_after,
            "accepted_roles": [r.value for r in self.accepted_roles],
            "rejected_roles": [r.value for r in self.rejected_roles],
            "cause_of_death": self.cause_of_death,
        }


def _normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _critic_targets(outcomes: Sequence[WorkerOutcome]) -> List[str]:
    return [
        _normalize(o.output.get("target_premise"))
        for o in outcomes
        if o.role == Role.CRITIC and o.valid
    ]


class ConfidenceAggregator:
    """
    Support arithmetic, arbitration and lifecycle transitions.

    Args:
        death_threshold: Claim dies at or below this support
        graduation_threshold: Claim graduates at or above this support
        decay_per_cycle: Support lost every cycle
        support_floor: Lower clamp
        support_ceiling: Upper clamp
    """

    def __init__(
        self,
        death_threshold: float = 0.2,
        graduation_threshold: float = 0.85,
        decay_per_cycle: float = 0.02,
        support_floor: float = 0.2,
        support_ceiling: float = 0.9,
    ):
        self.death_threshold = death_threshold
        self.graduation_threshold = graduation_threshold
        self.decay_per_cycle = decay_per_cycle
        self.support_floor = support_floor
        self.support_ceiling = support_ceiling

    @classmethod
    def from_config(cls, config: Any) -> "ConfidenceAggregator":
        return cls(
            death_threshold=config.death_threshold,
            graduation_threshold=config.graduation_threshold,
            decay_per_cycle=config.decay_per_cycle,
            support_floor=config.support_floor,
            support_ceiling=config.support_ceiling,
        )

    # ------------------------------------------------------------------
    # Pure helpers
    # ------------------------------------------------------------------

    def clamp(self, value: float) -> float:
        return max(self.support_floor, min(self.support_ceiling, value))

    def arbitrate(
        self,
        outcomes: Sequence[WorkerOutcome],
    ) -> Tuple[List[WorkerOutcome], List[WorkerOutcome]]:
        """
        Split valid outcomes into accepted and rejected.

        Invalid outcomes appear in neither list.
        """
        targets = [t for t in _critic_targets(outcomes) if len(t) >= MIN_MATCH_LENGTH]

        accepted, rejected = [], []
        for outcome in outcomes:
            if not outcome.valid:
                continue
            if outcome.role == Role.EXPLORER:
                proposal = _normalize(outcome.output.get("new_claim"))
                if len(proposal) >= MIN_MATCH_LENGTH and proposal in targets:
                    logger.info("[AGG] Explorer proposal rejected: critic targeted it directly")
                    rejected.append(outcome)
                    continue
            accepted.append(outcome)
        return accepted, rejected

    def compute_support(
        self,
        current_support: float,
        outcomes: Sequence[WorkerOutcome],
        novelty_bonus: float = 0.0,
    ) -> Tuple[float, float, float]:
        """
        New support for a set of outcomes.

        Returns:
            (delta_sum, raw_support, clamped_support)
        """
        accepted, _ = self.arbitrate(outcomes)
        # Sorted so the float sum does not depend on completion order
        delta_sum = sum(sorted(o.delta for o in accepted))
        raw = current_support + delta_sum - self.decay_per_cycle + novelty_bonus
        return delta_sum, raw, self.clamp(raw)

    def next_claim(self, current_claim: Optional[str], outcomes: Sequence[WorkerOutcome]) -> Optional[str]:
        """Claim text after applying an accepted explorer proposal."""
        accepted, _ = self.arbitrate(outcomes)
        for outcome in accepted:
            if outcome.role == Role.EXPLORER and outcome.output.get("new_claim"):
                return outcome.output["new_claim"]
        return current_claim

    def cause_of_death(self, outcomes: Sequence[WorkerOutcome]) -> str:
        """Summary of the most damaging valid contribution this cycle."""
        negative = [o for o in outcomes if o.valid and o.delta < 0]
        if not negative:
            return "decay: support eroded to the death threshold"

        worst = min(negative, key=lambda o: (o.delta, o.role.value))
        detail = worst.error or get_behavior(worst.role).summarize(worst.output)
        return f"{worst.role.value} ({worst.delta:+.2f}): {detail}" if detail else worst.role.value

    # ------------------------------------------------------------------
    # Blackboard update
    # ------------------------------------------------------------------

    def apply(
        self,
        blackboard: Blackboard,
        outcomes: Sequence[WorkerOutcome],
        cycle_number: int,
        embedding: Optional[Sequence[float]] = None,
        novelty_bonus: float = 0.0,
    ) -> AggregationResult:
        """
        Apply a cycle's outcomes to the blackboard atomically.

        Raises:
            ValueError: If the blackboard has no claim
        """
        accepted, rejected = self.arbitrate(outcomes)

        def _mutate(state: BlackboardState) -> AggregationResult:
            if state.claim is None:
                raise ValueError("Cannot aggregate a cycle without a claim")

            previous = state.support
            claim_before = state.claim
            delta_sum, raw, new_support = self.compute_support(previous, outcomes, novelty_bonus)

            if new_support <= self.death_threshold:
                cause = self.cause_of_death(outcomes)
                entry = state.bury(cycle_number, cause, new_support)
                return AggregationResult(
                    cycle_number=cycle_number,
                    transition=Transition.DIED,
                    previous_support=previous,
                    raw_support=raw,
                    new_support=new_support,
                    delta_sum=delta_sum,
                    novelty_bonus=novelty_bonus,
                    claim_before=claim_before,
                    claim_after=None,
                    accepted_roles=tuple(o.role for o in accepted),
                    rejected_roles=tuple(o.role for o in rejected),
                    cause_of_death=cause,
                    archive_entry=entry.to_dict(),
                )

            if new_support >= self.graduation_threshold:
                entry = state.graduate(cycle_number, new_support)
                return AggregationResult(
                    cycle_number=cycle_number,
                    transition=Transition.GRADUATED,
                    previous_support=previous,
                    raw_support=raw,
                    new_support=new_support,
                    delta_sum=delta_sum,
                    novelty_bonus=novelty_bonus,
                    claim_before=claim_before,
                    claim_after=None,
                    accepted_roles=tuple(o.role for o in accepted),
                    rejected_roles=tuple(o.role for o in rejected),
                    archive_entry=entry.to_dict(),
                )

            state.support = new_support
            state.cycle_count += 1
            self._apply_contributions(state, accepted)
            state.embedding = freeze_embedding(embedding)
            point = state.append_trajectory(cycle_number, embedding)

            return AggregationResult(
                cycle_number=cycle_number,
                transition=Transition.SURVIVED,
                previous_support=previous,
                raw_support=raw,
                new_support=new_support,
                delta_sum=delta_sum,
                novelty_bonus=novelty_bonus,
                claim_before=claim_before,
                claim_after=state.claim,
                accepted_roles=tuple(o.role for o in accepted),
                rejected_roles=tuple(o.role for o in rejected),
                trajectory_point=point,
            )

        result = blackboard.apply(_mutate)
        logger.info(
            f"[AGG] Cycle {cycle_number}: {result.previous_support:.2f} -> {result.new_support:.2f} "
            f"(deltas {result.delta_sum:+.2f}, decay -{self.decay_per_cycle:.2f}) "
            f"=> {result.transition.value}"
        )
        return result

    def _apply_contributions(self, state: BlackboardState, accepted: Sequence[WorkerOutcome]) -> None:
        for outcome in accepted:
            if outcome.role == Role.EXPLORER and outcome.output.get("new_claim"):
                state.claim = outcome.output["new_claim"]
            elif outcome.role == Role.CRITIC and outcome.output.get("objection"):
                state.active_objection = outcome.output["objection"]
            elif outcome.role == Role.CONNECTOR and outcome.output.get("analogy"):
                state.analogy_of_record = outcome.output["analogy"]
            elif outcome.role == Role.TRANSLATOR and outcome.output.get("target_framework"):
                state.translator_frameworks_used.append(outcome.output["target_framework"])
