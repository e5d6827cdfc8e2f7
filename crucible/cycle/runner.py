"""
Cycle Runner for Crucible.

Sequential driver for one reasoning session. Each cycle:

1. Make sure there is a claim (replacement policy if not)
2. Snapshot the blackboard and schedule roles
3. Select a frontier pivot if the perturber was scheduled
4. Run workers concurrently under the per-worker deadline
5. Embed the candidate claim and aggregate atomically
6. Feed frontier proposals, age the pool
7. Persist trajectory point and session row
8. Record a claim transition against the previous trajectory point
9. Replace the claim after a death or graduation
10. Publish cycle_complete / claim_changed

Cycle N+1 is never scheduled before cycle N has been aggregated and
persisted. A stop request (including the cost governor's) takes effect
between cycles; running workers are never preempted.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..agents.registry import get_behavior
from ..agents.roles import Role
from ..blackboard.records import TrajectoryPoint
from ..blackboard.server import Blackboard
from ..config import CrucibleConfig
from ..costs.governor import CostEntry, CostGovernor
from ..embedding.novelty import novelty_bonus
from ..evolution.transitions import ClaimChangeDetector, ClaimTransition
from ..notifications.bus import EventType, NotificationBus
from ..persistence.store import InMemoryStore, SessionStore, safe_write
from .aggregator import AggregationResult, ConfidenceAggregator, Transition
from .orchestrator import OutcomeKind, TaskOrchestrator, Validator, WorkerOutcome
from .resurrection import Replacement, policy_from_config
from .scheduler import CycleScheduler

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    """Why a session stopped."""
    MAX_CYCLES = "max_cycles"
    COST_LIMIT = "cost_limit_exceeded"
    NO_CLAIM = "no_claim"
    REQUESTED = "requested"
    ERROR = "error"


class RunnerStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class CycleReport:
    """What happened in one cycle."""

    cycle_number: int
    roles: Tuple[Role, ...]
    outcomes: Tuple[WorkerOutcome, ...]
    aggregation: AggregationResult
    pivot_idea_id: Optional[str] = None
    replacement: Optional[Replacement] = None
    claim_transition: Optional[ClaimTransition] = None
    duration_s: float = 0.0

    @property
    def timeouts(self) -> List[Role]:
        return [o.role for o in self.outcomes if o.kind == OutcomeKind.TIMEOUT]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_number": self.cycle_number,
            "roles": [r.value for r in self.roles],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "aggregation": self.aggregation.to_dict(),
            "pivot_idea_id": self.pivot_idea_id,
            "replacement": self.replacement.claim if self.replacement else None,
            "claim_transition": self.claim_transition.to_dict() if self.claim_transition else None,
            "duration_s": self.duration_s,
        }


@dataclass
class SessionSummary:
    """Final state of a finished session."""

    session_id: str
    status: RunnerStatus
    stop_reason: Optional[StopReason]
    cycles_run: int
    final_state: Dict[str, Any] = field(default_factory=dict)
    costs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "cycles_run": self.cycles_run,
            "final_state": self.final_state,
            "costs": self.costs,
        }


class CycleRunner:
    """
    Drives one session from seed claim to stop.

    Args:
        config: Session configuration (validated on construction)
        client: Generation client (``async generate(role, messages)``)
        embedder: Object with ``async embed(text)`` (optional)
        store: Persistence backend (in-memory if omitted)
        bus: Notification bus (private bus if omitted)
        seed_claim: Claim to start from (defaults to config.seed_claim)
        session_id: Session identifier (generated if omitted)
        rng: Random source shared by scheduler, frontier draws and pivots
        validators: Per-role response validator overrides
    """

    def __init__(
        self,
        config: CrucibleConfig,
        client: Any,
        embedder: Any = None,
        store: Optional[SessionStore] = None,
        bus: Optional[NotificationBus] = None,
        seed_claim: Optional[str] = None,
        session_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
        validators: Optional[Dict[Role, Validator]] = None,
    ):
        config.validate_or_raise()
        self.config = config
        self.rng = rng or random.Random(config.random_seed)
        self.store = store if store is not None else InMemoryStore()
        self.bus = bus if bus is not None else NotificationBus()
        self.embedder = embedder

        self.blackboard = Blackboard.from_config(config, seed_claim=seed_claim, session_id=session_id)
        if not self.blackboard.has_claim:
            raise ValueError("A session needs a seed claim")

        self.session_id = self.blackboard.session_id
        self.seed_claim = self.blackboard.snapshot().claim
        self.frontier_pool = self.blackboard.frontier_pool

        self.cost_governor = CostGovernor(
            limit_usd=config.cost_limit_usd,
            on_limit_reached=self._on_cost_limit,
            on_entry=self._on_cost_entry,
        )
        self.scheduler = CycleScheduler.from_config(config, self.frontier_pool, self.rng)
        self.orchestrator = TaskOrchestrator(
            client=client,
            session_id=self.session_id,
            cost_governor=self.cost_governor,
            store=self.store,
            worker_timeout_s=config.worker_timeout_s,
            cancel_on_timeout=config.cancel_on_timeout,
            validators=validators,
        )
        self.aggregator = ConfidenceAggregator.from_config(config)
        self.policy = policy_from_config(config)
        self.change_detector = ClaimChangeDetector.from_config(config)

        self.cycle_number = 0
        self.reports: List[CycleReport] = []
        self.transitions: List[ClaimTransition] = []
        self.status = RunnerStatus.PENDING
        self._stop_reason: Optional[StopReason] = None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    @property
    def stop_reason(self) -> Optional[StopReason]:
        return self._stop_reason

    @property
    def stop_requested(self) -> bool:
        return self._stop_reason is not None

    def request_stop(self, reason: StopReason = StopReason.REQUESTED) -> None:
        """Prevent further cycles. The first reason given wins."""
        if self._stop_reason is None:
            self._stop_reason = reason
            logger.info(f"[CYCLE] Session {self.session_id} stop requested: {reason.value}")

    def _on_cost_limit(self, total_usd: float, limit_usd: float) -> None:
        self.request_stop(StopReason.COST_LIMIT)

    def _on_cost_entry(self, entry: CostEntry, total_usd: float) -> None:
        self.bus.emit(
            EventType.COST_RECORDED,
            self.session_id,
            cycle_number=entry.cycle_number,
            role=entry.role,
            model=entry.model,
            cost_usd=entry.cost_usd,
            input_tokens=entry.input_tokens,
            output_tokens=entry.output_tokens,
            total_usd=total_usd,
        )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self) -> SessionSummary:
        """Run cycles until a stop condition is met."""
        self.status = RunnerStatus.RUNNING
        self._save_row()
        logger.info(f"[CYCLE] Session {self.session_id} started (max_cycles={self.config.max_cycles})")

        try:
            while not self.stop_requested:
                if self.cycle_number >= self.config.max_cycles:
                    self.request_stop(StopReason.MAX_CYCLES)
                    break
                await self.run_cycle()
        except Exception as e:
            logger.exception(f"[CYCLE] Session {self.session_id} failed: {e}")
            self.status = RunnerStatus.FAILED
            self.request_stop(StopReason.ERROR)
            self._finish()
            raise

        self.status = (
            RunnerStatus.COMPLETED
            if self._stop_reason in (StopReason.MAX_CYCLES, StopReason.NO_CLAIM)
            else RunnerStatus.STOPPED
        )
        return self._finish()

    def _finish(self) -> SessionSummary:
        summary = SessionSummary(
            session_id=self.session_id,
            status=self.status,
            stop_reason=self._stop_reason,
            cycles_run=self.cycle_number,
            final_state=self.blackboard.to_dict(),
            costs=self.cost_governor.summary(),
        )
        self._save_row()
        self.bus.emit(
            EventType.SESSION_STOPPED,
            self.session_id,
            status=self.status.value,
            stop_reason=self._stop_reason.value if self._stop_reason else None,
            cycles_run=self.cycle_number,
        )
        logger.info(
            f"[CYCLE] Session {self.session_id} {self.status.value} after "
            f"{self.cycle_number} cycles ({summary.stop_reason.value if summary.stop_reason else '-'})"
        )
        return summary

    async def run_cycle(self) -> Optional[CycleReport]:
        """
        Run exactly one cycle.

        Returns:
            The cycle report, or None if no claim was available
        """
        if not self.blackboard.has_claim:
            if self._replace_claim() is None:
                self.request_stop(StopReason.NO_CLAIM)
                return None

        started = time.monotonic()
        n = self.cycle_number + 1
        self.cycle_number = n
        self.bus.emit(EventType.CYCLE_STARTED, self.session_id, cycle_number=n)

        snapshot = self.blackboard.snapshot()
        roles = set(self.scheduler.roles_for_cycle(n, snapshot))

        pivot = None
        if Role.PERTURBER in roles:
            pivot = self.frontier_pool.select_weighted(self.rng)
            if pivot is None:
                roles.discard(Role.PERTURBER)
            else:
                snapshot = snapshot.with_pivot(pivot)

        outcomes = await self.orchestrator.run_workers(roles, snapshot, n)

        candidate = self.aggregator.next_claim(snapshot.claim, outcomes)
        embedding = await self._embed(candidate)
        bonus = 0.0
        if self.config.novelty_bonus_enabled:
            bonus = novelty_bonus(
                embedding,
                [p.embedding for p in snapshot.trajectory],
                max_bonus=self.config.max_novelty_bonus,
                space_diameter=self.config.space_diameter,
            )

        result = self.aggregator.apply(self.blackboard, outcomes, n, embedding, bonus)

        self._sponsor_frontier(outcomes, result)
        self.frontier_pool.age()
        self._persist(result)
        transition = self._record_claim_change(snapshot.trajectory, outcomes, result)

        replacement = None
        if result.transition != Transition.SURVIVED:
            replacement = self._replace_claim()
            if replacement is None:
                self.request_stop(StopReason.NO_CLAIM)

        report = CycleReport(
            cycle_number=n,
            roles=tuple(sorted(roles, key=lambda r: r.value)),
            outcomes=tuple(outcomes),
            aggregation=result,
            pivot_idea_id=pivot.idea_id if pivot else None,
            replacement=replacement,
            claim_transition=transition,
            duration_s=time.monotonic() - started,
        )
        self.reports.append(report)
        self._publish(report)
        return report

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _embed(self, text: Optional[str]) -> Optional[Any]:
        if self.embedder is None or not text:
            return None
        try:
            return await self.embedder.embed(text)
        except Exception as e:
            logger.warning(f"[CYCLE] Embedding failed, recording point without one: {e}")
            return None

    def _replace_claim(self) -> Optional[Replacement]:
        replacement = self.policy.replace(self.blackboard, self.frontier_pool, self.rng)
        if replacement is not None:
            logger.info(f"[CYCLE] New claim from {replacement.source}: {replacement.claim[:80]}")
        return replacement

    def _sponsor_frontier(self, outcomes: List[WorkerOutcome], result: AggregationResult) -> None:
        accepted = set(result.accepted_roles)
        for outcome in outcomes:
            if outcome.role not in accepted:
                continue
            proposal = get_behavior(outcome.role).frontier_proposal(outcome.output)
            if proposal:
                self.frontier_pool.add_idea(proposal, sponsor_id=outcome.role.value)

    def _persist(self, result: AggregationResult) -> None:
        if result.trajectory_point is not None:
            safe_write(
                f"trajectory point {result.cycle_number}",
                self.store.write_trajectory_point,
                self.session_id,
                result.trajectory_point,
            )
        if result.archive_entry:
            safe_write(
                f"{result.transition.value} archive entry",
                self.store.write_archive_entry,
                self.session_id,
                result.transition.value,
                result.archive_entry,
            )
        self._save_row()

    def _record_claim_change(
        self,
        trajectory: Tuple[TrajectoryPoint, ...],
        outcomes: List[WorkerOutcome],
        result: AggregationResult,
    ) -> Optional[ClaimTransition]:
        # Only consecutive trajectory points are compared; a cycle that
        # died or graduated has no point of its own
        if result.trajectory_point is None or not trajectory:
            return None

        transition = self.change_detector.detect(
            trajectory[-1],
            result.trajectory_point,
            trigger_agent=_trigger_agent(outcomes, result),
        )
        if transition is None:
            return None

        self.transitions.append(transition)
        safe_write(
            f"claim transition {transition.from_cycle}->{transition.to_cycle}",
            self.store.write_claim_transition,
            self.session_id,
            transition.to_dict(),
        )
        return transition

    def _save_row(self) -> None:
        row = {
            "session_id": self.session_id,
            "status": self.status.value,
            "seed_claim": self.seed_claim,
            "stop_reason": self._stop_reason.value if self._stop_reason else None,
            "cycles_run": self.cycle_number,
            "config": self.config.to_dict(),
            "snapshot": self.blackboard.to_dict(),
            "cost_total_usd": self.cost_governor.total_usd,
        }
        safe_write("session row", self.store.save_session_row, self.session_id, row)

    def _publish(self, report: CycleReport) -> None:
        result = report.aggregation
        self.bus.emit(
            EventType.CYCLE_COMPLETE,
            self.session_id,
            cycle_number=report.cycle_number,
            roles=[r.value for r in report.roles],
            transition=result.transition.value,
            support=result.new_support,
            delta_sum=result.delta_sum,
            timeouts=[r.value for r in report.timeouts],
            duration_s=report.duration_s,
        )
        claim_now = self.blackboard.snapshot().claim
        change = report.claim_transition
        if claim_now != result.claim_before or change is not None:
            self.bus.emit(
                EventType.CLAIM_CHANGED,
                self.session_id,
                cycle_number=report.cycle_number,
                previous_claim=result.claim_before,
                claim=claim_now,
                transition=result.transition.value,
                change=change.to_dict() if change else None,
            )


def _trigger_agent(outcomes: List[WorkerOutcome], result: AggregationResult) -> str:
    """Accepted role with the largest delta, ties broken by role name."""
    accepted = set(result.accepted_roles)
    candidates = [o for o in outcomes if o.valid and o.role in accepted]
    if not candidates:
        return "unknown"
    best = min(candidates, key=lambda o: (-o.delta, o.role.value))
    return best.role.value
