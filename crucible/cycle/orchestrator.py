"""
Task Orchestrator for Crucible.

Runs one concurrent worker per scheduled role and collects their
outcomes for the aggregator.

Each worker gets the role, one immutable snapshot and the cycle number.
Its pipeline is: build request -> generate -> report cost -> validate ->
delta -> persist contribution.

Isolation rules:
- A worker past the deadline is abandoned; its outcome is a timeout with
  delta 0 and any result it produces later is ignored
- A worker that raises is converted to a crashed outcome; siblings and
  the cycle driver are unaffected
- No quorum: whatever came back is passed on
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..agents.base import ParsedResponse
from ..agents.registry import get_behavior
from ..agents.roles import Role
from ..blackboard.records import BlackboardSnapshot
from ..costs.governor import CostEntry, CostGovernor
from ..llm.client import ModelInvocationError
from ..persistence.store import SessionStore, safe_write

logger = logging.getLogger(__name__)

Validator = Callable[[str], ParsedResponse]


class OutcomeKind(str, Enum):
    """How a worker finished."""
    OK = "ok"
    INVALID = "invalid"
    TIMEOUT = "timeout"
    CRASHED = "crashed"
    GENERATION_FAILED = "generation_failed"


@dataclass(frozen=True)
class WorkerOutcome:
    """One worker's contribution to a cycle."""

    role: Role
    valid: bool
    delta: float
    kind: OutcomeKind
    error: Optional[str] = None
    model: Optional[str] = None
    output: Dict[str, Any] = field(default_factory=dict)
    duration_s: float = 0.0

    @property
    def effective_delta(self) -> float:
        return self.delta if self.valid else 0.0

    @classmethod
    def timed_out(cls, role: Role, timeout_s: float) -> "WorkerOutcome":
        return cls(
            role=role,
            valid=False,
            delta=0.0,
            kind=OutcomeKind.TIMEOUT,
            error=f"timeout: no response within {timeout_s:g}s",
            duration_s=timeout_s,
        )

    @classmethod
    def crashed(cls, role: Role, error: BaseException, duration_s: float = 0.0) -> "WorkerOutcome":
        return cls(
            role=role,
            valid=False,
            delta=0.0,
            kind=OutcomeKind.CRASHED,
            error=f"crashed: {type(error).__name__}: {error}",
            duration_s=duration_s,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "valid": self.valid,
            "delta": self.delta,
            "kind": self.kind.value,
            "error": self.error,
            "model": self.model,
            "output": self.output,
            "duration_s": self.duration_s,
        }


class TaskOrchestrator:
    """
    Concurrent worker runner with per-worker deadlines.

    Args:
        client: Generation client exposing ``async generate(role, messages)``
        session_id: Session the workers belong to
        cost_governor: Receives one cost entry per completed generation call
        store: Receives one contribution per worker
        worker_timeout_s: Deadline shared by all workers of a cycle
        cancel_on_timeout: Cancel late workers (True) or leave them running
            and ignore their results (False)
        validators: Per-role replacements for the default response parsers
    """

    def __init__(
        self,
        client: Any,
        session_id: str,
        cost_governor: Optional[CostGovernor] = None,
        store: Optional[SessionStore] = None,
        worker_timeout_s: float = 60.0,
        cancel_on_timeout: bool = True,
        validators: Optional[Dict[Role, Validator]] = None,
    ):
        self.client = client
        self.session_id = session_id
        self.cost_governor = cost_governor
        self.store = store
        self.worker_timeout_s = worker_timeout_s
        self.cancel_on_timeout = cancel_on_timeout
        self.validators: Dict[Role, Validator] = dict(validators or {})
        self._abandoned: Set[asyncio.Task] = set()

    @property
    def abandoned_count(self) -> int:
        """Late workers still running (only non-zero without cancellation)."""
        return len(self._abandoned)

    async def run_workers(
        self,
        roles: Iterable[Role],
        snapshot: BlackboardSnapshot,
        cycle_number: int,
    ) -> List[WorkerOutcome]:
        """
        Run one worker per role and wait for all of them or the deadline.

        Returns:
            One outcome per role, sorted by role name
        """
        ordered = sorted(set(roles), key=lambda r: r.value)
        if not ordered:
            return []

        tasks: Dict[asyncio.Task, Role] = {
            asyncio.ensure_future(self._run_worker(role, snapshot, cycle_number)): role
            for role in ordered
        }
        logger.info(
            f"[ORCH] Cycle {cycle_number}: started {len(tasks)} workers "
            f"({', '.join(r.value for r in ordered)})"
        )

        done, pending = await asyncio.wait(tasks.keys(), timeout=self.worker_timeout_s)

        # The done/pending split is the only deadline check, so every role
        # gets exactly one outcome and one contribution record
        outcomes: List[WorkerOutcome] = []
        for task, role in tasks.items():
            if task in done:
                outcome = self._collect(task, role)
            else:
                outcome = WorkerOutcome.timed_out(role, self.worker_timeout_s)
                logger.warning(
                    f"[ORCH] Cycle {cycle_number}: {role.value} timed out after {self.worker_timeout_s:g}s"
                )
                self._abandon(task)
            self._persist_contribution(cycle_number, outcome)
            outcomes.append(outcome)

        outcomes.sort(key=lambda o: o.role.value)
        return outcomes

    def _abandon(self, task: asyncio.Task) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._abandoned.discard)
        task.add_done_callback(_consume_result)
        if self.cancel_on_timeout:
            task.cancel()

    def _collect(self, task: asyncio.Task, role: Role) -> WorkerOutcome:
        if task.cancelled():
            return WorkerOutcome.crashed(role, asyncio.CancelledError("worker cancelled"))
        error = task.exception()
        if error is not None:
            logger.error(f"[ORCH] {role.value} escaped its worker boundary: {error}")
            return WorkerOutcome.crashed(role, error)
        return task.result()

    async def _run_worker(
        self,
        role: Role,
        snapshot: BlackboardSnapshot,
        cycle_number: int,
    ) -> WorkerOutcome:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            outcome = await self._execute(role, snapshot, cycle_number)
        except ModelInvocationError as e:
            logger.warning(f"[ORCH] {role.value} generation failed: {e}")
            outcome = WorkerOutcome(
                role=role,
                valid=False,
                delta=0.0,
                kind=OutcomeKind.GENERATION_FAILED,
                error=_generation_error(e),
                model=e.model or None,
            )
        except Exception as e:
            logger.exception(f"[ORCH] {role.value} crashed: {e}")
            outcome = WorkerOutcome.crashed(role, e)

        return _with_duration(outcome, loop.time() - started)

    async def _execute(
        self,
        role: Role,
        snapshot: BlackboardSnapshot,
        cycle_number: int,
    ) -> WorkerOutcome:
        behavior = get_behavior(role)
        request = behavior.build_request(snapshot, cycle_number)

        generation = await self.client.generate(role.value, request.to_messages())
        self._report_cost(role, cycle_number, generation)

        validator = self.validators.get(role, behavior.parse_response)
        parsed = validator(generation.text)

        if not parsed.valid:
            logger.info(f"[ORCH] {role.value} response invalid: {parsed.error}")
            return WorkerOutcome(
                role=role,
                valid=False,
                delta=0.0,
                kind=OutcomeKind.INVALID,
                error=parsed.error or "invalid response",
                model=generation.model,
            )

        delta = behavior.confidence_delta(parsed)
        logger.debug(f"[ORCH] {role.value} valid (delta {delta:+.2f}) via {generation.model}")
        return WorkerOutcome(
            role=role,
            valid=True,
            delta=delta,
            kind=OutcomeKind.OK,
            model=generation.model,
            output=dict(parsed.data),
        )

    def _report_cost(self, role: Role, cycle_number: int, generation: Any) -> None:
        entry = CostEntry(
            session_id=self.session_id,
            cycle_number=cycle_number,
            role=role.value,
            model=generation.model,
            input_tokens=generation.input_tokens,
            output_tokens=generation.output_tokens,
            cost_usd=generation.cost_usd,
        )
        if self.cost_governor is not None:
            self.cost_governor.record(entry)
        if self.store is not None:
            safe_write(f"cost entry for {role.value}", self.store.write_cost_entry, entry)

    def _persist_contribution(self, cycle_number: int, outcome: WorkerOutcome) -> None:
        if self.store is None:
            return
        record = {"session_id": self.session_id, "cycle_number": cycle_number, **outcome.to_dict()}
        safe_write(
            f"contribution from {outcome.role.value}",
            self.store.write_contribution,
            self.session_id,
            record,
        )


def _with_duration(outcome: WorkerOutcome, duration_s: float) -> WorkerOutcome:
    return WorkerOutcome(
        role=outcome.role,
        valid=outcome.valid,
        delta=outcome.delta,
        kind=outcome.kind,
        error=outcome.error,
        model=outcome.model,
        output=outcome.output,
        duration_s=duration_s,
    )


def _generation_error(error: ModelInvocationError) -> str:
    text = f"generation_failed: {error}"
    if error.cause is not None:
        text += f" ({type(error.cause).__name__}: {error.cause})"
    return text


def _consume_result(task: asyncio.Task) -> None:
    # Retrieve the exception so asyncio does not log it as never retrieved
    if not task.cancelled():
        task.exception()
