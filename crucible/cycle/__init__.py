"""
Cycle engine: scheduling, concurrent execution, aggregation and the
sequential session driver.
"""

from .aggregator import AggregationResult, ConfidenceAggregator, Transition
from .orchestrator import OutcomeKind, TaskOrchestrator, WorkerOutcome
from .resurrection import (
    ClaimReplacementPolicy,
    Replacement,
    ResurrectFromFrontier,
    StopOnClaimLoss,
    policy_from_config,
)
from .runner import CycleReport, CycleRunner, RunnerStatus, SessionSummary, StopReason
from .scheduler import CycleScheduler

__all__ = [
    "AggregationResult",
    "ConfidenceAggregator",
    "Transition",
    "OutcomeKind",
    "TaskOrchestrator",
    "WorkerOutcome",
    "ClaimReplacementPolicy",
    "Replacement",
    "ResurrectFromFrontier",
    "StopOnClaimLoss",
    "policy_from_config",
    "CycleReport",
    "CycleRunner",
    "RunnerStatus",
    "SessionSummary",
    "StopReason",
    "CycleScheduler",
]
