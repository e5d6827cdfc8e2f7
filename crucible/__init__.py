"""
Crucible: multi-agent claim reasoning.

A claim is challenged, refined and scored by a fixed roster of
specialized workers, one cycle at a time, until it dies or graduates.

Usage:
    from crucible import CrucibleConfig, CycleRunner, GenerationClient

    config = CrucibleConfig(seed_claim="Entropy increases locally", max_cycles=10)
    runner = CycleRunner(config, client=GenerationClient.from_config(config))
    summary = await runner.run()
"""

from .config import (
    ConfigValidationError,
    CrucibleConfig,
    get_crucible_config,
    reset_crucible_config,
)
from .blackboard import Blackboard, BlackboardSnapshot
from .costs import CostEntry, CostGovernor
from .cycle import (
    ConfidenceAggregator,
    CycleRunner,
    CycleScheduler,
    StopReason,
    TaskOrchestrator,
    WorkerOutcome,
)
from .embedding import EmbeddingSpace, StagnationDetector
from .frontier import FrontierPool
from .llm import GenerationClient, ModelInvocationError
from .notifications import EventType, NotificationBus
from .session import SessionManager

__version__ = "0.1.0"

__all__ = [
    "ConfigValidationError",
    "CrucibleConfig",
    "get_crucible_config",
    "reset_crucible_config",
    "Blackboard",
    "BlackboardSnapshot",
    "CostEntry",
    "CostGovernor",
    "ConfidenceAggregator",
    "CycleRunner",
    "CycleScheduler",
    "StopReason",
    "TaskOrchestrator",
    "WorkerOutcome",
    "EmbeddingSpace",
    "StagnationDetector",
    "FrontierPool",
    "GenerationClient",
    "ModelInvocationError",
    "EventType",
    "NotificationBus",
    "SessionManager",
]
