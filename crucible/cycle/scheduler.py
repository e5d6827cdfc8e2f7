"""
Cycle Scheduler for Crucible.

Decides which roles run in cycle N:

- explorer, critic                       every cycle
- connector, steelman,
  operationalizer, quantifier            when N % 3 == 0
- reducer, boundary_hunter, translator   when N % 5 == 0
- historian                              when N % 5 == 0 and N >= 5
- grave_keeper                           when support < 0.4
- cartographer                           when N >= 5 and the trajectory is stagnant
- perturber                              with probability 0.2, if an idea is eligible

The probability draw uses an injectable random.Random so both branches
can be forced in tests.
"""

import logging
import random
from typing import FrozenSet, Optional

from ..agents.roles import ANALYTICAL_ROLES, CORE_ROLES, STRUCTURAL_ROLES, Role
from ..blackboard.records import BlackboardSnapshot
from ..embedding.stagnation import StagnationDetector
from ..frontier.pool import FrontierPool

logger = logging.getLogger(__name__)


class CycleScheduler:
    """
    Chooses the active role set for a cycle.

    Args:
        stagnation_detector: Detector consulted for the cartographer gate
        frontier_pool: Pool consulted for the perturber gate
        rng: Random source for the perturber draw
        analytical_interval: Cadence of analytical roles
        structural_interval: Cadence of structural roles
        history_min_cycle: Earliest cycle for history-consulting roles
        low_support_threshold: Support below which the grave keeper runs
        perturb_probability: Chance of a frontier pivot per cycle
    """

    def __init__(
        self,
        stagnation_detector: Optional[StagnationDetector] = None,
        frontier_pool: Optional[FrontierPool] = None,
        rng: Optional[random.Random] = None,
        analytical_interval: int = 3,
        structural_interval: int = 5,
        history_min_cycle: int = 5,
        low_support_threshold: float = 0.4,
        perturb_probability: float = 0.2,
    ):
        self.stagnation_detector = stagnation_detector or StagnationDetector()
        self.frontier_pool = frontier_pool
        self.rng = rng or random.Random()
        self.analytical_interval = analytical_interval
        self.structural_interval = structural_interval
        self.history_min_cycle = history_min_cycle
        self.low_support_threshold = low_support_threshold
        self.perturb_probability = perturb_probability

    @classmethod
    def from_config(
        cls,
        config,
        frontier_pool: Optional[FrontierPool] = None,
        rng: Optional[random.Random] = None,
    ) -> "CycleScheduler":
        return cls(
            stagnation_detector=StagnationDetector(
                window=config.stagnation_window,
                lookback=config.stagnation_lookback,
                movement_threshold=config.movement_threshold,
            ),
            frontier_pool=frontier_pool,
            rng=rng,
            analytical_interval=config.analytical_interval,
            structural_interval=config.structural_interval,
            history_min_cycle=config.history_min_cycle,
            low_support_threshold=config.low_support_threshold,
            perturb_probability=config.perturb_probability,
        )

    def roles_for_cycle(self, cycle_number: int, snapshot: BlackboardSnapshot) -> FrozenSet[Role]:
        """
        Roles to activate in a cycle.

        Args:
            cycle_number: 1-based cycle number
            snapshot: State the decision is based on

        Returns:
            Frozen set of roles

        Raises:
            ValueError: If cycle_number < 1
        """
        if cycle_number < 1:
            raise ValueError(f"cycle_number must be >= 1, got {cycle_number}")

        # Draw once per cycle, before the gate, so the random stream does
        # not depend on pool contents
        perturb_draw = self.rng.random() < self.perturb_probability

        roles = frozenset(
            role for role in Role
            if self._should_activate(role, cycle_number, snapshot, perturb_draw)
        )
        logger.debug(f"[SCHEDULER] Cycle {cycle_number}: {sorted(r.value for r in roles)}")
        return roles

    def _should_activate(
        self,
        role: Role,
        n: int,
        snapshot: BlackboardSnapshot,
        perturb_draw: bool,
    ) -> bool:
        analytical = n % self.analytical_interval == 0
        structural = n % self.structural_interval == 0

        if role in CORE_ROLES:
            return True
        elif role in ANALYTICAL_ROLES:
            return analytical
        elif role == Role.HISTORIAN:
            return structural and n >= self.history_min_cycle
        elif role in STRUCTURAL_ROLES:
            return structural
        elif role == Role.GRAVE_KEEPER:
            return snapshot.support < self.low_support_threshold
        elif role == Role.CARTOGRAPHER:
            return (
                n >= self.history_min_cycle
                and self.stagnation_detector.check(snapshot.trajectory).is_stagnant
            )
        elif role == Role.PERTURBER:
            return perturb_draw and self._frontier_has_eligible(snapshot)
        raise ValueError(f"Unhandled role: {role!r}")

    def _frontier_has_eligible(self, snapshot: BlackboardSnapshot) -> bool:
        if self.frontier_pool is not None:
            return self.frontier_pool.has_eligible()
        min_sponsors = 2
        return any(
            idea.sponsor_count >= min_sponsors and not idea.activated
            for idea in snapshot.frontier
        )
