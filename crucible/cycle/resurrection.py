"""
Claim replacement policies.

After a claim dies or graduates the blackboard holds no claim. A policy
decides whether the session continues with a new one:

- ResurrectFromFrontier: pivot to a sponsored frontier idea at birth
  support; failing that, take the best unsponsored idea at a reduced
  support; failing that, give up
- StopOnClaimLoss: always give up
"""

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ..blackboard.server import Blackboard
from ..frontier.pool import FrontierPool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Replacement:
    """A claim installed by a policy."""

    claim: str
    support: float
    source: str
    idea_id: Optional[str] = None


class ClaimReplacementPolicy(ABC):
    """Decides what happens when the blackboard has no claim."""

    name: str = ""

    @abstractmethod
    def replace(
        self,
        blackboard: Blackboard,
        frontier_pool: FrontierPool,
        rng: random.Random,
    ) -> Optional[Replacement]:
        """Install a new claim, or return None to end the session."""
        pass


class ResurrectFromFrontier(ClaimReplacementPolicy):
    """Continue from the frontier pool when it has anything to offer."""

    name = "resurrect"

    def __init__(self, birth_support: float = 0.5, fallback_support: float = 0.4):
        self.birth_support = birth_support
        self.fallback_support = fallback_support

    def replace(
        self,
        blackboard: Blackboard,
        frontier_pool: FrontierPool,
        rng: random.Random,
    ) -> Optional[Replacement]:
        idea = frontier_pool.select_weighted(rng)
        if idea is not None:
            blackboard.install_claim(idea.idea_text, self.birth_support)
            logger.info(f"[RESURRECT] Continuing from sponsored frontier idea {idea.idea_id[:8]}")
            return Replacement(idea.idea_text, self.birth_support, "frontier", idea.idea_id)

        idea = frontier_pool.best_unactivated()
        if idea is not None and frontier_pool.activate(idea.idea_id):
            blackboard.install_claim(idea.idea_text, self.fallback_support)
            logger.info(f"[RESURRECT] Continuing from unsponsored frontier idea {idea.idea_id[:8]}")
            return Replacement(idea.idea_text, self.fallback_support, "frontier_fallback", idea.idea_id)

        logger.info("[RESURRECT] Frontier is empty; nothing to continue from")
        return None


class StopOnClaimLoss(ClaimReplacementPolicy):
    """End the session as soon as the claim is gone."""

    name = "stop"

    def replace(
        self,
        blackboard: Blackboard,
        frontier_pool: FrontierPool,
        rng: random.Random,
    ) -> Optional[Replacement]:
        return None


def policy_from_config(config: Any) -> ClaimReplacementPolicy:
    """
    Build the policy named by ``config.on_claim_loss``.

    Raises:
        ValueError: If the name is unknown
    """
    if config.on_claim_loss == "resurrect":
        return ResurrectFromFrontier(config.birth_support, config.fallback_support)
    if config.on_claim_loss == "stop":
        return StopOnClaimLoss()
    raise ValueError(f"Unknown claim loss policy: {config.on_claim_loss!r}")
