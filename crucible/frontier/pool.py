"""
Frontier Pool for Crucible.

Tracks candidate directions proposed during a session. Ideas gain
sponsors from roles (or external callers), age once per cycle, and
become eligible for a pivot once enough distinct sponsors back them.

Selection is a weighted random draw over eligible ideas:

    weight = sponsor_count / (1 + cycles_alive)

More sponsors raise the weight, age lowers it. A selected idea is
activated exactly once and never drawn again.
"""

import hashlib
import logging
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional

logger = logging.getLogger(__name__)


def idea_id_for(text: str) -> str:
    """Stable identifier for an idea: sha256 of its normalized text."""
    normalized = " ".join(text.split()).lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class FrontierIdea:
    """Point-in-time view of one frontier idea."""

    idea_id: str
    idea_text: str
    sponsors: FrozenSet[str]
    cycles_alive: int = 0
    activated: bool = False
    created_at: Optional[str] = None

    @property
    def sponsor_count(self) -> int:
        return len(self.sponsors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "idea_id": self.idea_id,
            "idea_text": self.idea_text,
            "sponsors": sorted(self.sponsors),
            "sponsor_count": self.sponsor_count,
            "cycles_alive": self.cycles_alive,
            "activated": self.activated,
            "created_at": self.created_at,
        }


@dataclass
class _IdeaRecord:
    idea_text: str
    sponsors: set = field(default_factory=set)
    cycles_alive: int = 0
    activated: bool = False
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def view(self, idea_id: str) -> FrontierIdea:
        return FrontierIdea(
            idea_id=idea_id,
            idea_text=self.idea_text,
            sponsors=frozenset(self.sponsors),
            cycles_alive=self.cycles_alive,
            activated=self.activated,
            created_at=self.created_at,
        )


def selection_weight(sponsor_count: int, cycles_alive: int) -> float:
    """Weight of an idea in the pivot draw."""
    return sponsor_count / (1.0 + max(cycles_alive, 0))


class FrontierPool:
    """
    Thread-safe pool of frontier ideas.

    All reads return FrontierIdea copies; the mutable records never
    leave the lock.
    """

    def __init__(self, min_sponsors: int = 2, max_age: int = 10):
        self.min_sponsors = min_sponsors
        self.max_age = max_age
        self._ideas: Dict[str, _IdeaRecord] = {}
        self._lock = threading.Lock()

    def add_idea(self, text: str, sponsor_id: str) -> FrontierIdea:
        """
        Add an idea or sponsor an existing one.

        A sponsor is counted once per idea no matter how often it repeats
        the same proposal.

        Raises:
            ValueError: If text or sponsor_id is blank
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Frontier idea text must not be empty")
        if not sponsor_id:
            raise ValueError("Frontier idea needs a sponsor")

        idea_id = idea_id_for(text)
        with self._lock:
            record = self._ideas.get(idea_id)
            if record is None:
                record = _IdeaRecord(idea_text=text)
                self._ideas[idea_id] = record
                logger.debug(f"[FRONTIER] New idea {idea_id[:8]} from {sponsor_id}")
            record.sponsors.add(sponsor_id)
            return record.view(idea_id)

    def get(self, idea_id: str) -> Optional[FrontierIdea]:
        with self._lock:
            record = self._ideas.get(idea_id)
            return record.view(idea_id) if record else None

    def ideas(self) -> List[FrontierIdea]:
        with self._lock:
            return [record.view(idea_id) for idea_id, record in self._ideas.items()]

    def _is_eligible(self, record: _IdeaRecord) -> bool:
        return len(record.sponsors) >= self.min_sponsors and not record.activated

    def eligible(self) -> List[FrontierIdea]:
        """Ideas with enough sponsors that have not been activated."""
        with self._lock:
            return [
                record.view(idea_id)
                for idea_id, record in self._ideas.items()
                if self._is_eligible(record)
            ]

    def has_eligible(self) -> bool:
        with self._lock:
            return any(self._is_eligible(r) for r in self._ideas.values())

    def activate(self, idea_id: str) -> bool:
        """
        Mark an idea as activated.

        Returns:
            True if this call activated it, False if unknown or already active
        """
        with self._lock:
            record = self._ideas.get(idea_id)
            if record is None or record.activated:
                return False
            record.activated = True
            return True

    def select_weighted(self, rng: Optional[random.Random] = None) -> Optional[FrontierIdea]:
        """
        Draw one eligible idea and activate it.

        Args:
            rng: Random source (defaults to the module-level generator)

        Returns:
            The activated idea, or None when nothing is eligible
        """
        rng = rng or random.Random()
        with self._lock:
            candidates = [
                (idea_id, record)
                for idea_id, record in sorted(self._ideas.items())
                if self._is_eligible(record)
            ]
            if not candidates:
                return None

            weights = [
                selection_weight(len(record.sponsors), record.cycles_alive)
                for _, record in candidates
            ]
            idea_id, record = rng.choices(candidates, weights=weights, k=1)[0]
            record.activated = True
            selected = record.view(idea_id)

        logger.info(
            f"[FRONTIER] Selected idea {idea_id[:8]} "
            f"(sponsors={selected.sponsor_count}, age={selected.cycles_alive})"
        )
        return selected

    def best_unactivated(self) -> Optional[FrontierIdea]:
        """Unactivated idea with the most sponsors (youngest wins ties)."""
        with self._lock:
            pool = [(i, r) for i, r in self._ideas.items() if not r.activated]
            if not pool:
                return None
            idea_id, record = max(
                pool, key=lambda item: (len(item[1].sponsors), -item[1].cycles_alive, item[0])
            )
            return record.view(idea_id)

    def age(self) -> List[str]:
        """
        Advance every idea by one cycle and drop the expired ones.

        Returns:
            Identifiers of removed ideas
        """
        removed = []
        with self._lock:
            for idea_id, record in list(self._ideas.items()):
                record.cycles_alive += 1
                if record.cycles_alive > self.max_age:
                    del self._ideas[idea_id]
                    removed.append(idea_id)

        if removed:
            logger.debug(f"[FRONTIER] Expired {len(removed)} idea(s)")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._ideas)
