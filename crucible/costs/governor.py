"""
Cost Governor for Crucible.

Accumulates the cost of every generation call in a session and asks
the session to stop once the configured ceiling is reached.

Workers report concurrently, so the append/total/compare sequence runs
under one lock. The stop callback fires exactly once, from whichever
report first pushes the total to or past the ceiling, and runs after
the lock is released.

Totals are accumulated as Decimal on the string form of each cost so
that ten $0.10 entries add up to exactly $1.00.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostEntry:
    """Cost of one generation call."""

    session_id: str
    cycle_number: int
    role: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "cycle_number": self.cycle_number,
            "role": self.role,
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cost_usd": self.cost_usd,
            "recorded_at": self.recorded_at,
        }


StopCallback = Callable[[float, float], None]


def _to_decimal(value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except ArithmeticError:
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


class CostGovernor:
    """
    Thread-safe cost ledger with a one-shot stop signal.

    Args:
        limit_usd: Ceiling in USD (None disables the stop signal)
        on_limit_reached: Called once with (total_usd, limit_usd) when the
            ceiling is reached
        on_entry: Called after every recorded entry (e.g. to publish it)
    """

    def __init__(
        self,
        limit_usd: Optional[float] = None,
        on_limit_reached: Optional[StopCallback] = None,
        on_entry: Optional[Callable[[CostEntry, float], None]] = None,
    ):
        self.limit_usd = limit_usd
        self._limit = _to_decimal(limit_usd) if limit_usd is not None else None
        self.on_limit_reached = on_limit_reached
        self.on_entry = on_entry

        self._entries: List[CostEntry] = []
        self._total = Decimal("0")
        self._stop_issued = False
        self._lock = threading.Lock()

    def record(self, entry: CostEntry) -> bool:
        """
        Append an entry and check the ceiling.

        Returns:
            True if this call issued the stop signal
        """
        cost = _to_decimal(entry.cost_usd)
        if cost < 0:
            logger.warning(f"[COST] Negative cost from {entry.role} ignored: {entry.cost_usd}")
            cost = Decimal("0")

        fire = False
        with self._lock:
            self._entries.append(entry)
            self._total += cost
            total = self._total
            if self._limit is not None and not self._stop_issued and total >= self._limit:
                self._stop_issued = True
                fire = True

        logger.debug(
            f"[COST] {entry.role}@{entry.cycle_number} {entry.model}: "
            f"${entry.cost_usd:.6f} (total ${float(total):.6f})"
        )

        if self.on_entry is not None:
            try:
                self.on_entry(entry, float(total))
            except Exception as e:
                logger.warning(f"[COST] Entry callback failed: {e}")

        if fire:
            logger.warning(
                f"[COST] Limit reached: ${float(total):.4f} >= ${float(self._limit):.4f}, "
                f"requesting session stop"
            )
            if self.on_limit_reached is not None:
                try:
                    self.on_limit_reached(float(total), float(self._limit))
                except Exception as e:
                    logger.warning(f"[COST] Limit callback failed: {e}")

        return fire

    @property
    def total_usd(self) -> float:
        with self._lock:
            return float(self._total)

    @property
    def stop_issued(self) -> bool:
        with self._lock:
            return self._stop_issued

    @property
    def remaining_usd(self) -> Optional[float]:
        if self._limit is None:
            return None
        with self._lock:
            return float(max(self._limit - self._total, Decimal("0")))

    def entries(self) -> List[CostEntry]:
        with self._lock:
            return list(self._entries)

    def total_tokens(self) -> int:
        with self._lock:
            return sum(e.total_tokens for e in self._entries)

    def cost_by_cycle(self) -> Dict[int, float]:
        """Spend per cycle number."""
        totals: Dict[int, Decimal] = {}
        for entry in self.entries():
            totals[entry.cycle_number] = totals.get(entry.cycle_number, Decimal("0")) + _to_decimal(entry.cost_usd)
        return {cycle: float(total) for cycle, total in sorted(totals.items())}

    def cost_by_role(self) -> Dict[str, float]:
        """Spend per role."""
        totals: Dict[str, Decimal] = {}
        for entry in self.entries():
            totals[entry.role] = totals.get(entry.role, Decimal("0")) + _to_decimal(entry.cost_usd)
        return {role: float(total) for role, total in sorted(totals.items())}

    def summary(self) -> Dict[str, Any]:
        return {
            "total_usd": self.total_usd,
            "limit_usd": self.limit_usd,
            "remaining_usd": self.remaining_usd,
            "stop_issued": self.stop_issued,
            "entry_count": len(self.entries()),
            "total_tokens": self.total_tokens(),
            "by_cycle": self.cost_by_cycle(),
            "by_role": self.cost_by_role(),
        }
