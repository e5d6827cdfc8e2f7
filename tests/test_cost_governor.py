"""
Tests for the CostGovernor.

Tests cover:
- Exact accumulation of many small costs
- The stop signal firing exactly once under concurrent reports
- No stop below the limit
- Breakdown by cycle and role
"""

import threading
from unittest.mock import MagicMock

import pytest

from crucible.costs import CostEntry, CostGovernor


def _entry(cost: float, cycle: int = 1, role: str = "explorer") -> CostEntry:
    return CostEntry(
        session_id="s1",
        cycle_number=cycle,
        role=role,
        model="m",
        input_tokens=100,
        output_tokens=50,
        cost_usd=cost,
    )


def _report_concurrently(governor: CostGovernor, entries):
    barrier = threading.Barrier(len(entries))

    def _report(entry):
        barrier.wait()
        governor.record(entry)

    threads = [threading.Thread(target=_report, args=(e,)) for e in entries]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


class TestAccumulation:

    def test_ten_cents_ten_times_is_exactly_one_dollar(self):
        governor = CostGovernor()
        for _ in range(10):
            governor.record(_entry(0.10))
        assert governor.total_usd == 1.0

    def test_negative_cost_ignored(self):
        governor = CostGovernor()
        governor.record(_entry(-0.5))
        governor.record(_entry(0.25))
        assert governor.total_usd == 0.25
        assert len(governor.entries()) == 2

    def test_breakdowns(self):
        governor = CostGovernor()
        governor.record(_entry(0.1, cycle=1, role="explorer"))
        governor.record(_entry(0.2, cycle=1, role="critic"))
        governor.record(_entry(0.3, cycle=2, role="explorer"))

        assert governor.cost_by_cycle() == {1: pytest.approx(0.3), 2: pytest.approx(0.3)}
        assert governor.cost_by_role() == {"critic": 0.2, "explorer": pytest.approx(0.4)}
        assert governor.total_tokens() == 450

        summary = governor.summary()
        assert summary["entry_count"] == 3
        assert summary["limit_usd"] is None
        assert summary["remaining_usd"] is None


class TestStopSignal:

    def test_concurrent_reports_reaching_limit_fire_once(self):
        on_limit = MagicMock()
        governor = CostGovernor(limit_usd=1.0, on_limit_reached=on_limit)

        _report_concurrently(governor, [_entry(0.10) for _ in range(10)])

        assert governor.total_usd == 1.0
        assert governor.stop_issued
        on_limit.assert_called_once()
        total, limit = on_limit.call_args[0]
        assert total == 1.0
        assert limit == 1.0

    def test_just_below_limit_never_fires(self):
        on_limit = MagicMock()
        governor = CostGovernor(limit_usd=1.0, on_limit_reached=on_limit)

        _report_concurrently(governor, [_entry(0.11) for _ in range(9)])

        assert governor.total_usd == pytest.approx(0.99)
        assert not governor.stop_issued
        on_limit.assert_not_called()
        assert governor.remaining_usd == pytest.approx(0.01)

    def test_reports_after_stop_do_not_refire(self):
        on_limit = MagicMock()
        governor = CostGovernor(limit_usd=0.5, on_limit_reached=on_limit)

        assert governor.record(_entry(0.6)) is True
        assert governor.record(_entry(0.6)) is False
        on_limit.assert_called_once()
        assert governor.remaining_usd == 0.0

    def test_no_limit_never_fires(self):
        governor = CostGovernor(limit_usd=None)
        for _ in range(100):
            assert governor.record(_entry(1.0)) is False
        assert not governor.stop_issued

    def test_entry_callback_failure_is_contained(self):
        on_entry = MagicMock(side_effect=RuntimeError("subscriber down"))
        governor = CostGovernor(on_entry=on_entry)

        governor.record(_entry(0.1))

        on_entry.assert_called_once()
        assert governor.total_usd == 0.1

    def test_limit_callback_failure_is_contained(self):
        on_limit = MagicMock(side_effect=RuntimeError("stop hook down"))
        governor = CostGovernor(limit_usd=0.01, on_limit_reached=on_limit)

        assert governor.record(_entry(0.02)) is True

        on_limit.assert_called_once()
        assert governor.stop_issued
        assert governor.total_usd == 0.02
