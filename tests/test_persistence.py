"""
Tests for session persistence backends.
"""

import json
from unittest.mock import MagicMock

import pytest

from crucible.blackboard import TrajectoryPoint
from crucible.costs import CostEntry
from crucible.persistence import InMemoryStore, JsonlStore, PersistenceFailure, safe_write


def _point(cycle: int, embedding=(0.1, 0.2)) -> TrajectoryPoint:
    return TrajectoryPoint(cycle_number=cycle, claim_text=f"claim {cycle}", support=0.5, embedding=embedding)


def _cost(session_id: str = "s1") -> CostEntry:
    return CostEntry(
        session_id=session_id,
        cycle_number=1,
        role="critic",
        model="m",
        input_tokens=10,
        output_tokens=20,
        cost_usd=0.01,
    )


@pytest.fixture(params=["memory", "jsonl"])
def store(request, temp_dir):
    if request.param == "memory":
        return InMemoryStore()
    return JsonlStore(temp_dir / "sessions")


class TestStores:

    def test_contributions_in_order(self, store):
        store.write_contribution("s1", {"role": "explorer", "cycle_number": 1})
        store.write_contribution("s1", {"role": "critic", "cycle_number": 1})

        records = store.read_contributions("s1")
        assert [r["role"] for r in records] == ["explorer", "critic"]
        assert store.read_contributions("other") == []

    def test_trajectory(self, store):
        store.write_trajectory_point("s1", _point(1))
        store.write_trajectory_point("s1", _point(2, embedding=None))

        points = store.read_trajectory("s1")
        assert [p.cycle_number for p in points] == [1, 2]
        assert points[0].embedding == (0.1, 0.2)
        assert points[1].embedding is None

    def test_cost_entries(self, store):
        store.write_cost_entry(_cost())
        entries = store.read_cost_entries("s1")
        assert entries[0]["role"] == "critic"
        assert entries[0]["cost_usd"] == 0.01

    def test_archive(self, store):
        store.write_archive_entry("s1", "died", {"claim": "gone", "cycle_killed": 3})
        assert store.read_archive("s1") == [{"kind": "died", "claim": "gone", "cycle_killed": 3}]

    def test_claim_transitions(self, store):
        record = {"from_cycle": 1, "to_cycle": 2, "change_type": "pivot", "diff_additions": ["heat"]}
        store.write_claim_transition("s1", record)

        assert store.read_claim_transitions("s1") == [record]
        assert store.read_claim_transitions("other") == []

    def test_session_row_replaced(self, store):
        assert store.load_session_row("s1") is None

        store.save_session_row("s1", {"status": "running"})
        store.save_session_row("s1", {"status": "completed"})

        assert store.load_session_row("s1") == {"status": "completed"}
        assert store.list_session_ids() == ["s1"]


class TestJsonlStore:

    def test_layout(self, temp_dir):
        store = JsonlStore(temp_dir)
        store.write_contribution("abc", {"role": "explorer"})
        store.save_session_row("abc", {"status": "running"})

        assert (temp_dir / "abc" / "contributions.jsonl").exists()
        assert json.loads((temp_dir / "abc" / "session.json").read_text())["status"] == "running"

    @pytest.mark.parametrize("session_id", ["../escape", "a/b", ""])
    def test_unsafe_session_id(self, temp_dir, session_id):
        with pytest.raises(PersistenceFailure):
            JsonlStore(temp_dir).write_contribution(session_id, {"role": "explorer"})

    def test_corrupt_line_skipped(self, temp_dir):
        store = JsonlStore(temp_dir)
        store.write_contribution("s1", {"role": "explorer"})
        with open(temp_dir / "s1" / "contributions.jsonl", "a", encoding="utf-8") as f:
            f.write("{not json\n")
        store.write_contribution("s1", {"role": "critic"})

        assert [r["role"] for r in store.read_contributions("s1")] == ["explorer", "critic"]

    def test_list_sessions_sorted(self, temp_dir):
        store = JsonlStore(temp_dir)
        for session_id in ("b", "a", "c"):
            store.save_session_row(session_id, {"session_id": session_id})
        store.write_contribution("no-row", {"role": "explorer"})

        assert store.list_session_ids() == ["a", "b", "c"]


class TestSafeWrite:

    def test_success(self):
        write = MagicMock()
        assert safe_write("thing", write, 1, key="v") is True
        write.assert_called_once_with(1, key="v")

    def test_persistence_failure_contained(self):
        write = MagicMock(side_effect=PersistenceFailure("disk full"))
        assert safe_write("thing", write) is False

    def test_unexpected_error_contained(self):
        write = MagicMock(side_effect=RuntimeError("boom"))
        assert safe_write("thing", write) is False
