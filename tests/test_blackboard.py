"""
Tests for the Blackboard state owner.
"""

import threading
from dataclasses import FrozenInstanceError

import pytest

from crucible.blackboard import Blackboard, BlackboardState, next_framework, TRANSLATOR_FRAMEWORKS
from crucible.config import CrucibleConfig


class TestConstruction:

    def test_seed_claim_at_birth_support(self, blackboard):
        snapshot = blackboard.snapshot()
        assert snapshot.claim == "Entropy never decreases locally"
        assert snapshot.support == 0.5
        assert snapshot.cycle_count == 0
        assert snapshot.session_id == "test-session"

    def test_blank_seed_means_no_claim(self):
        assert not Blackboard(seed_claim="   ").has_claim

    def test_birth_support_is_clamped(self):
        assert Blackboard("claim text", birth_support=0.99).support == 0.9

    def test_floor_above_ceiling_rejected(self):
        with pytest.raises(ValueError):
            Blackboard("claim text", support_floor=0.8, support_ceiling=0.5)

    def test_from_config(self):
        config = CrucibleConfig(seed_claim="Config claim", birth_support=0.6, frontier_max_age=3)
        board = Blackboard.from_config(config)

        assert board.snapshot().claim == "Config claim"
        assert board.support == 0.6
        assert board.frontier_pool.max_age == 3


class TestSnapshots:

    def test_snapshot_is_immutable(self, blackboard):
        snapshot = blackboard.snapshot()
        with pytest.raises(FrozenInstanceError):
            snapshot.support = 0.8

    def test_snapshot_not_affected_by_later_updates(self, blackboard):
        before = blackboard.snapshot()

        def _mutate(state: BlackboardState):
            state.support = 0.7
            state.append_trajectory(1, [1.0, 2.0])

        blackboard.apply(_mutate)

        assert before.support == 0.5
        assert before.trajectory == ()
        after = blackboard.snapshot()
        assert after.support == 0.7
        assert after.trajectory[0].embedding == (1.0, 2.0)

    def test_snapshot_includes_frontier(self, blackboard):
        blackboard.frontier_pool.add_idea("An idea worth chasing", "steelman")
        assert len(blackboard.snapshot().frontier) == 1

    def test_concurrent_readers_never_see_partial_update(self, blackboard):
        seen = []

        def _mutate(state: BlackboardState):
            state.support = 0.8
            state.active_objection = "objection"

        def _reader():
            for _ in range(200):
                snap = blackboard.snapshot()
                seen.append((snap.support, snap.active_objection))

        readers = [threading.Thread(target=_reader) for _ in range(4)]
        for t in readers:
            t.start()
        blackboard.apply(_mutate)
        for t in readers:
            t.join()

        assert set(seen) <= {(0.5, None), (0.8, "objection")}


class TestApply:

    def test_exception_rolls_back(self, blackboard):
        def _broken(state: BlackboardState):
            state.support = 0.8
            state.claim = "half-written"
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            blackboard.apply(_broken)

        snapshot = blackboard.snapshot()
        assert snapshot.support == 0.5
        assert snapshot.claim == "Entropy never decreases locally"

    def test_support_outside_bounds_rejected(self, blackboard):
        def _too_high(state: BlackboardState):
            state.support = 0.95

        with pytest.raises(ValueError):
            blackboard.apply(_too_high)
        assert blackboard.support == 0.5

    def test_apply_returns_mutation_result(self, blackboard):
        assert blackboard.apply(lambda state: state.claim) == "Entropy never decreases locally"


class TestLifecycle:

    def test_bury_clears_claim(self, blackboard):
        entry = blackboard.apply(lambda state: state.bury(4, "critic (-0.15): weak", 0.2))

        snapshot = blackboard.snapshot()
        assert snapshot.claim is None
        assert snapshot.cemetery == (entry,)
        assert entry.cycle_killed == 4
        assert entry.final_support == 0.2

    def test_graduate_records_claim(self, blackboard):
        blackboard.apply(lambda state: state.graduate(6, 0.88))

        snapshot = blackboard.snapshot()
        assert snapshot.claim is None
        assert snapshot.graduated[0].claim == "Entropy never decreases locally"
        assert snapshot.graduated[0].final_support == 0.88

    def test_bury_without_claim_raises(self):
        board = Blackboard(seed_claim=None)
        with pytest.raises(ValueError):
            board.apply(lambda state: state.bury(1, "none", 0.2))

    def test_install_claim(self, blackboard):
        blackboard.apply(lambda state: state.bury(1, "decay", 0.2))
        snapshot = blackboard.install_claim("A fresh frontier claim", 0.5)

        assert snapshot.claim == "A fresh frontier claim"
        assert snapshot.support == 0.5
        assert len(snapshot.cemetery) == 1

    def test_install_empty_claim_rejected(self, blackboard):
        with pytest.raises(ValueError):
            blackboard.install_claim("  ", 0.5)


class TestTranslatorRotation:

    def test_rotation_visits_every_framework_before_repeating(self):
        used = []
        for _ in range(len(TRANSLATOR_FRAMEWORKS)):
            used.append(next_framework(used))

        assert sorted(used) == sorted(TRANSLATOR_FRAMEWORKS)
        assert next_framework(used) == TRANSLATOR_FRAMEWORKS[0]

    def test_rotation_skips_used_in_current_round(self):
        assert next_framework(["physics", "economics"]) == "information_theory"
