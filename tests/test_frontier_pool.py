"""
Tests for the FrontierPool.
"""

import random
import threading

import pytest

from crucible.frontier import FrontierPool, idea_id_for, selection_weight


class TestSponsorship:

    def test_same_text_is_one_idea(self):
        pool = FrontierPool()
        pool.add_idea("Entropy as an accounting identity", "steelman")
        idea = pool.add_idea("  entropy as an ACCOUNTING identity ", "cartographer")

        assert len(pool) == 1
        assert idea.sponsor_count == 2
        assert idea.idea_id == idea_id_for("Entropy as an accounting identity")

    def test_repeat_sponsor_counted_once(self):
        pool = FrontierPool()
        pool.add_idea("Entropy as an accounting identity", "steelman")
        idea = pool.add_idea("Entropy as an accounting identity", "steelman")
        assert idea.sponsor_count == 1

    def test_blank_text_rejected(self):
        with pytest.raises(ValueError):
            FrontierPool().add_idea("   ", "steelman")

    def test_concurrent_sponsors_all_counted(self):
        pool = FrontierPool()

        def _sponsor(i):
            pool.add_idea("Shared idea", f"sponsor-{i}")

        threads = [threading.Thread(target=_sponsor, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert pool.ideas()[0].sponsor_count == 20


class TestEligibility:

    def test_needs_two_sponsors(self):
        pool = FrontierPool(min_sponsors=2)
        idea = pool.add_idea("Lonely idea", "steelman")
        assert not pool.has_eligible()
        assert pool.select_weighted(random.Random(0)) is None

        pool.add_idea("Lonely idea", "cartographer")
        assert pool.has_eligible()
        assert [i.idea_id for i in pool.eligible()] == [idea.idea_id]

    def test_selection_activates(self):
        pool = FrontierPool()
        pool.add_idea("Chosen idea", "a")
        pool.add_idea("Chosen idea", "b")

        selected = pool.select_weighted(random.Random(1))

        assert selected.activated
        assert pool.get(selected.idea_id).activated
        assert not pool.has_eligible()
        assert pool.select_weighted(random.Random(1)) is None

    def test_activate_only_once(self):
        pool = FrontierPool()
        idea = pool.add_idea("Idea", "a")
        assert pool.activate(idea.idea_id) is True
        assert pool.activate(idea.idea_id) is False
        assert pool.activate("unknown") is False


class TestWeights:

    def test_weight_favours_sponsors_and_youth(self):
        assert selection_weight(4, 0) > selection_weight(2, 0)
        assert selection_weight(2, 0) > selection_weight(2, 3)

    def test_weighted_draw_prefers_heavier_idea(self):
        rng = random.Random(3)
        picks = {"Popular idea": 0, "Niche idea": 0}
        for _ in range(200):
            pool = FrontierPool(min_sponsors=1)
            for sponsor in ("a", "b", "c", "d", "e", "f", "g", "h"):
                pool.add_idea("Popular idea", sponsor)
            pool.add_idea("Niche idea", "a")
            picks[pool.select_weighted(rng).idea_text] += 1

        assert picks["Popular idea"] > picks["Niche idea"]

    def test_best_unactivated_prefers_sponsors(self):
        pool = FrontierPool()
        pool.add_idea("Weak idea", "a")
        pool.add_idea("Strong idea", "a")
        pool.add_idea("Strong idea", "b")

        assert pool.best_unactivated().idea_text == "Strong idea"


class TestAging:

    def test_ideas_expire_after_max_age(self):
        pool = FrontierPool(max_age=2)
        idea = pool.add_idea("Short-lived idea", "a")

        assert pool.age() == []
        assert pool.age() == []
        assert pool.get(idea.idea_id).cycles_alive == 2
        assert pool.age() == [idea.idea_id]
        assert len(pool) == 0
