"""
Tests for claim change detection.

Tests cover:
- Concept extraction and word-level diffs
- Change classification (refinement, pivot, expansion, contraction)
- Similarity gating between consecutive trajectory points
- Serialization of recorded transitions
"""

import pytest

from crucible.blackboard.records import TrajectoryPoint
from crucible.evolution import (
    ChangeType,
    ClaimChangeDetector,
    ClaimTransition,
    classify_change,
    concept_diff,
    extract_concepts,
)


def _point(cycle: int, claim: str, embedding=None) -> TrajectoryPoint:
    return TrajectoryPoint(cycle_number=cycle, claim_text=claim, support=0.5, embedding=embedding)


class TestConceptDiff:

    def test_extract_concepts_drops_stop_words_and_duplicates(self):
        assert extract_concepts("The cell and the cell's membrane") == ["cell", "cell's", "membrane"]

    def test_additions_and_removals(self):
        additions, removals = concept_diff(
            "Cells export entropy to stay ordered",
            "Cells export heat to stay ordered",
        )
        assert additions == ["heat"]
        assert removals == ["entropy"]

    def test_diff_is_capped(self):
        additions, _ = concept_diff("x", "one two three four five six seven")
        assert len(additions) == 5


class TestClassifyChange:

    def test_expansion(self):
        assert classify_change("Order costs energy", "Order costs energy and time") == ChangeType.EXPANSION

    def test_contraction(self):
        assert classify_change("Order costs energy and time", "Order costs energy") == ChangeType.CONTRACTION

    def test_refinement_when_concepts_swap(self):
        assert classify_change("Order costs energy", "Order costs heat") == ChangeType.REFINEMENT

    def test_pivot_on_low_similarity(self):
        assert classify_change("Order costs energy", "Order costs energy and time", similarity=0.2) == ChangeType.PIVOT

    def test_pivot_when_nothing_is_shared(self):
        assert classify_change("Order costs energy", "Markets clear slowly") == ChangeType.PIVOT


class TestClaimChangeDetector:

    def test_identical_text_is_no_change(self):
        detector = ClaimChangeDetector()
        assert detector.detect(_point(1, "Order costs energy"), _point(2, "  order costs ENERGY ")) is None

    def test_high_similarity_is_no_change(self):
        detector = ClaimChangeDetector(similarity_threshold=0.95)
        previous = _point(1, "Order costs energy", embedding=(1.0, 0.0))
        current = _point(2, "Order requires energy", embedding=(0.99, 0.01))

        assert detector.detect(previous, current) is None

    def test_records_transition_fields(self):
        detector = ClaimChangeDetector()
        previous = _point(2, "Order costs energy", embedding=(1.0, 0.0))
        current = _point(3, "Order costs energy and time", embedding=(0.8, 0.6))

        transition = detector.detect(previous, current, trigger_agent="explorer")

        assert transition.from_cycle == 2
        assert transition.to_cycle == 3
        assert transition.previous_claim == "Order costs energy"
        assert transition.new_claim == "Order costs energy and time"
        assert transition.trigger_agent == "explorer"
        assert transition.similarity == pytest.approx(0.8)
        assert transition.change_type == ChangeType.EXPANSION
        assert transition.diff_additions == ("time",)
        assert transition.diff_removals == ()

    def test_missing_embeddings_fall_back_to_text(self):
        detector = ClaimChangeDetector()
        transition = detector.detect(_point(1, "Order costs energy"), _point(2, "Order costs heat"))

        assert transition.similarity is None
        assert transition.change_type == ChangeType.REFINEMENT

    def test_mismatched_embeddings_fall_back_to_text(self):
        detector = ClaimChangeDetector()
        previous = _point(1, "Order costs energy", embedding=(1.0, 0.0))
        current = _point(2, "Order costs heat", embedding=(1.0, 0.0, 0.0))

        assert detector.detect(previous, current).similarity is None

    def test_to_dict_round_trip(self):
        transition = ClaimChangeDetector().detect(
            _point(1, "Order costs energy"), _point(2, "Order costs energy and time"), "steelman"
        )
        data = transition.to_dict()

        assert data["change_type"] == "expansion"
        assert data["diff_additions"] == ["time"]
        assert ClaimTransition.from_dict(data) == transition
