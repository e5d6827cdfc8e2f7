"""
Tests for embedding distances, novelty and stagnation detection.
"""

import math

import numpy as np
import pytest

from crucible.blackboard import TrajectoryPoint
from crucible.embedding import (
    StagnationDetector,
    StagnationStatus,
    as_vector,
    cosine_similarity,
    euclidean_distance,
    novelty_bonus,
    novelty_score,
    safe_distance,
)


def _walk(step: float, count: int, dims: int = 3):
    """Points moving `step` along the first axis each time."""
    return [[i * step] + [0.0] * (dims - 1) for i in range(count)]


class TestDistances:

    def test_euclidean(self):
        assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)

    def test_symmetric(self):
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -1.0]
        assert euclidean_distance(a, b) == pytest.approx(euclidean_distance(b, a))

    def test_identity_is_zero(self):
        assert euclidean_distance([1.0, 2.0], [1.0, 2.0]) == 0.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(ValueError):
            euclidean_distance([1.0, 2.0], [1.0, 2.0, 3.0])

    @pytest.mark.parametrize("a,b", [
        (None, [1.0]),
        ([], []),
        ([1.0, float("nan")], [1.0, 2.0]),
        ([[1.0], [2.0]], [1.0, 2.0]),
        (["x", "y"], [1.0, 2.0]),
        ([1.0, 2.0], [1.0, 2.0, 3.0]),
    ])
    def test_safe_distance_malformed_is_zero(self, a, b):
        assert safe_distance(a, b) == 0.0

    def test_as_vector(self):
        assert as_vector(None) is None
        assert as_vector([float("inf")]) is None
        np.testing.assert_array_equal(as_vector((1, 2)), np.array([1.0, 2.0]))

    def test_cosine(self):
        assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


class TestStagnationDetector:

    def test_small_moves_are_stagnant(self):
        result = StagnationDetector().check(_walk(0.05, 5))

        assert result.status == StagnationStatus.STAGNANT
        assert result.average_distance == pytest.approx(0.05)
        assert result.points_considered == 5
        assert result.distances_considered == 4

    def test_large_moves_are_moving(self):
        result = StagnationDetector().check(_walk(0.5, 5))
        assert result.status == StagnationStatus.MOVING
        assert not result.is_stagnant

    def test_too_few_points_undefined(self):
        result = StagnationDetector().check(_walk(0.0, 3))
        assert result.status == StagnationStatus.UNDEFINED
        assert result.average_distance is None
        assert not result.is_stagnant

    def test_only_lookback_tail_considered(self):
        # Ten big jumps followed by ten tiny ones
        early = _walk(5.0, 10)
        late = [[early[-1][0] + i * 0.01, 0.0, 0.0] for i in range(1, 11)]

        result = StagnationDetector(window=5, lookback=10).check(early + late)

        assert result.points_considered == 10
        assert result.is_stagnant

    def test_accepts_trajectory_points(self):
        points = [
            TrajectoryPoint(cycle_number=i + 1, claim_text="c", support=0.5, embedding=tuple(v))
            for i, v in enumerate(_walk(0.01, 6))
        ]
        assert StagnationDetector().is_stagnant(points)

    def test_missing_embeddings_count_as_no_movement(self):
        points = [
            TrajectoryPoint(cycle_number=i + 1, claim_text="c", support=0.5, embedding=None)
            for i in range(5)
        ]
        result = StagnationDetector().check(points)
        assert result.average_distance == 0.0

    def test_window_must_hold_a_move(self):
        with pytest.raises(ValueError):
            StagnationDetector(window=1)

    def test_threshold_boundary_is_not_stagnant(self):
        detector = StagnationDetector(movement_threshold=0.5)
        assert detector.check(_walk(0.5, 5)).status == StagnationStatus.MOVING


class TestNovelty:

    def test_empty_history_is_fully_novel(self):
        assert novelty_score([1.0, 0.0], []) == 1.0

    def test_missing_embedding_not_novel(self):
        assert novelty_score(None, [[0.0, 0.0]]) == 0.0

    def test_scaled_by_nearest_point(self):
        history = [[0.0, 0.0], [4.0, 0.0]]
        assert novelty_score([5.0, 0.0], history, space_diameter=10.0) == pytest.approx(0.1)

    def test_clipped_to_one(self):
        assert novelty_score([100.0, 0.0], [[0.0, 0.0]], space_diameter=10.0) == 1.0

    def test_bonus_bounded(self):
        bonus = novelty_bonus([3.0, 4.0], [[0.0, 0.0]], max_bonus=0.05, space_diameter=10.0)
        assert bonus == pytest.approx(0.025)
        assert 0.0 <= bonus <= 0.05
        assert not math.isnan(bonus)
