"""
Tests for the memory model update rule and the learning-phase state machine.
"""

import datetime
import math
import unittest

import pytest

from srs_engine.common.config import ForgettingConfig, PhaseConfig
from srs_engine.repetition.forgetting import ForgettingCurveModel, determine_phase
from srs_engine.repetition.models import LearningItem, LearningPhase

from srs_engine.tests.conftest import BASE_TIME


class TestDeterminePhase(unittest.TestCase):
    """Phase is a pure function of the updated counters."""

    def test_first_reviews_are_acquisition(self):
        for review_count in (0, 1, 2):
            self.assertEqual(determine_phase(review_count, 30.0, 5, 0), LearningPhase.ACQUISITION)
            self.assertEqual(determine_phase(review_count, 0.1, 0, 5), LearningPhase.ACQUISITION)

    def test_failure_streak_means_relearning(self):
        self.assertEqual(determine_phase(5, 30.0, 0, 2), LearningPhase.RELEARNING)

    def test_single_failure_is_not_relearning(self):
        self.assertEqual(determine_phase(5, 2.0, 0, 1), LearningPhase.CONSOLIDATION)

    def test_maintenance_needs_stability_and_streak(self):
        self.assertEqual(determine_phase(6, 8.0, 3, 0), LearningPhase.MAINTENANCE)
        self.assertEqual(determine_phase(6, 7.0, 3, 0), LearningPhase.CONSOLIDATION)
        self.assertEqual(determine_phase(6, 8.0, 2, 0), LearningPhase.CONSOLIDATION)

    def test_thresholds_come_from_config(self):
        config = PhaseConfig(acquisition_reviews=1, maintenance_stability_days=2, maintenance_success_streak=1)
        self.assertEqual(determine_phase(1, 3.0, 1, 0, config), LearningPhase.MAINTENANCE)


class TestCreateState(unittest.TestCase):

    def setUp(self):
        self.model = ForgettingCurveModel()

    def test_unseeded_item(self):
        item = LearningItem(item_id="a", difficulty_level=5)
        state = self.model.create_state("learner", item, BASE_TIME)

        self.assertAlmostEqual(state.stability, (1 - 4 / 9) * 0.5 * 2)
        self.assertEqual(state.memory_strength, 0.5)
        self.assertEqual(state.retrievability, 0.5)
        self.assertEqual(state.difficulty, 0.5)
        self.assertAlmostEqual(state.forgetting_curve_parameters.decay_rate, 0.1 + 0.5 * 0.3)
        self.assertEqual(state.forgetting_curve_parameters.asymptote, 0.1)
        self.assertEqual(state.review_count, 0)
        self.assertEqual((state.consecutive_successes, state.consecutive_failures), (0, 0))
        self.assertEqual(state.learning_phase, LearningPhase.ACQUISITION)
        self.assertEqual(state.personalization_factors.learner_ability, 0.5)
        self.assertEqual(state.personalization_factors.item_affinity, 0.7)
        self.assertEqual(state.personalization_factors.interference_susceptibility, 0.3)

    def test_seeded_with_success(self):
        item = LearningItem(item_id="a", difficulty_level=1)
        state = self.model.create_state("learner", item, BASE_TIME, initial_quality=0.9, learner_ability=0.8)

        self.assertAlmostEqual(state.stability, 1.8)
        self.assertEqual(state.review_count, 1)
        self.assertEqual(state.consecutive_successes, 1)
        self.assertEqual(state.personalization_factors.learner_ability, 0.8)

    def test_hardest_item_is_floored(self):
        item = LearningItem(item_id="a", difficulty_level=10)
        state = self.model.create_state("learner", item, BASE_TIME, initial_quality=0.2)

        self.assertEqual(state.stability, 0.1)
        self.assertEqual(state.consecutive_failures, 1)


class TestApplyReview:

    @pytest.fixture
    def model(self):
        return ForgettingCurveModel()

    @pytest.fixture
    def state(self, model):
        return model.create_state("learner", LearningItem(item_id="a", difficulty_level=5), BASE_TIME)

    def test_exact_update(self, model, state):
        at = BASE_TIME + datetime.timedelta(days=2)
        updated = model.apply_review(state, 0.9, at)

        decayed = 0.5 * math.exp(-2 / state.stability)
        assert updated.stability == pytest.approx(state.stability * 1.3)
        assert updated.memory_strength == pytest.approx((decayed + 0.9) / 2)
        assert updated.retrievability == 0.9
        assert updated.review_count == 1
        assert updated.last_review_date == at
        assert updated.forgetting_curve_parameters.initial_strength == updated.memory_strength
        assert updated.forgetting_curve_parameters.last_calculated == at

    def test_input_state_untouched(self, model, state):
        before = state.to_dict()
        model.apply_review(state, 0.1, BASE_TIME + datetime.timedelta(days=1))
        assert state.to_dict() == before

    def test_review_before_last_review_counts_no_elapsed_time(self, model, state):
        updated = model.apply_review(state, 0.5, BASE_TIME - datetime.timedelta(days=3))
        assert updated.memory_strength == pytest.approx((0.5 + 0.5) / 2)

    @pytest.mark.parametrize("quality", [0.0, 0.29, 0.3, 0.5, 0.7, 0.71, 1.0])
    def test_bounds_hold(self, model, state, quality):
        updated = model.apply_review(state, quality, BASE_TIME + datetime.timedelta(days=10))
        assert 0 <= updated.memory_strength <= 1
        assert updated.stability > 0

    def test_higher_quality_never_lowers_stability(self, model, state):
        at = BASE_TIME + datetime.timedelta(days=1)
        qualities = [i / 20 for i in range(21)]
        stabilities = [model.apply_review(state, q, at).stability for q in qualities]
        assert stabilities == sorted(stabilities)

    def test_middling_quality_keeps_streaks(self, model, state):
        at = BASE_TIME + datetime.timedelta(days=1)
        success = model.apply_review(state, 0.8, at)
        middling = model.apply_review(success, 0.5, at)
        assert middling.consecutive_successes == 1
        assert middling.consecutive_failures == 0
        assert middling.stability == success.stability

    def test_streaks_never_both_nonzero(self, model, state):
        current = state
        for i, quality in enumerate([0.9, 0.1, 0.5, 0.2, 0.95, 0.8, 0.0]):
            current = model.apply_review(current, quality, BASE_TIME + datetime.timedelta(days=i))
            assert current.consecutive_successes == 0 or current.consecutive_failures == 0

    def test_three_failures_from_maintenance_relearn(self, model, state):
        current = state
        for i in range(12):
            current = model.apply_review(current, 1.0, BASE_TIME + datetime.timedelta(days=i))
        assert current.learning_phase == LearningPhase.MAINTENANCE

        stabilities = [current.stability]
        for i in range(3):
            current = model.apply_review(current, 0.2, BASE_TIME + datetime.timedelta(days=20 + i))
            stabilities.append(current.stability)
        assert current.learning_phase == LearningPhase.RELEARNING
        assert all(later < earlier for earlier, later in zip(stabilities, stabilities[1:]))

    def test_repeated_failures_stop_at_floor(self):
        model = ForgettingCurveModel(ForgettingConfig(min_stability=0.2))
        state = model.create_state("learner", LearningItem(item_id="a"), BASE_TIME)
        for i in range(10):
            state = model.apply_review(state, 0.0, BASE_TIME + datetime.timedelta(hours=i))
        assert state.stability == 0.2
