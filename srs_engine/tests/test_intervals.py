"""
Tests for the default interval calculator.
"""

import datetime
import unittest

from srs_engine.common.config import IntervalConfig
from srs_engine.repetition.forgetting import ForgettingCurveModel
from srs_engine.repetition.intervals import IntervalCalculator, round_half_up
from srs_engine.repetition.models import LearningItem

from srs_engine.tests.conftest import BASE_TIME


class TestRoundHalfUp(unittest.TestCase):

    def test_halves_round_up(self):
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(2.49), 2)
        self.assertEqual(round_half_up(0.0), 0)


class TestIntervalCalculator(unittest.TestCase):

    def setUp(self):
        self.model = ForgettingCurveModel()
        self.calculator = IntervalCalculator(IntervalConfig(), self.model)
        self.state = self.model.create_state("learner", LearningItem(item_id="a"), BASE_TIME)

    def _with_stability(self, stability):
        state = self.state.copy()
        state.stability = stability
        return state

    def test_success_stretches_interval(self):
        state = self._with_stability(10.0)
        self.assertEqual(self.calculator.interval(state, 0.9), datetime.timedelta(days=13))

    def test_failure_shrinks_interval(self):
        state = self._with_stability(10.0)
        self.assertEqual(self.calculator.interval(state, 0.1), datetime.timedelta(days=7))

    def test_middling_quality_uses_stability(self):
        state = self._with_stability(10.0)
        self.assertEqual(self.calculator.interval(state, 0.5), datetime.timedelta(days=10))
        self.assertEqual(self.calculator.interval(state, None), datetime.timedelta(days=10))

    def test_floor_is_four_hours(self):
        state = self._with_stability(0.1)
        self.assertEqual(self.calculator.interval(state, 0.1), datetime.timedelta(hours=4))

    def test_ceiling_is_a_year(self):
        state = self._with_stability(1000.0)
        self.assertEqual(self.calculator.interval(state, 1.0), datetime.timedelta(days=365))

    def test_huge_stability_does_not_overflow(self):
        state = self._with_stability(1e12)
        self.assertEqual(self.calculator.interval(state, 1.0), datetime.timedelta(days=365))

    def test_next_review_date(self):
        state = self._with_stability(2.0)
        at = BASE_TIME + datetime.timedelta(days=3)
        self.assertEqual(self.calculator.next_review_date(state, 0.8, at), at + datetime.timedelta(days=3))

    def test_interval_days_is_fractional_at_floor(self):
        state = self._with_stability(0.2)
        self.assertAlmostEqual(self.calculator.interval_days(state, 0.5), 4 / 24)

    def test_custom_bounds(self):
        calculator = IntervalCalculator(IntervalConfig(min_interval_hours=48, max_interval_days=5), self.model)
        self.assertEqual(calculator.interval(self._with_stability(0.5), 0.5), datetime.timedelta(days=2))
        self.assertEqual(calculator.interval(self._with_stability(50), 0.5), datetime.timedelta(days=5))
