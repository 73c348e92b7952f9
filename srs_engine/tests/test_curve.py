"""
Tests for forgetting curve fitting and analysis.
"""

import datetime
import math
import unittest

import numpy as np
import pytest

from srs_engine.common.config import CurveConfig
from srs_engine.common.error_handling import InsufficientDataError, NotFoundError
from srs_engine.repetition.curve import fit_curve
from srs_engine.repetition.models import ReviewUrgency

from srs_engine.tests.conftest import BASE_TIME, outcome

LEARNER = "learner-1"
HOURS = [0, 6, 12, 24, 48, 96, 168, 336]


def _retention(t, asymptote=0.2, initial=0.9, half_life=48.0):
    return asymptote + (initial - asymptote) * math.exp(-t / half_life)


class TestFitCurve(unittest.TestCase):

    def test_recovers_known_parameters(self):
        params = fit_curve(HOURS, [_retention(t) for t in HOURS])

        self.assertAlmostEqual(params.asymptotic_retention, 0.2, delta=0.03)
        self.assertAlmostEqual(params.initial_retention, 0.9, delta=0.03)
        self.assertAlmostEqual(params.half_life, 48.0, delta=48.0 * 0.1)
        self.assertGreater(params.r_squared, 0.99)
        self.assertEqual(params.decay_function, "exponential")

    def test_is_deterministic(self):
        retention = [0.8, 0.7, 0.75, 0.4, 0.5, 0.3]
        hours = [0, 5, 20, 40, 80, 200]
        self.assertEqual(fit_curve(hours, retention), fit_curve(hours, retention))

    def test_parameters_stay_in_range(self):
        # Rising retention pulls the unconstrained fit outside [0, 1]
        params = fit_curve([0, 10, 20], [0.1, 0.9, 1.0])
        self.assertTrue(0 <= params.asymptotic_retention <= params.initial_retention <= 1)
        self.assertTrue(0 <= params.r_squared <= 1)

    def test_identical_times_fall_back_to_default_half_life(self):
        params = fit_curve([5, 5, 5], [0.4, 0.9, 0.6])
        self.assertEqual(params.half_life, 24.0)
        self.assertEqual(params.initial_retention, 0.9)
        self.assertEqual(params.asymptotic_retention, 0.4)

    def test_constant_retention(self):
        params = fit_curve([0, 10, 30], [0.6, 0.6, 0.6])
        self.assertAlmostEqual(params.r_squared, 1.0)

    def test_half_life_is_on_grid(self):
        config = CurveConfig(half_life_grid_size=10)
        params = fit_curve(HOURS, [_retention(t) for t in HOURS], config)
        grid = np.geomspace(config.min_half_life_hours, config.max_half_life_hours, 10)
        self.assertTrue(np.isclose(grid, params.half_life).any())


@pytest.fixture
def reviewed(engine):
    """An item reviewed at the synthetic curve's sample points."""
    engine.add_item(LEARNER, {"item_id": "a"})
    for t in HOURS:
        engine.record_review(LEARNER, "a", outcome(
            _retention(t), at=BASE_TIME + datetime.timedelta(hours=t), confidence_level=1.0
        ))
    return engine


class TestAnalyzer:

    def test_single_session_is_insufficient(self, engine):
        engine.add_item(LEARNER, {"item_id": "a"})
        engine.record_review(LEARNER, "a", outcome(0.8))
        with pytest.raises(InsufficientDataError) as excinfo:
            engine.analyze_forgetting_curve(LEARNER, "a")
        assert excinfo.value.details["sessions"] == 1

    def test_unknown_item(self, engine):
        with pytest.raises(NotFoundError):
            engine.analyze_forgetting_curve(LEARNER, "missing")

    def test_analysis_contents(self, reviewed, clock):
        analysis = reviewed.analyze_forgetting_curve(LEARNER, "a")

        assert analysis.analysis_date == clock.now
        assert analysis.curve_parameters.half_life == pytest.approx(48.0, rel=0.1)
        points = analysis.historical_data_points
        assert [p.time_since_learning for p in points] == pytest.approx(HOURS)
        assert points[0].confidence_interval == (pytest.approx(0.7), 1.0)

        predictions = analysis.predictions
        assert [p.future_time_hours for p in predictions] == [2.0 ** k for k in range(10)]
        for prediction in predictions:
            assert prediction.urgency == ReviewUrgency.from_retention(prediction.predicted_retention)
        assert predictions[0].urgency == ReviewUrgency.LOW
        assert predictions[-1].urgency == ReviewUrgency.HIGH
        assert predictions[-1].optimal_review_probability == 0.9

        insights = analysis.personalization_insights
        assert insights.compared_to_average == 0.2
        assert insights.interference_susceptibility == 0.3

    def test_fitted_parameters_written_back(self, reviewed):
        analysis = reviewed.analyze_forgetting_curve(LEARNER, "a")
        curve = reviewed.get_memory_state(LEARNER, "a").forgetting_curve_parameters

        half_life_days = analysis.curve_parameters.half_life / 24
        assert curve.decay_rate == pytest.approx(math.log(2) / half_life_days)
        assert curve.asymptote == analysis.curve_parameters.asymptotic_retention
        assert curve.initial_strength == analysis.curve_parameters.initial_retention
        assert curve.last_calculated == analysis.analysis_date

    def test_interference_from_crowded_sessions(self, engine, clock):
        engine.add_item(LEARNER, {"item_id": "a"})
        for i in range(4):
            payload = outcome(0.2, at=clock.advance(hours=5))
            payload["context"] = {"concurrent_items_reviewed": 4}
            engine.record_review(LEARNER, "a", payload)

        insights = engine.analyze_forgetting_curve(LEARNER, "a").personalization_insights
        assert insights.interference_susceptibility == pytest.approx(0.5 * 0.3 + 0.5 * 1.0)
        assert "reduce_session_complexity" in insights.recommended_optimizations
        assert engine.get_memory_state(LEARNER, "a").personalization_factors.interference_susceptibility == \
            pytest.approx(0.65)

    def test_retention_factors_ranked(self, engine, clock):
        engine.add_item(LEARNER, {"item_id": "a"})
        for hour, quality in [(8, 0.9), (10, 0.85), (20, 0.4), (22, 0.3)]:
            payload = outcome(quality, at=BASE_TIME.replace(hour=hour))
            payload["context"] = {"time_of_day": hour}
            engine.record_review(LEARNER, "a", payload)

        insights = engine.analyze_forgetting_curve(LEARNER, "a").personalization_insights
        assert insights.strongest_retention_factors == ("morning_sessions",)
        assert "prioritize_morning_sessions" in insights.recommended_optimizations

    def test_background_analysis(self, reviewed):
        future = reviewed.analyze_in_background(LEARNER, "a")
        analysis = future.result(timeout=10)
        curve = reviewed.get_memory_state(LEARNER, "a").forgetting_curve_parameters
        assert curve.last_calculated == analysis.analysis_date

    def test_cached_analysis(self, reviewed):
        first = reviewed.get_forgetting_curve(LEARNER, "a")
        assert reviewed.get_forgetting_curve(LEARNER, "a") is first

        reviewed.record_review(LEARNER, "a", outcome(0.5))
        assert reviewed.get_forgetting_curve(LEARNER, "a") is not first

    def test_to_dict(self, reviewed):
        data = reviewed.analyze_forgetting_curve(LEARNER, "a").to_dict()
        assert data["curve_parameters"]["decay_function"] == "exponential"
        assert data["predictions"][0]["urgency"] == "low"
