"""
Tests for the Leitner and SuperMemo policies and per-learner policy binding.
"""

import datetime
import unittest

import pytest

from srs_engine.common.config import SuperMemoConfig
from srs_engine.common.error_handling import PolicyError
from srs_engine.repetition.forgetting import ForgettingCurveModel
from srs_engine.repetition.models import LearningItem, SchedulingPolicy
from srs_engine.repetition.variants import (
    LeitnerBoxSystem, PolicyRegistry, SuperMemoAlgorithm, quality_to_grade
)

from srs_engine.tests.conftest import BASE_TIME, outcome

LEARNER = "learner-1"
DAY = datetime.timedelta(days=1)


def _state(item_id="a", stability=1.0, difficulty_level=5, successes=0):
    state = ForgettingCurveModel().create_state(LEARNER, LearningItem(item_id=item_id, difficulty_level=difficulty_level), BASE_TIME)
    state.stability = stability
    state.consecutive_successes = successes
    return state


class TestLeitnerBoxSystem(unittest.TestCase):

    def setUp(self):
        self.system = LeitnerBoxSystem(LEARNER)

    def test_box_intervals_double(self):
        self.assertEqual([b.review_interval_days for b in self.system.boxes], [1, 2, 4, 8, 16])
        self.assertEqual([b.consecutive_successes_required for b in self.system.boxes], [2, 3, 4, 5, 6])

    def test_promotion_after_streak(self):
        first = self.system.review("a", 0.9, 0.9, BASE_TIME)
        self.assertEqual(first, BASE_TIME + DAY)
        self.assertEqual(self.system.cards["a"].box, 1)

        second = self.system.review("a", 0.9, 0.9, BASE_TIME)
        self.assertEqual(second, BASE_TIME + 2 * DAY)
        self.assertEqual(self.system.cards["a"].box, 2)
        self.assertEqual(self.system.cards["a"].streak, 0)

    def test_low_confidence_blocks_promotion(self):
        for _ in range(4):
            self.system.review("a", 0.9, 0.6, BASE_TIME)
        self.assertEqual(self.system.cards["a"].box, 1)
        self.assertEqual(self.system.cards["a"].streak, 4)

    def test_failure_demotes_to_first_box(self):
        for _ in range(2):
            self.system.review("a", 0.9, 0.9, BASE_TIME)
        next_review = self.system.review("a", 0.1, 0.9, BASE_TIME)
        self.assertEqual(self.system.cards["a"].box, 1)
        self.assertEqual(next_review, BASE_TIME + DAY)

    def test_confidence_drop_demotes(self):
        for _ in range(2):
            self.system.review("a", 0.9, 0.9, BASE_TIME)
        self.system.review("a", 0.5, 0.6, BASE_TIME)
        self.assertEqual(self.system.cards["a"].box, 2)
        self.system.review("a", 0.5, 0.3, BASE_TIME)
        self.assertEqual(self.system.cards["a"].box, 1)

    def test_graduation_bonus_at_top_box(self):
        system = LeitnerBoxSystem(LEARNER, max_boxes=2)
        for _ in range(2):
            system.review("a", 1.0, 1.0, BASE_TIME)
        for _ in range(2):
            system.review("a", 1.0, 1.0, BASE_TIME)
        graduated = system.review("a", 1.0, 1.0, BASE_TIME)

        self.assertEqual(system.cards["a"].box, 2)
        self.assertEqual(graduated, BASE_TIME + 9 * DAY)

    def test_seed_from_memory_state(self):
        self.system.seed_from_memory_state(_state("a", stability=5.0))
        self.system.seed_from_memory_state(_state("b", stability=0.5))
        self.assertEqual(self.system.items_in_box(3), ["a"])
        self.assertEqual(self.system.items_in_box(1), ["b"])

    def test_invalid_configuration(self):
        with self.assertRaises(PolicyError):
            LeitnerBoxSystem(LEARNER, max_boxes=0)
        with self.assertRaises(PolicyError):
            LeitnerBoxSystem(LEARNER, initial_interval=0)

    def test_dict_round_trip(self):
        self.system.review("a", 0.9, 0.9, BASE_TIME)
        restored = LeitnerBoxSystem.from_dict(self.system.to_dict())
        self.assertEqual(restored.cards, self.system.cards)
        self.assertEqual(restored.boxes, self.system.boxes)

    def test_checkpoint_and_restore(self):
        self.system.review("a", 0.9, 0.9, BASE_TIME)
        saved = self.system.checkpoint("a")
        self.system.review("a", 0.9, 0.9, BASE_TIME + DAY)
        self.assertEqual(self.system.cards["a"].box, 2)
        self.assertEqual(saved.box, 1)

        self.system.restore("a", saved)
        self.assertEqual((self.system.cards["a"].box, self.system.cards["a"].streak), (1, 1))
        self.assertEqual(self.system.cards["a"].next_review, BASE_TIME + DAY)

    def test_restore_unenrolls_new_item(self):
        self.assertIsNone(self.system.checkpoint("a"))
        self.system.review("a", 0.9, 0.9, BASE_TIME)
        self.system.restore("a", None)
        self.assertEqual(self.system.enrolled_items(), [])


class TestSuperMemo(unittest.TestCase):

    def setUp(self):
        self.algorithm = SuperMemoAlgorithm(LEARNER)

    def test_quality_to_grade(self):
        self.assertEqual(quality_to_grade(0.0), 0)
        self.assertEqual(quality_to_grade(0.5), 3)
        self.assertEqual(quality_to_grade(0.69), 3)
        self.assertEqual(quality_to_grade(1.0), 5)

    def test_interval_sequence(self):
        dates = [self.algorithm.review("a", 1.0, 1.0, BASE_TIME) for _ in range(3)]
        item = self.algorithm.items["a"]

        self.assertEqual(dates, [BASE_TIME + DAY, BASE_TIME + 6 * DAY, BASE_TIME + 17 * DAY])
        self.assertEqual(item.repetition_number, 3)
        self.assertAlmostEqual(item.easiness_factor, 2.8)
        self.assertEqual(item.last_quality_response, 5)

    def test_failing_grade_resets(self):
        for _ in range(3):
            self.algorithm.review("a", 1.0, 1.0, BASE_TIME)
        next_review = self.algorithm.review("a", 0.4, 1.0, BASE_TIME)
        item = self.algorithm.items["a"]

        self.assertEqual(next_review, BASE_TIME + DAY)
        self.assertEqual(item.repetition_number, 0)
        self.assertAlmostEqual(item.easiness_factor, 2.8 - 0.32)

    def test_checkpoint_and_restore(self):
        self.algorithm.review("a", 1.0, 1.0, BASE_TIME)
        saved = self.algorithm.checkpoint("a")
        self.algorithm.review("a", 0.4, 1.0, BASE_TIME)
        self.algorithm.restore("a", saved)

        item = self.algorithm.items["a"]
        self.assertEqual(item.repetition_number, 1)
        self.assertAlmostEqual(item.easiness_factor, 2.6)

    def test_easiness_is_clamped(self):
        self.assertEqual(self.algorithm.update_easiness(1.3, 0), 1.3)
        self.assertEqual(self.algorithm.update_easiness(5.0, 5), 5.0)

    def test_interval_is_capped(self):
        algorithm = SuperMemoAlgorithm(LEARNER, config=SuperMemoConfig(max_interval=30))
        for _ in range(6):
            next_review = algorithm.review("a", 1.0, 1.0, BASE_TIME)
        self.assertEqual(next_review, BASE_TIME + 30 * DAY)

    def test_unsupported_version(self):
        with self.assertRaises(PolicyError):
            SuperMemoAlgorithm(LEARNER, version="SM-18")

    def test_seed_from_memory_state(self):
        self.algorithm.seed_from_memory_state(_state("a", stability=3.4, difficulty_level=2, successes=2))
        item = self.algorithm.items["a"]
        self.assertAlmostEqual(item.easiness_factor, 2.8)
        self.assertEqual(item.interval, 3)
        self.assertEqual(item.repetition_number, 2)


class TestPolicyRegistry(unittest.TestCase):

    def setUp(self):
        self.registry = PolicyRegistry()

    def test_default_policy(self):
        self.assertEqual(self.registry.active_policy(LEARNER), SchedulingPolicy.FORGETTING_CURVE)
        self.assertIsNone(self.registry.get(LEARNER))

    def test_bind_by_name(self):
        variant = self.registry.bind(LEARNER, "supermemo")
        self.assertIsInstance(variant, SuperMemoAlgorithm)
        self.assertEqual(self.registry.active_policy(LEARNER), SchedulingPolicy.SUPERMEMO)

    def test_unknown_policy(self):
        with self.assertRaises(PolicyError):
            self.registry.bind(LEARNER, "fsrs")

    def test_unbind(self):
        self.registry.bind(LEARNER, SchedulingPolicy.LEITNER)
        self.registry.unbind(LEARNER)
        self.assertIsNone(self.registry.get(LEARNER))


class TestPolicySwitching:

    @pytest.fixture
    def tracked(self, engine):
        engine.add_item(LEARNER, {"item_id": "a"})
        engine.add_item(LEARNER, {"item_id": "b"})
        engine.add_item(LEARNER, {"item_id": "c"})
        engine.archive_item(LEARNER, "c")
        return engine

    def test_switch_without_migration_enrolls_lazily(self, tracked, clock):
        system = tracked.initialize_leitner_system(LEARNER)
        assert tracked.active_policy(LEARNER) == SchedulingPolicy.LEITNER
        assert system.enrolled_items() == []

        result = tracked.record_review(LEARNER, "a", outcome(0.9, at=clock.now))
        assert system.enrolled_items() == ["a"]
        assert result.next_review_date == clock.now + DAY
        assert tracked.get_memory_state(LEARNER, "a").next_review_date == clock.now + DAY

    def test_switch_with_migration_seeds_active_items(self, tracked):
        algorithm = tracked.initialize_supermemo(LEARNER, migrate=True)
        assert algorithm.enrolled_items() == ["a", "b"]

    def test_switch_discards_previous_state(self, tracked):
        tracked.initialize_leitner_system(LEARNER, migrate=True)
        tracked.initialize_supermemo(LEARNER)
        fresh = tracked.initialize_leitner_system(LEARNER)
        assert fresh.enrolled_items() == []

    def test_memory_model_still_updates_under_variant(self, tracked):
        before = tracked.get_memory_state(LEARNER, "a").stability
        tracked.initialize_supermemo(LEARNER)
        result = tracked.record_review(LEARNER, "a", outcome(0.9))
        assert result.state.stability == pytest.approx(before * 1.3)

    def test_return_to_default_policy(self, tracked, clock):
        tracked.initialize_supermemo(LEARNER)
        tracked.switch_policy(LEARNER, SchedulingPolicy.FORGETTING_CURVE)
        result = tracked.record_review(LEARNER, "a", outcome(0.9, at=clock.now))
        assert result.next_review_date == tracked.calculator.next_review_date(result.state, 0.9, clock.now)

    def test_invalid_options(self, tracked):
        with pytest.raises(PolicyError):
            tracked.initialize_leitner_system(LEARNER, max_boxes=0)
        assert tracked.active_policy(LEARNER) == SchedulingPolicy.FORGETTING_CURVE

    def test_switch_invalidates_schedule(self, tracked):
        tracked.generate_schedule(LEARNER, horizon_days=2)
        tracked.initialize_supermemo(LEARNER)
        assert tracked.scheduler.latest_schedule(LEARNER) is None
