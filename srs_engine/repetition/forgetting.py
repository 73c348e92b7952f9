"""
Forgetting Curve Memory Model

This module implements the memory model behind the default scheduling policy:
how a memory state is seeded when an item is first added, how a review outcome
updates strength, stability and the success/failure streaks, and the learning
phase state machine derived from the updated counters.

All functions here are deterministic and side-effect free; persistence and
locking belong to the review recorder.
"""

import math
import datetime
from typing import Optional

from srs_engine.common.config import ForgettingConfig, PhaseConfig
from srs_engine.common.logger import app_logger
from srs_engine.repetition.models import (
    ForgettingCurveParameters, LearningItem, LearningPhase, MemoryState,
    PersonalizationFactors
)

# Module logger
logger = app_logger.getChild("repetition.forgetting")


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


def determine_phase(
    review_count: int,
    stability: float,
    consecutive_successes: int,
    consecutive_failures: int,
    config: Optional[PhaseConfig] = None
) -> LearningPhase:
    """
    Derive the learning phase from review counters.

    Rules are checked in order: early reviews are always acquisition,
    repeated failures force relearning, and long stability with a success
    streak reaches maintenance.

    Args:
        review_count: Reviews recorded so far
        stability: Stability in days
        consecutive_successes: Current success streak
        consecutive_failures: Current failure streak
        config: Phase thresholds

    Returns:
        The learning phase
    """
    config = config or PhaseConfig()
    if review_count < config.acquisition_reviews:
        return LearningPhase.ACQUISITION
    if consecutive_failures > config.relearning_failure_streak:
        return LearningPhase.RELEARNING
    if (stability > config.maintenance_stability_days
            and consecutive_successes >= config.maintenance_success_streak):
        return LearningPhase.MAINTENANCE
    return LearningPhase.CONSOLIDATION


class ForgettingCurveModel:
    """
    Memory model update rule.

    A review of quality ``q`` first decays the stored retrievability over the
    elapsed days, then scales stability by a success or failure multiplier
    and averages the decayed retrievability with ``q`` into the new memory
    strength.
    """

    def __init__(
        self,
        config: Optional[ForgettingConfig] = None,
        phase_config: Optional[PhaseConfig] = None
    ):
        """
        Initialize the model.

        Args:
            config: Update-rule constants
            phase_config: Learning phase thresholds
        """
        self.config = config or ForgettingConfig()
        self.phase_config = phase_config or PhaseConfig()

    def is_success(self, quality: float) -> bool:
        return quality > self.config.success_threshold

    def is_failure(self, quality: float) -> bool:
        return quality < self.config.failure_threshold

    def stability_multiplier(self, quality: float) -> float:
        """
        Multiplier applied to stability (and to the next interval) for a quality.

        Args:
            quality: Response quality (0-1)

        Returns:
            Success multiplier, failure multiplier, or 1.0
        """
        if self.is_success(quality):
            return self.config.success_multiplier
        if self.is_failure(quality):
            return self.config.failure_multiplier
        return 1.0

    def initial_stability(self, difficulty_level: float, quality: Optional[float] = None) -> float:
        """
        Stability of a freshly added item.

        Args:
            difficulty_level: Item difficulty on the 1-10 scale
            quality: Initial response quality, if the item was seeded with one

        Returns:
            Stability in days
        """
        q0 = self.config.default_quality if quality is None else quality
        ease = 1 - (difficulty_level - 1) / 9
        return max(self.config.min_stability, self.config.base_stability * ease * q0 * 2)

    def create_state(
        self,
        learner_id: str,
        item: LearningItem,
        created_at: datetime.datetime,
        initial_quality: Optional[float] = None,
        learner_ability: Optional[float] = None
    ) -> MemoryState:
        """
        Seed the memory state for a newly assigned item.

        Args:
            learner_id: Learner identifier
            item: Item being added
            created_at: Creation time, used as the first review date
            initial_quality: Response quality of an initial learning sample
            learner_ability: Learner ability estimate (config default if None)

        Returns:
            The new memory state
        """
        q0 = self.config.default_quality if initial_quality is None else initial_quality
        stability = self.initial_stability(item.difficulty_level, initial_quality)
        seeded = initial_quality is not None
        successes = 1 if seeded and self.is_success(q0) else 0
        failures = 1 if seeded and self.is_failure(q0) else 0
        review_count = 1 if seeded else 0

        state = MemoryState(
            learner_id=learner_id,
            item_id=item.item_id,
            memory_strength=q0,
            stability=stability,
            retrievability=q0,
            difficulty=item.difficulty_level / 10,
            last_review_date=created_at,
            forgetting_curve_parameters=ForgettingCurveParameters(
                initial_strength=q0,
                decay_rate=self.config.base_decay_rate
                + (item.difficulty_level / 10) * self.config.difficulty_decay_rate,
                asymptote=self.config.default_asymptote,
                last_calculated=created_at
            ),
            personalization_factors=PersonalizationFactors(
                learner_ability=(self.config.default_learner_ability
                                 if learner_ability is None else learner_ability),
                item_affinity=self.config.default_item_affinity,
                interference_susceptibility=self.config.default_interference
            ),
            review_count=review_count,
            consecutive_successes=successes,
            consecutive_failures=failures,
            learning_phase=determine_phase(
                review_count, stability, successes, failures, self.phase_config
            )
        )
        logger.debug(
            f"Seeded {learner_id}/{item.item_id}: stability={stability:.3f}, strength={q0:.2f}"
        )
        return state

    def apply_review(
        self,
        state: MemoryState,
        quality: float,
        session_date: datetime.datetime
    ) -> MemoryState:
        """
        Apply one review to a memory state.

        The input state is not modified; a new state is returned.

        Args:
            state: Current memory state
            quality: Response quality (0-1)
            session_date: When the review happened

        Returns:
            Updated memory state (next review date not yet set)
        """
        days_elapsed = state.days_since_review(session_date)
        decayed = state.retrievability * math.exp(-days_elapsed / state.stability)

        new_stability = max(
            self.config.min_stability,
            state.stability * self.stability_multiplier(quality)
        )
        new_strength = _clamp((decayed + quality) / 2)

        successes = state.consecutive_successes
        failures = state.consecutive_failures
        if self.is_success(quality):
            successes, failures = successes + 1, 0
        elif self.is_failure(quality):
            successes, failures = 0, failures + 1

        updated = state.copy()
        updated.stability = new_stability
        updated.memory_strength = new_strength
        updated.retrievability = _clamp(quality)
        updated.consecutive_successes = successes
        updated.consecutive_failures = failures
        updated.review_count = state.review_count + 1
        updated.last_review_date = session_date
        updated.forgetting_curve_parameters.initial_strength = new_strength
        updated.forgetting_curve_parameters.last_calculated = session_date
        updated.learning_phase = determine_phase(
            updated.review_count, new_stability, successes, failures, self.phase_config
        )
        return updated
