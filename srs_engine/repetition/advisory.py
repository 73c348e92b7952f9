"""
Advisory Collaborator

An optional external service may suggest review intervals and daily review
windows. Every call goes through ``GuardedAdvisor``, which runs it on the
background executor under a timeout, validates the response against the
pydantic schemas below, and falls back to deterministic values when the
service is disabled, slow, failing, or returns something malformed.
"""

import datetime
import concurrent.futures
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from srs_engine.common.config import AdvisoryConfig
from srs_engine.common.error_handling import (
    AdvisoryError, AdvisoryTimeoutError, DataValidationError, log_error
)
from srs_engine.common.logger import app_logger
from srs_engine.common.threading import BackgroundExecutor
from srs_engine.common.validation import parse_model
from srs_engine.repetition.intervals import IntervalCalculator
from srs_engine.repetition.models import MemoryState, ReviewSession

# Module logger
logger = app_logger.getChild("repetition.advisory")

FALLBACK_SOURCE = "fallback"
ADVISORY_SOURCE = "advisory"


class IntervalRecommendation(BaseModel):
    """Suggested interval for one item, in days"""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    item_id: str = Field(min_length=1)
    current_interval: float = Field(ge=0)
    optimized_interval: float = Field(gt=0)
    confidence: float = Field(ge=0, le=1)
    rationale: str = ""


class IntervalOptimization(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    learner_id: str
    recommendations: List[IntervalRecommendation] = Field(default_factory=list)
    overall_improvement: float = Field(default=0.0, ge=0, le=1)
    personalized_factors: List[str] = Field(default_factory=list)
    source: str = ADVISORY_SOURCE


class ReviewWindow(BaseModel):
    """A block of the day suited to reviewing"""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=1, le=24)
    readiness_score: float = Field(ge=0, le=1)
    expected_performance: float = Field(ge=0, le=1)
    recommended_item_types: List[str] = Field(default_factory=list)
    session_length_minutes: float = Field(default=30, gt=0)

    @model_validator(mode='after')
    def check_order(self) -> 'ReviewWindow':
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be after start_hour")
        return self


class OptimalReviewTimes(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    learner_id: str
    target_date: datetime.date
    windows: List[ReviewWindow] = Field(min_length=1)
    source: str = ADVISORY_SOURCE


# Windows used when no advisory answer is available
DEFAULT_REVIEW_WINDOWS = (
    ReviewWindow(start_hour=9, end_hour=11, readiness_score=0.9, expected_performance=0.85,
                 recommended_item_types=["concept", "principle"], session_length_minutes=45),
    ReviewWindow(start_hour=15, end_hour=17, readiness_score=0.8, expected_performance=0.75,
                 recommended_item_types=["fact", "vocabulary"], session_length_minutes=30),
    ReviewWindow(start_hour=19, end_hour=21, readiness_score=0.7, expected_performance=0.7,
                 recommended_item_types=["procedure", "skill"], session_length_minutes=30),
)


class AdvisoryService(ABC):
    """
    Interface of an external advisory service.

    Implementations may return plain mappings; responses are validated by
    the guarded wrapper before use.
    """

    @abstractmethod
    def suggest_intervals(
        self,
        states: Sequence[MemoryState],
        history: Dict[str, List[ReviewSession]]
    ) -> Dict[str, Any]:
        """
        Suggest intervals for the given states.

        Args:
            states: Memory states to optimize
            history: Review history per item id

        Returns:
            Mapping with ``recommendations``, ``overall_improvement`` and
            ``personalized_factors``
        """

    @abstractmethod
    def suggest_review_windows(self, profile_summary: Dict[str, Any]) -> Dict[str, Any]:
        """
        Suggest review windows for a learner.

        Args:
            profile_summary: Learner profile summary

        Returns:
            Mapping with a ``windows`` list
        """


class GuardedAdvisor:
    """
    Runs advisory calls with a timeout and a deterministic fallback.

    Advisory failures never reach the caller; they are logged and replaced
    by fallback output tagged with ``source="fallback"``.
    """

    def __init__(
        self,
        service: Optional[AdvisoryService],
        executor: BackgroundExecutor,
        config: Optional[AdvisoryConfig] = None,
        calculator: Optional[IntervalCalculator] = None
    ):
        self.service = service
        self.executor = executor
        self.config = config or AdvisoryConfig()
        self.calculator = calculator or IntervalCalculator()

    @property
    def active(self) -> bool:
        return self.config.enabled and self.service is not None

    def _call(self, operation: str, func, *args) -> Dict[str, Any]:
        try:
            response = self.executor.call_with_timeout(func, *args, timeout=self.config.timeout_seconds)
        except concurrent.futures.TimeoutError:
            raise AdvisoryTimeoutError(operation, self.config.timeout_seconds)
        except Exception as e:
            raise AdvisoryError(f"Advisory call {operation} failed: {e}", operation, cause=e)
        if not isinstance(response, dict):
            raise AdvisoryError(
                f"Advisory call {operation} returned {type(response).__name__}, expected a mapping",
                operation
            )
        return response

    # -- intervals -------------------------------------------------------

    def fallback_intervals(
        self,
        learner_id: str,
        states: Sequence[MemoryState],
        history: Dict[str, List[ReviewSession]]
    ) -> IntervalOptimization:
        """
        Intervals from the default calculator.

        The optimized interval uses the quality of the last recorded review,
        or no adjustment when the item has no history.
        """
        recommendations = []
        for state in states:
            sessions = history.get(state.item_id) or []
            quality = sessions[-1].performance.response_quality if sessions else None
            recommendations.append(IntervalRecommendation(
                item_id=state.item_id,
                current_interval=state.stability,
                optimized_interval=self.calculator.interval_days(state, quality),
                confidence=self.config.fallback_confidence,
                rationale="Based on memory stability and the last review outcome"
            ))
        return IntervalOptimization(
            learner_id=learner_id,
            recommendations=recommendations,
            overall_improvement=self.config.fallback_improvement,
            personalized_factors=["stability_based_adjustment"],
            source=FALLBACK_SOURCE
        )

    def optimize_intervals(
        self,
        learner_id: str,
        states: Sequence[MemoryState],
        history: Dict[str, List[ReviewSession]]
    ) -> IntervalOptimization:
        """
        Interval suggestions for a learner's items.

        Args:
            learner_id: Learner identifier
            states: Memory states to optimize
            history: Review history per item id

        Returns:
            Validated advisory suggestions, or the deterministic fallback
        """
        if not self.active:
            return self.fallback_intervals(learner_id, states, history)

        operation = "suggest_intervals"
        try:
            response = self._call(operation, self.service.suggest_intervals, list(states), history)
            result = parse_model(IntervalOptimization, {
                **response, "learner_id": learner_id, "source": ADVISORY_SOURCE
            })
            known = {s.item_id for s in states}
            unknown = sorted({r.item_id for r in result.recommendations} - known)
            if unknown:
                raise AdvisoryError(f"Advisory suggested unknown items: {unknown}", operation)
            return result
        except DataValidationError as e:
            log_error(AdvisoryError(f"Malformed advisory response: {e.message}", operation, cause=e), logger,
                      {"learner_id": learner_id})
        except AdvisoryError as e:
            log_error(e, logger, {"learner_id": learner_id})
        return self.fallback_intervals(learner_id, states, history)

    # -- review windows --------------------------------------------------

    def fallback_windows(self, learner_id: str, target_date: datetime.date) -> OptimalReviewTimes:
        return OptimalReviewTimes(
            learner_id=learner_id,
            target_date=target_date,
            windows=list(DEFAULT_REVIEW_WINDOWS),
            source=FALLBACK_SOURCE
        )

    def review_windows(
        self,
        learner_id: str,
        target_date: datetime.date,
        profile_summary: Dict[str, Any]
    ) -> OptimalReviewTimes:
        """
        Review windows for a learner on a date.

        Args:
            learner_id: Learner identifier
            target_date: Day to plan
            profile_summary: Learner profile summary passed to the service

        Returns:
            Validated advisory windows, or the default windows
        """
        if not self.active:
            return self.fallback_windows(learner_id, target_date)

        operation = "suggest_review_windows"
        try:
            response = self._call(operation, self.service.suggest_review_windows, profile_summary)
            return parse_model(OptimalReviewTimes, {
                **response, "learner_id": learner_id, "target_date": target_date, "source": ADVISORY_SOURCE
            })
        except DataValidationError as e:
            log_error(AdvisoryError(f"Malformed advisory response: {e.message}", operation, cause=e), logger,
                      {"learner_id": learner_id})
        except AdvisoryError as e:
            log_error(e, logger, {"learner_id": learner_id})
        return self.fallback_windows(learner_id, target_date)
