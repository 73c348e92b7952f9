"""
Review Recorder

The recorder is the only writer of memory states. It validates incoming
review outcomes, applies the memory model update under a per-(learner, item)
lock, asks the learner's active policy for the next review date, persists the
state and the session, and invalidates the learner's cached schedules.
"""

import math
import uuid
import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from srs_engine.common.cache import MemoryCache
from srs_engine.common.config import EngineConfig, get_config
from srs_engine.common.error_handling import (
    DuplicateItemError, DuplicateSessionError, NotFoundError
)
from srs_engine.common.logger import LoggerAdapter, app_logger, log_execution_time
from srs_engine.common.serialization import to_naive_utc
from srs_engine.common.threading import KeyedLock
from srs_engine.common.validation import parse_model
from srs_engine.repetition.forgetting import ForgettingCurveModel
from srs_engine.repetition.intervals import IntervalCalculator
from srs_engine.repetition.models import (
    AdaptiveAdjustment, AdjustmentType, ContextFactors, ForgettingCurveAnalysis,
    LearningItem, MemoryKey, MemoryState, PerformanceData, ReviewOutcome,
    ReviewResult, ReviewSession, ReviewType
)
from srs_engine.repetition.repository import ReviewRepository
from srs_engine.repetition.variants.policy import PolicyRegistry

# Module logger
logger = app_logger.getChild("repetition.recorder")

Clock = Callable[[], datetime.datetime]


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


class ReviewRecorder:
    """
    Ingests completed reviews and keeps memory states up to date.

    Updates to the same (learner, item) pair are serialized; different pairs
    proceed concurrently. A new state is computed from a copy and stored only
    once every step has succeeded.
    """

    def __init__(
        self,
        repository: ReviewRepository,
        policies: PolicyRegistry,
        config: Optional[EngineConfig] = None,
        model: Optional[ForgettingCurveModel] = None,
        calculator: Optional[IntervalCalculator] = None,
        cache: Optional[MemoryCache] = None,
        clock: Optional[Clock] = None
    ):
        """
        Initialize the recorder.

        Args:
            repository: Storage for states and sessions
            policies: Per-learner policy bindings
            config: Engine configuration
            model: Memory model update rule
            calculator: Default interval calculator
            cache: Schedule cache to invalidate on updates
            clock: Source of the current time
        """
        self.config = config or get_config()
        self.repository = repository
        self.policies = policies
        self.model = model or ForgettingCurveModel(self.config.forgetting, self.config.phases)
        self.calculator = calculator or IntervalCalculator(self.config.intervals, self.model)
        self.cache = cache
        self.clock = clock or datetime.datetime.now
        self.locks = KeyedLock()

    def _invalidate(self, learner_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate_prefix(learner_id)

    def _learner_ability(self, learner_id: str) -> Optional[float]:
        states = self.repository.list_states(learner_id)
        if not states:
            return None
        return sum(s.memory_strength for s in states) / len(states)

    @staticmethod
    def _context_for(context: ContextFactors, session_date: datetime.datetime) -> ContextFactors:
        if context.time_of_day is None:
            return context.model_copy(update={"time_of_day": session_date.hour})
        return context

    def add_item(
        self,
        learner_id: str,
        item: Union[LearningItem, Dict[str, Any]],
        initial_performance: Union[PerformanceData, Dict[str, Any], None] = None,
        context: Union[ContextFactors, Dict[str, Any], None] = None,
        added_at: Optional[datetime.datetime] = None
    ) -> MemoryState:
        """
        Start tracking an item for a learner.

        Args:
            learner_id: Learner identifier
            item: Item descriptor
            initial_performance: Optional performance on first exposure
            context: Context of the first exposure
            added_at: Creation time (defaults to now)

        Returns:
            The new memory state

        Raises:
            DataValidationError: If the item or performance is invalid
            DuplicateItemError: If the learner already tracks the item
        """
        item = parse_model(LearningItem, item)
        performance = parse_model(PerformanceData, initial_performance) if initial_performance is not None else None
        context = parse_model(ContextFactors, context)
        added_at = to_naive_utc(added_at) or self.clock()

        key = MemoryKey(learner_id, item.item_id)
        with self.locks.hold(key):
            if self.repository.load_state(learner_id, item.item_id) is not None:
                raise DuplicateItemError(learner_id, item.item_id)

            state = self.model.create_state(
                learner_id,
                item,
                added_at,
                initial_quality=performance.response_quality if performance else None,
                learner_ability=self._learner_ability(learner_id)
            )
            if performance is not None:
                self.repository.append_session(ReviewSession(
                    session_id=new_session_id(),
                    learner_id=learner_id,
                    item_id=item.item_id,
                    session_date=added_at,
                    review_type=ReviewType.INITIAL_LEARNING,
                    performance=performance,
                    context=self._context_for(context, added_at)
                ))
            self.repository.save_state(state)

        self._invalidate(learner_id)
        logger.info(f"Learner {learner_id} now tracks item {item.item_id}")
        return state.copy()

    def _adjustments(self, state: MemoryState, quality: float) -> List[AdaptiveAdjustment]:
        adjustments = []
        if quality < self.config.forgetting.failure_threshold:
            adjustments.append(AdaptiveAdjustment(
                adjustment_type=AdjustmentType.INTERVAL,
                old_value=state.stability,
                new_value=state.stability * self.config.forgetting.failure_multiplier,
                rationale="Reducing interval due to poor performance"
            ))
        elif quality > self.config.forgetting.excellent_threshold:
            adjustments.append(AdaptiveAdjustment(
                adjustment_type=AdjustmentType.INTERVAL,
                old_value=state.stability,
                new_value=state.stability * self.config.forgetting.success_multiplier,
                rationale="Increasing interval due to excellent performance"
            ))
        return adjustments

    def _insights(self, state: MemoryState, history: List[ReviewSession]) -> List[str]:
        insights = []
        if state.consecutive_successes > 3:
            insights.append("Strong retention pattern - consider extending review intervals")
        if state.consecutive_failures > 1:
            insights.append("Consider reviewing prerequisites or adjusting learning approach")
        if history:
            mean_time = sum(s.performance.response_time_seconds for s in history) / len(history)
            if mean_time > self.config.forgetting.slow_response_seconds:
                insights.append(
                    "Response time suggests difficulty - consider breaking down into smaller concepts"
                )
        return insights

    @log_execution_time()
    def record(
        self,
        learner_id: str,
        item_id: str,
        outcome: Union[ReviewOutcome, Dict[str, Any]]
    ) -> ReviewResult:
        """
        Record a completed review.

        Args:
            learner_id: Learner identifier
            item_id: Item identifier
            outcome: Review outcome

        Returns:
            Updated state, next review date, adjustments and insights

        Raises:
            DataValidationError: If the outcome is invalid
            NotFoundError: If the learner does not track the item
            DuplicateSessionError: If the session id was already recorded
        """
        outcome = parse_model(ReviewOutcome, outcome)
        session_date = outcome.timestamp or self.clock()
        session_id = outcome.session_id or new_session_id()
        quality = outcome.quality

        key = MemoryKey(learner_id, item_id)
        with self.locks.hold(key):
            state = self.repository.load_state(learner_id, item_id)
            if state is None:
                raise NotFoundError(learner_id, item_id)
            if self.repository.has_session(learner_id, item_id, session_id):
                raise DuplicateSessionError(learner_id, item_id, session_id)

            updated = self.model.apply_review(state, quality, session_date)
            policy = self.policies.get(learner_id)
            saved = None
            if policy is not None:
                saved = policy.checkpoint(item_id)
                next_review = policy.review(
                    item_id, quality, outcome.performance.confidence_level, session_date
                )
            else:
                next_review = self.calculator.next_review_date(updated, quality, session_date)
            updated.next_review_date = next_review

            adjustments = tuple(self._adjustments(updated, quality))
            session = ReviewSession(
                session_id=session_id,
                learner_id=learner_id,
                item_id=item_id,
                session_date=session_date,
                review_type=outcome.review_type,
                performance=outcome.performance,
                context=self._context_for(outcome.context, session_date),
                adaptive_adjustments=adjustments
            )

            # Session first: a storage rejection leaves the state untouched
            try:
                self.repository.append_session(session)
                self.repository.save_state(updated)
            except Exception:
                if policy is not None:
                    policy.restore(item_id, saved)
                raise
            history = self.repository.load_history(learner_id, item_id)

        self._invalidate(learner_id)
        LoggerAdapter(logger, {"learner_id": learner_id, "item_id": item_id}).debug(
            f"Recorded {session_id} for {learner_id}/{item_id}: q={quality:.2f}, "
            f"stability {state.stability:.3f} -> {updated.stability:.3f}, "
            f"phase={updated.learning_phase.value}, next={next_review.isoformat()}"
        )
        return ReviewResult(
            state=updated.copy(),
            next_review_date=next_review,
            session=session,
            adaptive_adjustments=adjustments,
            insights=tuple(self._insights(updated, history))
        )

    def apply_curve_analysis(self, analysis: ForgettingCurveAnalysis) -> MemoryState:
        """
        Write fitted curve parameters back into the memory state.

        Args:
            analysis: Result of a forgetting curve analysis

        Returns:
            The updated memory state

        Raises:
            NotFoundError: If the state no longer exists
        """
        with self.locks.hold(analysis.key):
            state = self.repository.load_state(analysis.learner_id, analysis.item_id)
            if state is None:
                raise NotFoundError(analysis.learner_id, analysis.item_id)

            params = analysis.curve_parameters
            half_life_days = params.half_life / 24
            curve = state.forgetting_curve_parameters
            curve.initial_strength = params.initial_retention
            curve.decay_rate = math.log(2) / half_life_days
            curve.asymptote = params.asymptotic_retention
            curve.last_calculated = analysis.analysis_date
            state.personalization_factors.interference_susceptibility = (
                analysis.personalization_insights.interference_susceptibility
            )
            self.repository.save_state(state)

        self._invalidate(analysis.learner_id)
        logger.debug(
            f"Applied curve fit to {analysis.learner_id}/{analysis.item_id}: "
            f"half_life={params.half_life:.1f}h, r2={params.r_squared:.3f}"
        )
        return state.copy()

    def archive_item(self, learner_id: str, item_id: str, archived: bool = True) -> MemoryState:
        """
        Archive (or restore) an item; archived items are not scheduled.

        Raises:
            NotFoundError: If the learner does not track the item
        """
        with self.locks.hold(MemoryKey(learner_id, item_id)):
            state = self.repository.load_state(learner_id, item_id)
            if state is None:
                raise NotFoundError(learner_id, item_id)
            state.archived = archived
            self.repository.save_state(state)
        self._invalidate(learner_id)
        return state.copy()
