"""
Review Scheduler

Projects a learner's memory states onto a multi-day review plan under a daily
capacity. Schedules are a pure function of a repository snapshot taken at the
start of generation: no locks are held and reviews recorded afterwards are not
observed. Generated schedules are cached per learner until the recorder
invalidates them; a schedule whose snapshot was overtaken by a review is
returned but not cached.
"""

import datetime
from typing import Callable, List, Optional, Tuple

from srs_engine.common.cache import MemoryCache
from srs_engine.common.config import EngineConfig, get_config
from srs_engine.common.error_handling import NotFoundError
from srs_engine.common.logger import app_logger
from srs_engine.common.serialization import to_naive_utc
from srs_engine.common.validation import validate_range
from srs_engine.repetition.models import (
    AdaptiveParameters, DailyMetrics, DailySchedule, DueItem, LearningPhase,
    MemoryState, ReviewReason, ScheduledReview, SchedulingPolicy,
    SessionRecommendation, SpacedRepetitionSchedule, TimeWindow
)
from srs_engine.repetition.repository import ReviewRepository
from srs_engine.repetition.variants.policy import PolicyRegistry

# Module logger
logger = app_logger.getChild("repetition.scheduler")

WindowProvider = Callable[[str, datetime.datetime], Optional[TimeWindow]]


def session_theme(start_hour: int) -> str:
    if start_hour < 12:
        return "morning_review"
    if start_hour < 17:
        return "afternoon_review"
    return "evening_review"


class ReviewScheduler:
    """
    Day-by-day schedule generation.

    An item is due on a day when the days since its last review reach its
    stability. Learners bound to a Leitner or SuperMemo policy are due at the
    next review date that policy assigned instead. Due items are ranked by
    ``overdue * overdue_weight + (1 - retrievability) * retrievability_weight``
    with ties broken by item id, then truncated to the daily capacity.
    """

    def __init__(
        self,
        repository: ReviewRepository,
        config: Optional[EngineConfig] = None,
        cache: Optional[MemoryCache] = None,
        window_provider: Optional[WindowProvider] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
        policies: Optional[PolicyRegistry] = None
    ):
        """
        Initialize the scheduler.

        Args:
            repository: Source of memory state snapshots
            config: Engine configuration
            cache: Schedule cache
            window_provider: Optional source of per-day time windows
            clock: Source of the current time
            policies: Per-learner policy bindings
        """
        self.config = config or get_config()
        self.repository = repository
        self.cache = cache
        self.window_provider = window_provider
        self.clock = clock or datetime.datetime.now
        self.policies = policies

    # -- helpers ---------------------------------------------------------

    def _by_due_date(self, learner_id: str) -> bool:
        """Whether the learner's policy fixes due dates itself."""
        return (self.policies is not None
                and self.policies.active_policy(learner_id) is not SchedulingPolicy.FORGETTING_CURVE)

    @staticmethod
    def _overdue(state: MemoryState, at: datetime.datetime, by_due_date: bool) -> float:
        """Days past due at ``at``; negative before the item is due."""
        if by_due_date and state.next_review_date is not None:
            return (at - state.next_review_date).total_seconds() / 86400
        return state.days_since_review(at) - state.stability

    def _priority(
        self,
        state: MemoryState,
        at: datetime.datetime,
        by_due_date: bool = False
    ) -> Tuple[float, float, float]:
        """Return (priority, overdue_days, retrievability) at a moment."""
        schedule = self.config.schedule
        overdue = self._overdue(state, at, by_due_date)
        retrievability = state.current_retrievability(at)
        priority = overdue * schedule.overdue_weight + (1 - retrievability) * schedule.retrievability_weight
        return priority, overdue, retrievability

    def _default_window(self) -> TimeWindow:
        return TimeWindow(self.config.schedule.default_window_start, self.config.schedule.default_window_end)

    def _window_for(self, learner_id: str, day: datetime.datetime) -> TimeWindow:
        if self.window_provider is not None:
            window = self.window_provider(learner_id, day)
            if window is not None:
                return window
        return self._default_window()

    @staticmethod
    def _preparation_suggestions(state: MemoryState) -> Tuple[str, ...]:
        suggestions = []
        if state.difficulty > 0.7:
            suggestions.append("Review related concepts first")
        if state.consecutive_failures > 0:
            suggestions.append("Focus on understanding rather than memorization")
        if state.learning_phase is LearningPhase.RELEARNING:
            suggestions.append("Use active recall techniques")
        return tuple(suggestions)

    def _daily_schedule(
        self,
        learner_id: str,
        day: datetime.datetime,
        states: List[MemoryState],
        max_daily_reviews: int,
        look_ahead: bool,
        by_due_date: bool = False
    ) -> DailySchedule:
        config = self.config.schedule
        due, upcoming = [], []
        for state in states:
            priority, overdue, _ = self._priority(state, day, by_due_date)
            entry = (-priority, state.item_id, priority, overdue, state)
            if overdue >= 0:
                due.append(entry)
            elif look_ahead:
                upcoming.append(entry)

        due.sort(key=lambda e: (e[0], e[1]))
        selected = due[:max_daily_reviews]
        if look_ahead and len(selected) < max_daily_reviews:
            upcoming.sort(key=lambda e: (e[0], e[1]))
            selected += upcoming[:max_daily_reviews - len(selected)]

        window = self._window_for(learner_id, day)
        reviews = []
        for _, item_id, priority, overdue, state in selected:
            if overdue > 0:
                reason = ReviewReason.OVERDUE
            elif overdue == 0:
                reason = ReviewReason.DUE_REVIEW
            else:
                reason = ReviewReason.LOOK_AHEAD
            reviews.append(ScheduledReview(
                item_id=item_id,
                priority_score=priority,
                estimated_duration_minutes=config.base_duration_minutes
                + state.difficulty * config.difficulty_duration_minutes,
                optimal_time_window=window,
                review_reason=reason,
                expected_difficulty=state.difficulty,
                preparation_suggestions=self._preparation_suggestions(state)
            ))

        recommendations = ()
        if reviews:
            recommendations = (SessionRecommendation(
                session_start_time=window.start_hour,
                session_duration_minutes=min(config.max_session_minutes,
                                             len(reviews) * config.session_minutes_per_item),
                item_sequence=tuple(r.item_id for r in reviews),
                session_theme=session_theme(window.start_hour),
                cognitive_load_profile=tuple(r.expected_difficulty for r in reviews)
            ),)

        metrics = DailyMetrics(
            total_review_time=sum(r.estimated_duration_minutes for r in reviews),
            cognitive_load_score=(sum(r.expected_difficulty for r in reviews) / len(reviews)
                                  if reviews else 0.0),
            priority_items_count=sum(1 for r in reviews if r.priority_score > config.priority_threshold),
            new_items_capacity=max(0, max_daily_reviews - len(reviews))
        )
        return DailySchedule(
            date=day,
            scheduled_reviews=tuple(reviews),
            session_recommendations=recommendations,
            daily_metrics=metrics
        )

    def _adaptive_parameters(self, max_daily_reviews: int) -> AdaptiveParameters:
        return AdaptiveParameters(
            base_interval_multiplier=self.config.schedule.base_interval_multiplier,
            success_bonus_factor=self.config.forgetting.success_multiplier,
            failure_penalty_factor=self.config.forgetting.failure_multiplier,
            difficulty_adjustment_rate=self.config.schedule.difficulty_adjustment_rate,
            max_daily_reviews=max_daily_reviews,
            min_interval_hours=self.config.intervals.min_interval_hours,
            max_interval_days=self.config.intervals.max_interval_days
        )

    # -- public API ------------------------------------------------------

    def generate_schedule(
        self,
        learner_id: str,
        horizon_days: Optional[int] = None,
        max_daily_reviews: Optional[int] = None,
        start: Optional[datetime.datetime] = None,
        look_ahead: Optional[bool] = None
    ) -> SpacedRepetitionSchedule:
        """
        Generate a review schedule.

        Args:
            learner_id: Learner identifier
            horizon_days: Number of days to plan (config default if None)
            max_daily_reviews: Daily capacity (config default if None)
            start: First day of the plan (defaults to now)
            look_ahead: Fill spare capacity with items not yet due

        Returns:
            The schedule

        Raises:
            DataValidationError: If horizon or capacity is negative
            NotFoundError: If the learner tracks no items
        """
        config = self.config.schedule
        horizon_days = config.default_horizon_days if horizon_days is None else horizon_days
        max_daily_reviews = config.max_daily_reviews if max_daily_reviews is None else max_daily_reviews
        look_ahead = config.look_ahead if look_ahead is None else look_ahead
        validate_range("horizon_days", horizon_days, minimum=0)
        validate_range("max_daily_reviews", max_daily_reviews, minimum=0)
        horizon_days, max_daily_reviews = int(horizon_days), int(max_daily_reviews)
        # Cache keys have minute resolution
        start = (to_naive_utc(start) or self.clock()).replace(second=0, microsecond=0)

        cache_key = (learner_id, "schedule", horizon_days, max_daily_reviews, look_ahead, start.isoformat())
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Schedule cache hit for {learner_id}")
                return cached

        # Read before the snapshot; a review recorded meanwhile advances it
        generation = self.cache.generation(learner_id) if self.cache is not None else 0
        snapshot = self.repository.list_states(learner_id)
        if not snapshot:
            raise NotFoundError(learner_id)
        active = [s for s in snapshot if not s.archived]
        by_due_date = self._by_due_date(learner_id)

        days = tuple(
            self._daily_schedule(
                learner_id, start + datetime.timedelta(days=offset), active,
                max_daily_reviews, look_ahead, by_due_date
            )
            for offset in range(horizon_days)
        )
        schedule = SpacedRepetitionSchedule(
            learner_id=learner_id,
            generated_at=self.clock(),
            schedule_horizon_days=horizon_days,
            total_items_tracked=len(snapshot),
            daily_schedules=days,
            adaptive_parameters=self._adaptive_parameters(max_daily_reviews)
        )

        if self.cache is not None:
            if self.cache.set_if_generation(cache_key, schedule, generation):
                self.cache.set_if_generation((learner_id, "latest"), schedule, generation)
            else:
                logger.debug(f"Schedule for {learner_id} went stale during generation, not cached")
        logger.info(
            f"Generated {horizon_days}-day schedule for {learner_id} "
            f"({sum(len(d.scheduled_reviews) for d in days)} reviews over {len(active)} items)"
        )
        return schedule

    def latest_schedule(self, learner_id: str) -> Optional[SpacedRepetitionSchedule]:
        """Most recently generated schedule, unless invalidated since."""
        if self.cache is None:
            return None
        return self.cache.get((learner_id, "latest"))

    def get_items_due(self, learner_id: str, at: Optional[datetime.datetime] = None) -> List[DueItem]:
        """
        Items to review at a moment, most urgent first.

        An item qualifies when it is due or its priority (overdue days when
        overdue, otherwise the forgotten share ``1 - retrievability``)
        exceeds the configured floor.

        Args:
            learner_id: Learner identifier
            at: Reference time (defaults to now)

        Returns:
            Due items sorted by priority, ties by item id
        """
        at = to_naive_utc(at) or self.clock()
        by_due_date = self._by_due_date(learner_id)
        items = []
        for state in self.repository.list_states(learner_id):
            if state.archived:
                continue
            overdue = self._overdue(state, at, by_due_date)
            retrievability = state.current_retrievability(at)
            priority = overdue if overdue > 0 else 1 - retrievability
            if overdue >= 0 or priority > self.config.schedule.due_priority_floor:
                items.append(DueItem(
                    item_id=state.item_id,
                    priority=priority,
                    overdue_days=overdue,
                    retrievability=retrievability
                ))
        items.sort(key=lambda d: (-d.priority, d.item_id))
        return items
