"""
Spaced Repetition Engine

Facade wiring the memory model, recorder, scheduler, curve analyzer,
scheduling policies, storage and the optional advisory service into one
object. This is the entry point callers are expected to use.
"""

import datetime
import concurrent.futures
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from srs_engine.common.cache import MemoryCache
from srs_engine.common.config import EngineConfig, get_config
from srs_engine.common.error_handling import NotFoundError
from srs_engine.common.logger import APP_LOGGER_NAME, app_logger, configure_logger
from srs_engine.common.threading import BackgroundExecutor
from srs_engine.repetition.advisory import (
    AdvisoryService, GuardedAdvisor, IntervalOptimization, OptimalReviewTimes
)
from srs_engine.repetition.curve import ForgettingCurveAnalyzer
from srs_engine.repetition.forgetting import ForgettingCurveModel
from srs_engine.repetition.intervals import IntervalCalculator
from srs_engine.repetition.models import (
    ContextFactors, DueItem, ForgettingCurveAnalysis, LearningItem, LearningPhase,
    MemoryState, PerformanceData, ReviewOutcome, ReviewResult, SchedulingPolicy,
    SpacedRepetitionSchedule, TimeWindow
)
from srs_engine.repetition.recorder import ReviewRecorder
from srs_engine.repetition.repository import InMemoryReviewRepository, ReviewRepository
from srs_engine.repetition.scheduler import ReviewScheduler
from srs_engine.repetition.variants import LeitnerBoxSystem, PolicyRegistry, SuperMemoAlgorithm

# Module logger
logger = app_logger.getChild("repetition.engine")


class SpacedRepetitionEngine:
    """
    Spaced repetition scheduling for many learners.

    Example:
        engine = SpacedRepetitionEngine()
        engine.add_item("learner-1", {"item_id": "pythagoras", "difficulty_level": 4})
        engine.record_review("learner-1", "pythagoras", {"performance": {"response_quality": 0.9}})
        schedule = engine.generate_schedule("learner-1", horizon_days=7)
    """

    def __init__(
        self,
        repository: Optional[ReviewRepository] = None,
        config: Optional[EngineConfig] = None,
        advisory_service: Optional[AdvisoryService] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None
    ):
        """
        Initialize the engine.

        Args:
            repository: Storage for states and sessions (in-memory by default)
            config: Engine configuration (global configuration by default)
            advisory_service: Optional external advisory service
            clock: Source of the current time
        """
        self.config = config or get_config()
        self.repository = repository or InMemoryReviewRepository()
        self.clock = clock or datetime.datetime.now
        configure_logger(
            APP_LOGGER_NAME,
            level=self.config.logging.level,
            use_json=self.config.logging.use_json,
            log_file=self.config.logging.file_path
        )

        cache_config = self.config.cache
        self.cache = MemoryCache(
            max_size=cache_config.max_size,
            default_ttl=cache_config.schedule_ttl_seconds,
            name="schedules"
        ) if cache_config.enabled else None

        self.model = ForgettingCurveModel(self.config.forgetting, self.config.phases)
        self.calculator = IntervalCalculator(self.config.intervals, self.model)
        self.policies = PolicyRegistry(self.config)
        self.executor = BackgroundExecutor(
            max_workers=self.config.advisory.max_workers,
            thread_name_prefix="srs-engine"
        )
        self.advisor = GuardedAdvisor(advisory_service, self.executor, self.config.advisory, self.calculator)

        self.recorder = ReviewRecorder(
            self.repository, self.policies, self.config, self.model, self.calculator, self.cache, self.clock
        )
        self.scheduler = ReviewScheduler(
            self.repository,
            self.config,
            self.cache,
            window_provider=self._advised_window if self.advisor.active else None,
            clock=self.clock,
            policies=self.policies
        )
        self.analyzer = ForgettingCurveAnalyzer(self.repository, self.config, self.clock)
        logger.info(
            f"Engine ready (repository={type(self.repository).__name__}, "
            f"advisory={'on' if self.advisor.active else 'off'})"
        )

    # -- items and reviews -----------------------------------------------

    def add_item(
        self,
        learner_id: str,
        item: Union[LearningItem, Dict[str, Any]],
        initial_performance: Union[PerformanceData, Dict[str, Any], None] = None,
        context: Union[ContextFactors, Dict[str, Any], None] = None,
        added_at: Optional[datetime.datetime] = None
    ) -> MemoryState:
        """Start tracking an item; see ``ReviewRecorder.add_item``."""
        return self.recorder.add_item(learner_id, item, initial_performance, context, added_at)

    def record_review(
        self,
        learner_id: str,
        item_id: str,
        outcome: Union[ReviewOutcome, Dict[str, Any]]
    ) -> ReviewResult:
        """Record a completed review; see ``ReviewRecorder.record``."""
        return self.recorder.record(learner_id, item_id, outcome)

    def get_memory_state(self, learner_id: str, item_id: str) -> MemoryState:
        """
        Current memory state of an item.

        Raises:
            NotFoundError: If the learner does not track the item
        """
        state = self.repository.load_state(learner_id, item_id)
        if state is None:
            raise NotFoundError(learner_id, item_id)
        return state

    def archive_item(self, learner_id: str, item_id: str, archived: bool = True) -> MemoryState:
        return self.recorder.archive_item(learner_id, item_id, archived)

    # -- schedules -------------------------------------------------------

    def generate_schedule(
        self,
        learner_id: str,
        horizon_days: Optional[int] = None,
        max_daily_reviews: Optional[int] = None,
        start: Optional[datetime.datetime] = None,
        look_ahead: Optional[bool] = None
    ) -> SpacedRepetitionSchedule:
        """Generate a review schedule; see ``ReviewScheduler.generate_schedule``."""
        return self.scheduler.generate_schedule(learner_id, horizon_days, max_daily_reviews, start, look_ahead)

    def get_schedule(self, learner_id: str) -> SpacedRepetitionSchedule:
        """Latest valid schedule, generated with defaults when there is none."""
        schedule = self.scheduler.latest_schedule(learner_id)
        if schedule is None:
            schedule = self.generate_schedule(learner_id)
        return schedule

    def get_items_due(self, learner_id: str, at: Optional[datetime.datetime] = None) -> List[DueItem]:
        return self.scheduler.get_items_due(learner_id, at)

    # -- forgetting curves -----------------------------------------------

    def analyze_forgetting_curve(self, learner_id: str, item_id: str) -> ForgettingCurveAnalysis:
        """
        Fit the item's forgetting curve and store the fitted parameters.

        Args:
            learner_id: Learner identifier
            item_id: Item identifier

        Returns:
            The analysis

        Raises:
            NotFoundError: If the learner does not track the item
            InsufficientDataError: If the item has too few sessions
        """
        analysis = self.analyzer.analyze(learner_id, item_id)
        self.recorder.apply_curve_analysis(analysis)
        if self.cache is not None:
            self.cache.set((learner_id, "curve", item_id), analysis)
        return analysis

    def analyze_in_background(self, learner_id: str, item_id: str) -> concurrent.futures.Future:
        """Run ``analyze_forgetting_curve`` on the background executor."""
        return self.executor.submit(self.analyze_forgetting_curve, learner_id, item_id)

    def get_forgetting_curve(self, learner_id: str, item_id: str) -> ForgettingCurveAnalysis:
        """Cached analysis for the item, fitted on a miss."""
        if self.cache is not None:
            cached = self.cache.get((learner_id, "curve", item_id))
            if cached is not None:
                return cached
        return self.analyze_forgetting_curve(learner_id, item_id)

    # -- scheduling policies ---------------------------------------------

    def active_policy(self, learner_id: str) -> SchedulingPolicy:
        return self.policies.active_policy(learner_id)

    def switch_policy(
        self,
        learner_id: str,
        policy: Union[SchedulingPolicy, str],
        migrate: bool = False,
        **options: Any
    ):
        """
        Bind the learner to a scheduling policy.

        Args:
            learner_id: Learner identifier
            policy: Policy to activate
            migrate: Seed the policy once from the learner's memory states
            **options: Variant options (max_boxes, initial_interval, version)

        Returns:
            The new variant policy, or None for the forgetting-curve policy

        Raises:
            PolicyError: If the policy or its options are invalid
        """
        states = self.repository.list_states(learner_id) if migrate else None
        variant = self.policies.bind(learner_id, policy, states=states, migrate=migrate, **options)
        if self.cache is not None:
            self.cache.invalidate_prefix(learner_id)
        return variant

    def initialize_leitner_system(
        self,
        learner_id: str,
        max_boxes: Optional[int] = None,
        initial_interval: Optional[float] = None,
        migrate: bool = False
    ) -> LeitnerBoxSystem:
        return self.switch_policy(
            learner_id, SchedulingPolicy.LEITNER, migrate=migrate,
            max_boxes=max_boxes, initial_interval=initial_interval
        )

    def initialize_supermemo(
        self,
        learner_id: str,
        version: str = "SM-2",
        migrate: bool = False
    ) -> SuperMemoAlgorithm:
        return self.switch_policy(learner_id, SchedulingPolicy.SUPERMEMO, migrate=migrate, version=version)

    # -- profile and advisory --------------------------------------------

    def profile_summary(self, learner_id: str) -> Dict[str, Any]:
        """
        Summary of a learner's tracked items.

        Returns:
            Dictionary with total items, phase distribution, average memory
            strength, preferred conditions and the active policy
        """
        states = [s for s in self.repository.list_states(learner_id) if not s.archived]
        phases = Counter(s.learning_phase for s in states)
        beneficial: List[str] = []
        intervals: List[float] = []
        lengths: List[float] = []
        for state in states:
            conditions = state.personalization_factors.optimal_review_conditions
            beneficial.extend(f for f in conditions.beneficial_context_factors if f not in beneficial)
            intervals = intervals or list(conditions.preferred_time_intervals)
            lengths = lengths or list(conditions.effective_session_lengths)

        return {
            "learner_id": learner_id,
            "total_items": len(states),
            "phase_distribution": {phase.value: phases.get(phase, 0) for phase in LearningPhase},
            "average_memory_strength": (sum(s.memory_strength for s in states) / len(states)
                                        if states else 0.0),
            "preferred_conditions": {
                "preferred_time_intervals": intervals,
                "effective_session_lengths": lengths,
                "beneficial_context_factors": beneficial,
            },
            "active_policy": self.active_policy(learner_id).value,
        }

    def _history(self, learner_id: str, states: Iterable[MemoryState]) -> Dict[str, list]:
        return {s.item_id: self.repository.load_history(learner_id, s.item_id) for s in states}

    def optimize_review_intervals(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]] = None
    ) -> IntervalOptimization:
        """
        Interval suggestions for a learner's items.

        Args:
            learner_id: Learner identifier
            item_ids: Items to optimize (all active items by default)

        Returns:
            Advisory suggestions, or deterministic ones when the advisory
            service is unavailable

        Raises:
            NotFoundError: If the learner or a requested item is unknown
        """
        states = [s for s in self.repository.list_states(learner_id) if not s.archived]
        if item_ids is not None:
            wanted = list(item_ids)
            by_id = {s.item_id: s for s in states}
            missing = [i for i in wanted if i not in by_id]
            if missing:
                raise NotFoundError(learner_id, missing[0])
            states = [by_id[i] for i in wanted]
        if not states:
            raise NotFoundError(learner_id)
        return self.advisor.optimize_intervals(learner_id, states, self._history(learner_id, states))

    def get_optimal_review_times(
        self,
        learner_id: str,
        target_date: Union[datetime.date, datetime.datetime, None] = None
    ) -> OptimalReviewTimes:
        """
        Suggested review windows for a day.

        Args:
            learner_id: Learner identifier
            target_date: Day to plan (today by default)

        Returns:
            Advisory windows, or the default morning/afternoon/evening windows
        """
        target_date = target_date or self.clock()
        if isinstance(target_date, datetime.datetime):
            target_date = target_date.date()

        cache_key = (learner_id, "windows", target_date.isoformat())
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached
        times = self.advisor.review_windows(learner_id, target_date, self.profile_summary(learner_id))
        if self.cache is not None:
            self.cache.set(cache_key, times)
        return times

    def _advised_window(self, learner_id: str, day: datetime.datetime) -> Optional[TimeWindow]:
        times = self.get_optimal_review_times(learner_id, day)
        best = max(times.windows, key=lambda w: w.readiness_score)
        return TimeWindow(best.start_hour, best.end_hour)

    # -- lifecycle -------------------------------------------------------

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background executor."""
        self.executor.shutdown(wait=wait)

    def __enter__(self) -> 'SpacedRepetitionEngine':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
