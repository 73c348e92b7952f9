"""
Spaced Repetition Data Model

This module defines the entities the engine works with:

- LearningItem, PerformanceData, ContextFactors and ReviewOutcome are pydantic
  models validated at the boundary, so NaN, negative durations or an
  out-of-range response quality never reach the update rule.
- MemoryState is the single mutable entity, keyed by MemoryKey.
- ReviewSession is an immutable history record.
- The schedule and curve-analysis types are derived views.
"""

import copy
import math
import enum
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from srs_engine.common.serialization import parse_datetime, serialize, to_naive_utc
from srs_engine.common.validation import parse_model


class LearningPhase(enum.Enum):
    """Learning phases of a memory trace."""
    ACQUISITION = "acquisition"        # First few exposures
    CONSOLIDATION = "consolidation"    # Stability rising
    MAINTENANCE = "maintenance"        # Long intervals, steady successes
    RELEARNING = "relearning"          # Repeated failures


class ContentType(enum.Enum):
    CONCEPT = "concept"
    FACT = "fact"
    PROCEDURE = "procedure"
    PRINCIPLE = "principle"
    FORMULA = "formula"
    VOCABULARY = "vocabulary"
    SKILL = "skill"


class ReviewType(enum.Enum):
    INITIAL_LEARNING = "initial_learning"
    SCHEDULED_REVIEW = "scheduled_review"
    CRAMMING = "cramming"
    REINFORCEMENT = "reinforcement"
    ASSESSMENT = "assessment"


class CompletionStatus(enum.Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    FAILED = "failed"


class EmotionalState(enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    STRESSED = "stressed"
    EXCITED = "excited"


class AdjustmentType(enum.Enum):
    INTERVAL = "interval"
    DIFFICULTY = "difficulty"
    FORMAT = "format"
    CONTEXT = "context"


class ReviewReason(enum.Enum):
    DUE_REVIEW = "due_review"
    OVERDUE = "overdue"
    LOOK_AHEAD = "look_ahead"


class MeasurementMethod(enum.Enum):
    TEST = "test"
    RECALL = "recall"
    RECOGNITION = "recognition"
    APPLICATION = "application"


class SchedulingPolicy(enum.Enum):
    """Scheduling policy a learner is bound to."""
    FORGETTING_CURVE = "forgetting_curve"
    LEITNER = "leitner"
    SUPERMEMO = "supermemo"


class ReviewUrgency(enum.Enum):
    """How urgently a predicted retention level calls for a review."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def probability(self) -> float:
        """Optimal review probability associated with the urgency."""
        return {
            ReviewUrgency.HIGH: 0.9,
            ReviewUrgency.MEDIUM: 0.6,
            ReviewUrgency.LOW: 0.3,
        }[self]

    @classmethod
    def from_retention(cls, retention: float) -> 'ReviewUrgency':
        """
        Convert a predicted retention to an urgency level.

        Args:
            retention: Predicted retention probability (0-1)

        Returns:
            Corresponding urgency
        """
        if retention < 0.5:
            return cls.HIGH
        elif retention < 0.7:
            return cls.MEDIUM
        return cls.LOW


class MemoryKey(NamedTuple):
    """Composite key of a memory state."""
    learner_id: str
    item_id: str


# ---------------------------------------------------------------------------
# Boundary models
# ---------------------------------------------------------------------------

class LearningItem(BaseModel):
    """Immutable content descriptor supplied by the content collaborator."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    item_id: str = Field(min_length=1)
    title: str = ""
    content_type: ContentType = ContentType.CONCEPT
    domain: str = "general"
    difficulty_level: float = Field(default=5, ge=1, le=10)
    cognitive_load: Optional[int] = Field(default=None, ge=1, le=5)
    prerequisites: FrozenSet[str] = frozenset()
    related_items: FrozenSet[str] = frozenset()
    importance_weight: float = Field(default=0.7, ge=0, le=1)
    estimated_learning_time: float = Field(default=30, ge=0)
    mastery_threshold: float = Field(default=0.8, ge=0, le=1)
    tags: Tuple[str, ...] = ()

    @model_validator(mode='before')
    @classmethod
    def fill_cognitive_load(cls, data):
        """Derive cognitive load from difficulty when omitted"""
        if isinstance(data, dict) and data.get('cognitive_load') is None:
            difficulty = data.get('difficulty_level', 5)
            if isinstance(difficulty, (int, float)) and math.isfinite(difficulty):
                data = {**data, 'cognitive_load': max(1, min(5, math.ceil(difficulty / 2)))}
        return data


def create_learning_item(item_id: str, title: str = "", **fields: Any) -> LearningItem:
    """
    Build a learning item with the usual defaults.

    Args:
        item_id: Item identifier
        title: Display title
        **fields: Any other LearningItem field

    Returns:
        The validated item

    Raises:
        DataValidationError: If a field is invalid
    """
    return parse_model(LearningItem, {"item_id": item_id, "title": title, **fields})


class PerformanceData(BaseModel):
    """Learner performance during one review."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    response_quality: float = Field(ge=0, le=1)
    response_time_seconds: float = Field(default=60, ge=0)
    confidence_level: float = Field(default=0.5, ge=0, le=1)
    effort_level: float = Field(default=0.5, ge=0, le=1)
    hints_used: int = Field(default=0, ge=0)
    errors_made: int = Field(default=0, ge=0)
    completion_status: CompletionStatus = CompletionStatus.COMPLETED


class ContextFactors(BaseModel):
    """
    Conditions under which a review took place.

    ``time_of_day`` defaults to the hour of the session date.
    """
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    time_of_day: Optional[int] = Field(default=None, ge=0, le=23)
    session_length_minutes: float = Field(default=10, ge=0)
    concurrent_items_reviewed: int = Field(default=1, ge=0)
    emotional_state: EmotionalState = EmotionalState.NEUTRAL
    environment_quality: float = Field(default=0.8, ge=0, le=1)
    learning_motivation: float = Field(default=0.7, ge=0, le=1)


class ReviewOutcome(BaseModel):
    """A completed review as submitted by a client."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    session_id: Optional[str] = Field(default=None, min_length=1)
    timestamp: Optional[datetime.datetime] = None
    review_type: ReviewType = ReviewType.SCHEDULED_REVIEW
    performance: PerformanceData
    context: ContextFactors = Field(default_factory=ContextFactors)

    @field_validator('timestamp')
    @classmethod
    def normalize_timestamp(cls, value):
        return to_naive_utc(value)

    @property
    def quality(self) -> float:
        return self.performance.response_quality


# ---------------------------------------------------------------------------
# Memory state
# ---------------------------------------------------------------------------

@dataclass
class ForgettingCurveParameters:
    initial_strength: float
    decay_rate: float
    asymptote: float
    last_calculated: datetime.datetime


@dataclass
class OptimalReviewConditions:
    preferred_time_intervals: List[float] = field(default_factory=lambda: [1, 3, 7, 14, 30])
    effective_session_lengths: List[float] = field(default_factory=lambda: [15, 30, 45])
    beneficial_context_factors: List[str] = field(default_factory=list)


@dataclass
class PersonalizationFactors:
    learner_ability: float
    item_affinity: float
    interference_susceptibility: float
    optimal_review_conditions: OptimalReviewConditions = field(default_factory=OptimalReviewConditions)


@dataclass
class MemoryState:
    """
    Per (learner, item) memory model.

    ``retrievability`` holds the recall probability observed at the last
    review; ``current_retrievability`` decays it to a given moment.
    """
    learner_id: str
    item_id: str
    memory_strength: float
    stability: float
    retrievability: float
    difficulty: float
    last_review_date: datetime.datetime
    forgetting_curve_parameters: ForgettingCurveParameters
    personalization_factors: PersonalizationFactors
    review_count: int = 0
    consecutive_successes: int = 0
    consecutive_failures: int = 0
    learning_phase: LearningPhase = LearningPhase.ACQUISITION
    next_review_date: Optional[datetime.datetime] = None
    archived: bool = False

    @property
    def key(self) -> MemoryKey:
        return MemoryKey(self.learner_id, self.item_id)

    def days_since_review(self, at: datetime.datetime) -> float:
        """Days between the last review and ``at`` (never negative)."""
        return max(0.0, (at - self.last_review_date).total_seconds() / 86400)

    def current_retrievability(self, at: Optional[datetime.datetime] = None) -> float:
        """
        Recall probability decayed from the last review to ``at``.

        Args:
            at: Reference time (defaults to now)

        Returns:
            Retrievability in [0, 1]
        """
        at = at or datetime.datetime.now()
        return self.retrievability * math.exp(-self.days_since_review(at) / self.stability)

    def copy(self) -> 'MemoryState':
        """Deep copy, so callers never share nested parameters."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return serialize(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemoryState':
        """Create from dictionary."""
        curve = data["forgetting_curve_parameters"]
        factors = data["personalization_factors"]
        conditions = factors.get("optimal_review_conditions") or {}
        return cls(
            learner_id=data["learner_id"],
            item_id=data["item_id"],
            memory_strength=data["memory_strength"],
            stability=data["stability"],
            retrievability=data["retrievability"],
            difficulty=data["difficulty"],
            last_review_date=parse_datetime(data["last_review_date"]),
            forgetting_curve_parameters=ForgettingCurveParameters(
                initial_strength=curve["initial_strength"],
                decay_rate=curve["decay_rate"],
                asymptote=curve["asymptote"],
                last_calculated=parse_datetime(curve["last_calculated"])
            ),
            personalization_factors=PersonalizationFactors(
                learner_ability=factors["learner_ability"],
                item_affinity=factors["item_affinity"],
                interference_susceptibility=factors["interference_susceptibility"],
                optimal_review_conditions=OptimalReviewConditions(**conditions)
            ),
            review_count=data.get("review_count", 0),
            consecutive_successes=data.get("consecutive_successes", 0),
            consecutive_failures=data.get("consecutive_failures", 0),
            learning_phase=LearningPhase(data.get("learning_phase", LearningPhase.ACQUISITION.value)),
            next_review_date=parse_datetime(data.get("next_review_date")),
            archived=data.get("archived", False)
        )


@dataclass(frozen=True)
class AdaptiveAdjustment:
    adjustment_type: AdjustmentType
    old_value: Any
    new_value: Any
    rationale: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AdaptiveAdjustment':
        return cls(
            adjustment_type=AdjustmentType(data["adjustment_type"]),
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
            rationale=data.get("rationale", "")
        )


@dataclass(frozen=True)
class ReviewSession:
    """An immutable review event."""
    session_id: str
    learner_id: str
    item_id: str
    session_date: datetime.datetime
    review_type: ReviewType
    performance: PerformanceData
    context: ContextFactors
    adaptive_adjustments: Tuple[AdaptiveAdjustment, ...] = ()

    @property
    def key(self) -> MemoryKey:
        return MemoryKey(self.learner_id, self.item_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return serialize(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReviewSession':
        """Create from dictionary."""
        return cls(
            session_id=data["session_id"],
            learner_id=data["learner_id"],
            item_id=data["item_id"],
            session_date=parse_datetime(data["session_date"]),
            review_type=ReviewType(data["review_type"]),
            performance=PerformanceData.model_validate(data["performance"]),
            context=ContextFactors.model_validate(data.get("context") or {}),
            adaptive_adjustments=tuple(
                AdaptiveAdjustment.from_dict(a) for a in data.get("adaptive_adjustments", [])
            )
        )


@dataclass(frozen=True)
class ReviewResult:
    """Outcome of recording a review."""
    state: MemoryState
    next_review_date: datetime.datetime
    session: ReviewSession
    adaptive_adjustments: Tuple[AdaptiveAdjustment, ...] = ()
    insights: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeWindow:
    start_hour: int
    end_hour: int


@dataclass(frozen=True)
class ScheduledReview:
    item_id: str
    priority_score: float
    estimated_duration_minutes: float
    optimal_time_window: TimeWindow
    review_reason: ReviewReason
    expected_difficulty: float
    preparation_suggestions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionRecommendation:
    session_start_time: int
    session_duration_minutes: float
    item_sequence: Tuple[str, ...]
    session_theme: str
    cognitive_load_profile: Tuple[float, ...]


@dataclass(frozen=True)
class DailyMetrics:
    total_review_time: float
    cognitive_load_score: float
    priority_items_count: int
    new_items_capacity: int


@dataclass(frozen=True)
class DailySchedule:
    date: datetime.datetime
    scheduled_reviews: Tuple[ScheduledReview, ...]
    session_recommendations: Tuple[SessionRecommendation, ...]
    daily_metrics: DailyMetrics


@dataclass(frozen=True)
class AdaptiveParameters:
    base_interval_multiplier: float
    success_bonus_factor: float
    failure_penalty_factor: float
    difficulty_adjustment_rate: float
    max_daily_reviews: int
    min_interval_hours: float
    max_interval_days: float


@dataclass(frozen=True)
class SpacedRepetitionSchedule:
    """Day-by-day review plan for one learner."""
    learner_id: str
    generated_at: datetime.datetime
    schedule_horizon_days: int
    total_items_tracked: int
    daily_schedules: Tuple[DailySchedule, ...]
    adaptive_parameters: AdaptiveParameters

    def to_dict(self) -> Dict[str, Any]:
        return serialize(self)


@dataclass(frozen=True)
class DueItem:
    item_id: str
    priority: float
    overdue_days: float
    retrievability: float


# ---------------------------------------------------------------------------
# Forgetting curve analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CurveParameters:
    initial_retention: float
    half_life: float
    asymptotic_retention: float
    r_squared: float
    decay_function: str = "exponential"


@dataclass(frozen=True)
class HistoricalDataPoint:
    time_since_learning: float
    measured_retention: float
    confidence_interval: Tuple[float, float]
    measurement_method: MeasurementMethod = MeasurementMethod.RECALL


@dataclass(frozen=True)
class RetentionPrediction:
    future_time_hours: float
    predicted_retention: float
    confidence_interval: Tuple[float, float]
    urgency: ReviewUrgency

    @property
    def optimal_review_probability(self) -> float:
        return self.urgency.probability


@dataclass(frozen=True)
class PersonalizationInsights:
    compared_to_average: float
    strongest_retention_factors: Tuple[str, ...]
    weakest_retention_factors: Tuple[str, ...]
    recommended_optimizations: Tuple[str, ...]
    interference_susceptibility: float


@dataclass(frozen=True)
class ForgettingCurveAnalysis:
    """Fitted retention curve for one (learner, item) pair."""
    learner_id: str
    item_id: str
    analysis_date: datetime.datetime
    curve_parameters: CurveParameters
    historical_data_points: Tuple[HistoricalDataPoint, ...]
    predictions: Tuple[RetentionPrediction, ...]
    personalization_insights: PersonalizationInsights

    @property
    def key(self) -> MemoryKey:
        return MemoryKey(self.learner_id, self.item_id)

    def to_dict(self) -> Dict[str, Any]:
        return serialize(self)
