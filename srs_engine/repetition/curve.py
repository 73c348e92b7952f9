"""
Forgetting Curve Analyzer

Fits ``retention(t) = a + (i - a) * exp(-t / h)`` to an item's review history,
where ``t`` is hours since the first session and retention is the measured
response quality. For every half-life ``h`` on a fixed log-spaced grid the
model is linear in ``(a, i - a)`` and solved by least squares; the half-life
with the lowest residual wins. The procedure is deterministic for a given
history.
"""

import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from srs_engine.common.config import CurveConfig, EngineConfig, get_config
from srs_engine.common.error_handling import InsufficientDataError, NotFoundError
from srs_engine.common.logger import app_logger
from srs_engine.repetition.models import (
    ContextFactors, CurveParameters, EmotionalState, ForgettingCurveAnalysis,
    HistoricalDataPoint, MemoryState, PersonalizationInsights, RetentionPrediction,
    ReviewSession, ReviewUrgency
)
from srs_engine.repetition.repository import ReviewRepository

# Module logger
logger = app_logger.getChild("repetition.curve")

# Context conditions compared against each other when ranking retention factors
RETENTION_FACTORS: Dict[str, Callable[[ContextFactors], bool]] = {
    "morning_sessions": lambda c: c.time_of_day is not None and c.time_of_day < 12,
    "quiet_environment": lambda c: c.environment_quality >= 0.7,
    "high_motivation": lambda c: c.learning_motivation >= 0.7,
    "positive_emotion": lambda c: c.emotional_state in (EmotionalState.POSITIVE, EmotionalState.EXCITED),
    "short_sessions": lambda c: c.session_length_minutes <= 20,
    "single_item_focus": lambda c: c.concurrent_items_reviewed <= 1,
}


def _clip(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return float(min(max(value, low), high))


def _predict(t: np.ndarray, asymptote: float, initial: float, half_life: float) -> np.ndarray:
    return asymptote + (initial - asymptote) * np.exp(-t / half_life)


def _r_squared(y: np.ndarray, sse: float) -> float:
    sst = float(np.sum((y - y.mean()) ** 2))
    if sst < 1e-12:
        return 1.0 if sse < 1e-9 else 0.0
    return _clip(1 - sse / sst)


def fit_curve(
    hours: Sequence[float],
    retention: Sequence[float],
    config: Optional[CurveConfig] = None
) -> CurveParameters:
    """
    Fit an exponential retention curve.

    Args:
        hours: Time of each measurement since first learning, in hours
        retention: Measured retention (0-1) at each time
        config: Curve fitting settings

    Returns:
        Fitted parameters with the coefficient of determination
    """
    config = config or CurveConfig()
    t = np.asarray(hours, dtype=float)
    y = np.asarray(retention, dtype=float)

    if t.size == 0 or np.ptp(t) == 0:
        # No spread in time: nothing to learn about decay speed
        half_life = config.default_half_life_hours
        initial, asymptote = float(y.max()), float(y.min())
        sse = float(np.sum((_predict(t, asymptote, initial, half_life) - y) ** 2))
        return CurveParameters(
            initial_retention=initial,
            half_life=half_life,
            asymptotic_retention=asymptote,
            r_squared=_r_squared(y, sse)
        )

    grid = np.geomspace(config.min_half_life_hours, config.max_half_life_hours, config.half_life_grid_size)
    ones = np.ones_like(t)
    best: Optional[Tuple[float, float, float, float]] = None

    for half_life in grid:
        design = np.column_stack([ones, np.exp(-t / half_life)])
        (asymptote, span), *_ = np.linalg.lstsq(design, y, rcond=None)
        initial = _clip(asymptote + span)
        asymptote = min(_clip(asymptote), initial)
        sse = float(np.sum((_predict(t, asymptote, initial, half_life) - y) ** 2))
        if best is None or sse < best[0]:
            best = (sse, float(half_life), initial, asymptote)

    sse, half_life, initial, asymptote = best
    return CurveParameters(
        initial_retention=initial,
        half_life=half_life,
        asymptotic_retention=asymptote,
        r_squared=_r_squared(y, sse)
    )


class ForgettingCurveAnalyzer:
    """
    Builds forgetting curve analyses from review history.

    The analyzer only reads; writing fitted parameters back into the memory
    state is the recorder's job.
    """

    def __init__(
        self,
        repository: ReviewRepository,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None
    ):
        self.config = config or get_config()
        self.repository = repository
        self.clock = clock or datetime.datetime.now

    @property
    def curve_config(self) -> CurveConfig:
        return self.config.curve

    def data_points(self, history: List[ReviewSession]) -> List[HistoricalDataPoint]:
        """Turn a history into (hours since first session, retention) points."""
        first = history[0].session_date
        spread = self.curve_config.confidence_spread
        points = []
        for session in history:
            quality = session.performance.response_quality
            margin = session.performance.confidence_level * spread
            points.append(HistoricalDataPoint(
                time_since_learning=(session.session_date - first).total_seconds() / 3600,
                measured_retention=quality,
                confidence_interval=(_clip(quality - margin), _clip(quality + margin))
            ))
        return points

    def predictions(self, params: CurveParameters) -> List[RetentionPrediction]:
        """Predicted retention at doubling horizons up to the configured limit."""
        spread = self.curve_config.prediction_spread
        predictions = []
        hours = 1.0
        while hours <= self.curve_config.prediction_horizon_hours:
            retention = float(_predict(
                np.asarray(hours), params.asymptotic_retention, params.initial_retention, params.half_life
            ))
            predictions.append(RetentionPrediction(
                future_time_hours=hours,
                predicted_retention=retention,
                confidence_interval=(_clip(retention - spread), _clip(retention + spread)),
                urgency=ReviewUrgency.from_retention(retention)
            ))
            hours *= 2
        return predictions

    def interference_susceptibility(self, state: MemoryState, history: List[ReviewSession]) -> float:
        """
        Share of multi-item sessions with poor recall, blended with the prior.
        """
        prior = state.personalization_factors.interference_susceptibility
        crowded = [s for s in history if s.context.concurrent_items_reviewed > 1]
        if not crowded:
            return prior
        observed = sum(1 for s in crowded if s.performance.response_quality < 0.5) / len(crowded)
        weight = self.curve_config.interference_prior_weight
        return _clip(weight * prior + (1 - weight) * observed)

    def insights(
        self,
        state: MemoryState,
        params: CurveParameters,
        history: List[ReviewSession]
    ) -> PersonalizationInsights:
        effects = {}
        for name, condition in RETENTION_FACTORS.items():
            with_factor = [s.performance.response_quality for s in history if condition(s.context)]
            without = [s.performance.response_quality for s in history if not condition(s.context)]
            if with_factor and without:
                effects[name] = float(np.mean(with_factor) - np.mean(without))

        strongest = tuple(sorted((n for n, e in effects.items() if e > 0), key=lambda n: (-effects[n], n)))
        weakest = tuple(sorted((n for n, e in effects.items() if e < 0), key=lambda n: (effects[n], n)))
        compared = 0.2 if params.half_life > self.curve_config.default_half_life_hours else -0.2
        interference = self.interference_susceptibility(state, history)

        optimizations = [f"prioritize_{name}" for name in strongest]
        if compared < 0:
            optimizations.append("increase_active_recall")
        if interference > state.personalization_factors.interference_susceptibility:
            optimizations.append("reduce_session_complexity")

        return PersonalizationInsights(
            compared_to_average=compared,
            strongest_retention_factors=strongest,
            weakest_retention_factors=weakest,
            recommended_optimizations=tuple(optimizations),
            interference_susceptibility=interference
        )

    def analyze(self, learner_id: str, item_id: str) -> ForgettingCurveAnalysis:
        """
        Analyze the forgetting curve of one item.

        Args:
            learner_id: Learner identifier
            item_id: Item identifier

        Returns:
            The analysis

        Raises:
            NotFoundError: If the learner does not track the item
            InsufficientDataError: If fewer than the minimum sessions exist
        """
        state = self.repository.load_state(learner_id, item_id)
        if state is None:
            raise NotFoundError(learner_id, item_id)
        history = self.repository.load_history(learner_id, item_id)
        if len(history) < self.curve_config.min_sessions:
            raise InsufficientDataError(learner_id, item_id, len(history), self.curve_config.min_sessions)

        points = self.data_points(history)
        params = fit_curve(
            [p.time_since_learning for p in points],
            [p.measured_retention for p in points],
            self.curve_config
        )
        analysis = ForgettingCurveAnalysis(
            learner_id=learner_id,
            item_id=item_id,
            analysis_date=self.clock(),
            curve_parameters=params,
            historical_data_points=tuple(points),
            predictions=tuple(self.predictions(params)),
            personalization_insights=self.insights(state, params, history)
        )
        logger.info(
            f"Fitted curve for {learner_id}/{item_id} from {len(points)} sessions: "
            f"half_life={params.half_life:.1f}h, r2={params.r_squared:.3f}"
        )
        return analysis
