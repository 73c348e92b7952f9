"""
Interval Calculator

Pure functions mapping a memory state and a review outcome to the next review
date under the default forgetting-curve policy.
"""

import math
import datetime
from typing import Optional

from srs_engine.common.config import IntervalConfig
from srs_engine.repetition.forgetting import ForgettingCurveModel
from srs_engine.repetition.models import MemoryState


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


class IntervalCalculator:
    """
    Computes review intervals from post-update stability.

    ``interval = round(stability * adjustment)`` days, where the adjustment
    uses the same success/failure multipliers as the stability update, then
    clamped to ``[min_interval_hours, max_interval_days]``.
    """

    def __init__(
        self,
        config: Optional[IntervalConfig] = None,
        model: Optional[ForgettingCurveModel] = None
    ):
        self.config = config or IntervalConfig()
        self.model = model or ForgettingCurveModel()

    @property
    def min_interval(self) -> datetime.timedelta:
        return datetime.timedelta(hours=self.config.min_interval_hours)

    @property
    def max_interval(self) -> datetime.timedelta:
        return datetime.timedelta(days=self.config.max_interval_days)

    def raw_interval_days(self, stability: float, quality: Optional[float]) -> int:
        """Unclamped whole-day interval; no quality means no adjustment."""
        adjustment = 1.0 if quality is None else self.model.stability_multiplier(quality)
        return round_half_up(stability * adjustment)

    def clamp(self, interval: datetime.timedelta) -> datetime.timedelta:
        return min(max(interval, self.min_interval), self.max_interval)

    def interval(self, state: MemoryState, quality: Optional[float]) -> datetime.timedelta:
        """
        Interval until the next review.

        Args:
            state: Memory state after the review was applied
            quality: Response quality of that review

        Returns:
            Clamped interval
        """
        days = min(self.raw_interval_days(state.stability, quality), self.config.max_interval_days)
        return self.clamp(datetime.timedelta(days=days))

    def interval_days(self, state: MemoryState, quality: Optional[float]) -> float:
        """Clamped interval expressed in (possibly fractional) days."""
        return self.interval(state, quality).total_seconds() / 86400

    def next_review_date(
        self,
        state: MemoryState,
        quality: float,
        session_date: datetime.datetime
    ) -> datetime.datetime:
        """
        Next review date for a reviewed state.

        Args:
            state: Memory state after the review was applied
            quality: Response quality of that review
            session_date: When the review happened

        Returns:
            The date of the next review
        """
        return session_date + self.interval(state, quality)
