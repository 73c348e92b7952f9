"""
Spaced repetition: memory model, review recording, scheduling, curve
analysis and alternative scheduling policies.
"""

from srs_engine.repetition.models import (
    LearningPhase, ContentType, ReviewType, SchedulingPolicy, ReviewReason,
    MemoryKey, LearningItem, PerformanceData, ContextFactors, ReviewOutcome,
    MemoryState, ReviewSession, ReviewResult, SpacedRepetitionSchedule, DueItem,
    ForgettingCurveAnalysis, create_learning_item
)
from srs_engine.repetition.forgetting import ForgettingCurveModel, determine_phase
from srs_engine.repetition.intervals import IntervalCalculator
from srs_engine.repetition.repository import (
    ReviewRepository, InMemoryReviewRepository, SqlAlchemyReviewRepository
)
from srs_engine.repetition.advisory import AdvisoryService, GuardedAdvisor
from srs_engine.repetition.engine import SpacedRepetitionEngine

__all__ = [
    'LearningPhase', 'ContentType', 'ReviewType', 'SchedulingPolicy', 'ReviewReason',
    'MemoryKey', 'LearningItem', 'PerformanceData', 'ContextFactors', 'ReviewOutcome',
    'MemoryState', 'ReviewSession', 'ReviewResult', 'SpacedRepetitionSchedule', 'DueItem',
    'ForgettingCurveAnalysis', 'create_learning_item',
    'ForgettingCurveModel', 'determine_phase',
    'IntervalCalculator',
    'ReviewRepository', 'InMemoryReviewRepository', 'SqlAlchemyReviewRepository',
    'AdvisoryService', 'GuardedAdvisor',
    'SpacedRepetitionEngine',
]
