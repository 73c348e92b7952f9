"""
Alternative scheduling policies: Leitner boxes and SuperMemo SM-2.
"""

from srs_engine.repetition.variants.base import ReviewPolicy
from srs_engine.repetition.variants.leitner import LeitnerBox, LeitnerBoxSystem, LeitnerCard
from srs_engine.repetition.variants.supermemo import SuperMemoAlgorithm, SuperMemoItem, quality_to_grade
from srs_engine.repetition.variants.policy import PolicyRegistry

__all__ = [
    'ReviewPolicy',
    'LeitnerBox', 'LeitnerBoxSystem', 'LeitnerCard',
    'SuperMemoAlgorithm', 'SuperMemoItem', 'quality_to_grade',
    'PolicyRegistry',
]
