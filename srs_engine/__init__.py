"""
srs-engine: spaced-repetition scheduling engine

Maintains a per-learner, per-item memory model, updates it after every
review with a forgetting-curve formulation, and plans multi-day review
schedules under a daily capacity.
"""

from srs_engine.repetition import SpacedRepetitionEngine

__version__ = "0.1.0"

__all__ = ['SpacedRepetitionEngine']
