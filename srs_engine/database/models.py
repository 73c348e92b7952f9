"""
SQLAlchemy ORM models for spaced repetition storage.

- MemoryStateRecord: one row per (learner, item) memory state
- ReviewSessionRecord: append-only review history
"""

import datetime

from sqlalchemy import (
    Boolean, Column, DateTime, Float, Index, Integer, JSON, String, UniqueConstraint
)

from srs_engine.database.base import ModelBase


class MemoryStateRecord(ModelBase):
    """Persisted memory state, keyed by learner and item."""
    __tablename__ = 'memory_states'

    learner_id = Column(String(255), primary_key=True)
    item_id = Column(String(255), primary_key=True)
    memory_strength = Column(Float, nullable=False)
    stability = Column(Float, nullable=False)
    retrievability = Column(Float, nullable=False)
    difficulty = Column(Float, nullable=False)
    last_review_date = Column(DateTime, nullable=False)
    next_review_date = Column(DateTime, nullable=True)
    review_count = Column(Integer, nullable=False, default=0)
    consecutive_successes = Column(Integer, nullable=False, default=0)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    learning_phase = Column(String(32), nullable=False, index=True)
    forgetting_curve_parameters = Column(JSON, nullable=False)
    personalization_factors = Column(JSON, nullable=False)
    archived = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=datetime.datetime.now,
                        onupdate=datetime.datetime.now, nullable=False)

    def __repr__(self):
        return (f"<MemoryStateRecord(learner_id='{self.learner_id}', "
                f"item_id='{self.item_id}', phase='{self.learning_phase}')>")


class ReviewSessionRecord(ModelBase):
    """Append-only review history."""
    __tablename__ = 'review_sessions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(255), nullable=False)
    learner_id = Column(String(255), nullable=False)
    item_id = Column(String(255), nullable=False)
    session_date = Column(DateTime, nullable=False)
    review_type = Column(String(32), nullable=False)
    performance = Column(JSON, nullable=False)
    context = Column(JSON, nullable=False)
    adaptive_adjustments = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint('learner_id', 'item_id', 'session_id', name='uq_review_sessions_key_session'),
        Index('idx_review_sessions_key_date', 'learner_id', 'item_id', 'session_date'),
    )

    def __repr__(self):
        return (f"<ReviewSessionRecord(session_id='{self.session_id}', "
                f"learner_id='{self.learner_id}', item_id='{self.item_id}')>")
