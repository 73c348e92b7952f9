"""
Review Repository

This module provides the storage interface through which the engine reads and
writes memory states and review history, plus two implementations:

- InMemoryReviewRepository: dictionaries keyed by MemoryKey, for tests and
  single-process use
- SqlAlchemyReviewRepository: relational storage through the ORM models in
  ``srs_engine.database``

Storage errors are never swallowed here; they propagate to the caller.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from srs_engine.common.logger import app_logger
from srs_engine.database.models import MemoryStateRecord, ReviewSessionRecord
from srs_engine.repetition.models import MemoryKey, MemoryState, ReviewSession

# Module logger
logger = app_logger.getChild("repetition.repository")


def state_to_row(state: MemoryState) -> Dict[str, Any]:
    """Column values for a memory state; nested parameters become JSON."""
    data = state.to_dict()
    data["last_review_date"] = state.last_review_date
    data["next_review_date"] = state.next_review_date
    return data


def session_to_record(session: ReviewSession) -> ReviewSessionRecord:
    data = session.to_dict()
    data["session_date"] = session.session_date
    return ReviewSessionRecord.from_dict(data)


class ReviewRepository(ABC):
    """
    Abstract base class for review storage.

    Implementations must return copies: mutating a returned state never
    changes what is stored until ``save_state`` is called.
    """

    @abstractmethod
    def load_state(self, learner_id: str, item_id: str) -> Optional[MemoryState]:
        """
        Retrieve the memory state for a pair.

        Args:
            learner_id: Learner identifier
            item_id: Item identifier

        Returns:
            Memory state or None if not found
        """
        pass

    @abstractmethod
    def save_state(self, state: MemoryState) -> None:
        """
        Insert or replace a memory state.

        Args:
            state: State to save
        """
        pass

    @abstractmethod
    def append_session(self, session: ReviewSession) -> None:
        """
        Append a review session to the pair's history.

        Args:
            session: Session to append
        """
        pass

    @abstractmethod
    def load_history(self, learner_id: str, item_id: str) -> List[ReviewSession]:
        """
        Review history for a pair, oldest first.

        Args:
            learner_id: Learner identifier
            item_id: Item identifier

        Returns:
            List of sessions
        """
        pass

    @abstractmethod
    def list_states(self, learner_id: str) -> List[MemoryState]:
        """
        Snapshot of every memory state of a learner, ordered by item id.

        Args:
            learner_id: Learner identifier

        Returns:
            List of states
        """
        pass

    @abstractmethod
    def has_session(self, learner_id: str, item_id: str, session_id: str) -> bool:
        """Whether a session id was already recorded for the pair."""
        pass


class InMemoryReviewRepository(ReviewRepository):
    """Process-local repository backed by dictionaries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._states: Dict[MemoryKey, MemoryState] = {}
        self._history: Dict[MemoryKey, List[ReviewSession]] = defaultdict(list)
        self._session_ids: Dict[MemoryKey, set] = defaultdict(set)

    def load_state(self, learner_id: str, item_id: str) -> Optional[MemoryState]:
        with self._lock:
            state = self._states.get(MemoryKey(learner_id, item_id))
            return state.copy() if state is not None else None

    def save_state(self, state: MemoryState) -> None:
        with self._lock:
            self._states[state.key] = state.copy()

    def append_session(self, session: ReviewSession) -> None:
        with self._lock:
            self._history[session.key].append(session)
            self._session_ids[session.key].add(session.session_id)

    def load_history(self, learner_id: str, item_id: str) -> List[ReviewSession]:
        with self._lock:
            history = list(self._history.get(MemoryKey(learner_id, item_id), []))
        # Stable sort keeps insertion order for identical timestamps
        return sorted(history, key=lambda s: s.session_date)

    def list_states(self, learner_id: str) -> List[MemoryState]:
        with self._lock:
            states = [s.copy() for key, s in self._states.items() if key.learner_id == learner_id]
        return sorted(states, key=lambda s: s.item_id)

    def has_session(self, learner_id: str, item_id: str, session_id: str) -> bool:
        with self._lock:
            return session_id in self._session_ids.get(MemoryKey(learner_id, item_id), ())


class SqlAlchemyReviewRepository(ReviewRepository):
    """
    Relational repository.

    Every call runs in its own transaction from the given session factory.
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize the repository.

        Args:
            session_factory: Factory producing SQLAlchemy sessions
        """
        self._session_factory = session_factory

    def load_state(self, learner_id: str, item_id: str) -> Optional[MemoryState]:
        with self._session_factory() as session:
            record = session.get(MemoryStateRecord, (learner_id, item_id))
            return MemoryState.from_dict(record.to_dict()) if record is not None else None

    def save_state(self, state: MemoryState) -> None:
        row = state_to_row(state)
        with self._session_factory() as session, session.begin():
            existing = session.get(MemoryStateRecord, (state.learner_id, state.item_id))
            if existing is None:
                session.add(MemoryStateRecord.from_dict(row))
            else:
                existing.update(row)
        logger.debug(f"Saved memory state {state.learner_id}/{state.item_id}")

    def append_session(self, review: ReviewSession) -> None:
        with self._session_factory() as session, session.begin():
            session.add(session_to_record(review))

    def load_history(self, learner_id: str, item_id: str) -> List[ReviewSession]:
        stmt = (
            select(ReviewSessionRecord)
            .where(ReviewSessionRecord.learner_id == learner_id)
            .where(ReviewSessionRecord.item_id == item_id)
            .order_by(ReviewSessionRecord.session_date, ReviewSessionRecord.id)
        )
        with self._session_factory() as session:
            return [ReviewSession.from_dict(record.to_dict()) for record in session.scalars(stmt)]

    def list_states(self, learner_id: str) -> List[MemoryState]:
        stmt = (
            select(MemoryStateRecord)
            .where(MemoryStateRecord.learner_id == learner_id)
            .order_by(MemoryStateRecord.item_id)
        )
        with self._session_factory() as session:
            return [MemoryState.from_dict(record.to_dict()) for record in session.scalars(stmt)]

    def has_session(self, learner_id: str, item_id: str, session_id: str) -> bool:
        stmt = (
            select(ReviewSessionRecord.id)
            .where(ReviewSessionRecord.learner_id == learner_id)
            .where(ReviewSessionRecord.item_id == item_id)
            .where(ReviewSessionRecord.session_id == session_id)
            .limit(1)
        )
        with self._session_factory() as session:
            return session.scalar(stmt) is not None
