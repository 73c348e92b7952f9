"""
Shared fixtures for the engine test suite.
"""

import datetime

import pytest

from srs_engine.common.config import EngineConfig
from srs_engine.database import close_database, get_session_factory, initialize_database
from srs_engine.repetition.engine import SpacedRepetitionEngine
from srs_engine.repetition.repository import InMemoryReviewRepository, SqlAlchemyReviewRepository

BASE_TIME = datetime.datetime(2024, 3, 1, 9, 0, 0)


class FrozenClock:
    """Controllable clock passed to engine components."""

    def __init__(self, now: datetime.datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta) -> datetime.datetime:
        self.now += datetime.timedelta(**delta)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def memory_repository():
    return InMemoryReviewRepository()


@pytest.fixture
def sql_repository():
    """SQLAlchemy repository over an in-memory SQLite database."""
    engine = initialize_database("sqlite:///:memory:")
    yield SqlAlchemyReviewRepository(get_session_factory(engine))
    close_database(engine)


@pytest.fixture
def engine(config, clock, memory_repository):
    srs = SpacedRepetitionEngine(repository=memory_repository, config=config, clock=clock)
    yield srs
    srs.shutdown()


def outcome(quality: float, at: datetime.datetime = None, session_id: str = None, **performance):
    """Build a review outcome payload."""
    data = {"performance": {"response_quality": quality, **performance}}
    if at is not None:
        data["timestamp"] = at
    if session_id is not None:
        data["session_id"] = session_id
    return data
