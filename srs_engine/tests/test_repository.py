"""
Storage contract tests, run against both repository implementations.
"""

import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from srs_engine.database import MemoryStateRecord
from srs_engine.repetition.engine import SpacedRepetitionEngine
from srs_engine.repetition.forgetting import ForgettingCurveModel
from srs_engine.repetition.models import (
    AdaptiveAdjustment, AdjustmentType, ContextFactors, LearningItem, LearningPhase,
    PerformanceData, ReviewSession, ReviewType
)
from srs_engine.repetition.repository import state_to_row

from srs_engine.tests.conftest import BASE_TIME, outcome

LEARNER = "learner-1"


@pytest.fixture(params=["memory", "sql"])
def repository(request):
    return request.getfixturevalue(f"{request.param}_repository")


def _state(item_id="a", learner_id=LEARNER):
    return ForgettingCurveModel().create_state(learner_id, LearningItem(item_id=item_id), BASE_TIME)


def _session(session_id, item_id="a", at=BASE_TIME, quality=0.6):
    return ReviewSession(
        session_id=session_id,
        learner_id=LEARNER,
        item_id=item_id,
        session_date=at,
        review_type=ReviewType.SCHEDULED_REVIEW,
        performance=PerformanceData(response_quality=quality),
        context=ContextFactors(time_of_day=at.hour),
        adaptive_adjustments=(AdaptiveAdjustment(AdjustmentType.INTERVAL, 1.0, 0.7, "Reducing interval"),)
    )


class TestRepositoryContract:

    def test_missing_state(self, repository):
        assert repository.load_state(LEARNER, "a") is None
        assert repository.list_states(LEARNER) == []

    def test_save_and_load_state(self, repository):
        state = _state()
        state.learning_phase = LearningPhase.CONSOLIDATION
        state.next_review_date = BASE_TIME + datetime.timedelta(days=2)
        state.personalization_factors.optimal_review_conditions.beneficial_context_factors.append("quiet")
        repository.save_state(state)

        loaded = repository.load_state(LEARNER, "a")
        assert loaded == state
        assert loaded is not state

    def test_save_replaces_state(self, repository):
        state = _state()
        repository.save_state(state)
        state.stability = 9.0
        state.archived = True
        repository.save_state(state)

        loaded = repository.load_state(LEARNER, "a")
        assert loaded.stability == 9.0
        assert loaded.archived

    def test_returned_states_are_copies(self, repository):
        repository.save_state(_state())
        loaded = repository.load_state(LEARNER, "a")
        loaded.stability = 42.0
        loaded.forgetting_curve_parameters.decay_rate = 9.0

        again = repository.load_state(LEARNER, "a")
        assert again.stability != 42.0
        assert again.forgetting_curve_parameters.decay_rate != 9.0

    def test_list_states_sorted_per_learner(self, repository):
        for item_id in ["c", "a", "b"]:
            repository.save_state(_state(item_id))
        repository.save_state(_state("z", learner_id="other"))

        assert [s.item_id for s in repository.list_states(LEARNER)] == ["a", "b", "c"]

    def test_history_in_date_order(self, repository):
        repository.append_session(_session("s-2", at=BASE_TIME + datetime.timedelta(hours=3)))
        repository.append_session(_session("s-1", at=BASE_TIME))
        repository.append_session(_session("s-x", item_id="b"))

        history = repository.load_history(LEARNER, "a")
        assert [s.session_id for s in history] == ["s-1", "s-2"]
        assert history[0] == _session("s-1", at=BASE_TIME)

    def test_has_session(self, repository):
        repository.append_session(_session("s-1"))
        assert repository.has_session(LEARNER, "a", "s-1")
        assert not repository.has_session(LEARNER, "b", "s-1")
        assert not repository.has_session(LEARNER, "a", "s-2")


def test_sql_repository_rejects_duplicate_session(sql_repository):
    sql_repository.append_session(_session("s-1"))
    with pytest.raises(IntegrityError):
        sql_repository.append_session(_session("s-1"))
    assert len(sql_repository.load_history(LEARNER, "a")) == 1


def test_engine_over_sql_repository(sql_repository, config, clock):
    with SpacedRepetitionEngine(repository=sql_repository, config=config, clock=clock) as engine:
        engine.add_item(LEARNER, {"item_id": "a"}, initial_performance={"response_quality": 0.8})
        for hours in (6, 30):
            engine.record_review(LEARNER, "a", outcome(0.9, at=BASE_TIME + datetime.timedelta(hours=hours)))

        state = engine.get_memory_state(LEARNER, "a")
        assert state.review_count == 3
        assert state.consecutive_successes == 3
        assert len(engine.repository.load_history(LEARNER, "a")) == 3
        assert engine.analyze_forgetting_curve(LEARNER, "a").curve_parameters.half_life > 0


class TestRecordConversion:

    def test_from_dict_keeps_columns_only(self):
        row = state_to_row(_state())
        record = MemoryStateRecord.from_dict({**row, "unknown": 1})
        assert record.learner_id == LEARNER
        assert record.stability == row["stability"]
        assert not hasattr(record, "unknown")

    def test_update_ignores_non_columns(self):
        record = MemoryStateRecord.from_dict(state_to_row(_state()))
        record.update({"stability": 2.0, "to_dict": "overwritten", "key": "junk"})

        assert record.stability == 2.0
        assert callable(record.to_dict)
        assert record.to_dict()["stability"] == 2.0

    def test_update_keeps_primary_key(self):
        record = MemoryStateRecord.from_dict(state_to_row(_state()))
        record.update({"learner_id": "learner-2", "item_id": "b", "archived": True})
        assert (record.learner_id, record.item_id) == (LEARNER, "a")
        assert record.archived
