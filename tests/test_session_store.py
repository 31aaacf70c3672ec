"""Tests for the in-memory session store and index state machine."""

import asyncio
import datetime

import pytest

from askdoc import IndexStatus, SessionStore
from askdoc.errors import ErrorType
from tests.conftest import make_chunk


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime.datetime(2025, 1, 1, tzinfo=datetime.UTC)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += datetime.timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def clocked_store(clock):
    return SessionStore(idle_hours=24, sweep_interval_seconds=600, clock=clock)


def test_create_and_get(session_store):
    session_id = session_store.create()
    session = session_store.get(session_id)

    assert session is not None
    assert session.id == session_id
    assert session.index_status is IndexStatus.NOT_CREATED
    assert session.chunks == []
    assert session.document_name is None
    assert session_store.count() == 1


@pytest.mark.parametrize("session_id", [None, "", "   ", "missing"])
def test_operations_are_total_over_bad_ids(session_store, session_id):
    assert session_store.get(session_id) is None
    assert session_store.exists(session_id) is False
    assert session_store.update(session_id, document_name="x") is False
    assert session_store.reset(session_id) is False
    assert session_store.delete(session_id) is False
    assert session_store.record_error(session_id, ErrorType.SEARCH_ERROR, "m") is False
    assert session_store.status(session_id)["session_exists"] is False


def test_get_refreshes_last_accessed(clocked_store, clock):
    session_id = clocked_store.create()
    created = clocked_store.get(session_id).last_accessed_at

    clock.advance(minutes=5)
    session = clocked_store.get(session_id)

    assert session.last_accessed_at == created + datetime.timedelta(minutes=5)


def test_update_rejects_unknown_fields(session_store):
    session_id = session_store.create()

    with pytest.raises(AttributeError, match="Unknown session fields"):
        session_store.update(session_id, not_a_field=1)


def test_update_compare_and_swap_on_token(session_store):
    session_id = session_store.create()
    session_store.update(session_id, ingestion_token="attempt-1")

    assert not session_store.update(
        session_id, expected_token="attempt-0", document_name="stale.pdf"
    )
    assert session_store.get(session_id).document_name is None

    assert session_store.update(
        session_id, expected_token="attempt-1", document_name="fresh.pdf"
    )
    assert session_store.get(session_id).document_name == "fresh.pdf"


def test_state_machine_transitions(session_store):
    session_id = session_store.create()

    assert not session_store.transition(session_id, IndexStatus.READY)
    assert session_store.transition(session_id, IndexStatus.CREATING)
    assert session_store.transition(session_id, IndexStatus.DEGRADED)
    assert not session_store.transition(session_id, IndexStatus.CREATING)
    assert not session_store.transition(session_id, IndexStatus.NOT_CREATED)
    assert session_store.get(session_id).index_status is IndexStatus.DEGRADED


def test_reset_clears_document_state_and_is_idempotent(session_store):
    session_id = session_store.create()
    session_store.update(
        session_id,
        document_name="rules.pdf",
        chunks=[make_chunk("Some content")],
        ingestion_token="t",
        indexed_chunk_count=1,
        index_complete=True,
    )
    session_store.transition(session_id, IndexStatus.CREATING)
    session_store.transition(session_id, IndexStatus.READY)
    session_store.record_error(session_id, ErrorType.VECTORSTORE_ERROR, "boom")

    for _ in range(3):
        assert session_store.reset(session_id)
        status = session_store.status(session_id)
        assert status["session_exists"] is True
        assert status["index_status"] == "not_created"
        assert status["chunk_count"] == 0
        assert status["current_pdf"] is None
        assert status["errors"] == []
        assert status["indexed_chunk_count"] == 0
        assert status["index_complete"] is False

    assert session_store.get(session_id).ingestion_token is None


def test_record_error_and_status(session_store):
    session_id = session_store.create()
    session_store.record_error(session_id, ErrorType.SEARCH_ERROR, "first")
    session_store.record_error(session_id, ErrorType.LLM_ERROR, "second")

    errors = session_store.status(session_id)["errors"]

    assert [error["type"] for error in errors] == ["SEARCH_ERROR", "LLM_ERROR"]
    assert [error["message"] for error in errors] == ["first", "second"]


def test_delete(session_store):
    session_id = session_store.create()

    assert session_store.delete(session_id)
    assert session_store.get(session_id) is None
    assert not session_store.delete(session_id)


def test_sweep_evicts_only_idle_sessions(clocked_store, clock):
    idle_id = clocked_store.create()
    clock.advance(hours=20)
    active_id = clocked_store.create()
    clock.advance(hours=5)

    assert clocked_store.sweep() == 1
    assert not clocked_store.exists(idle_id)
    assert clocked_store.exists(active_id)


def test_maybe_sweep_respects_interval(clocked_store, clock):
    session_id = clocked_store.create()
    clock.advance(hours=25)
    clocked_store.sweep()
    assert not clocked_store.exists(session_id)

    stale_id = clocked_store.create()
    clock.advance(hours=25)
    clocked_store._last_sweep = clock.now - datetime.timedelta(seconds=10)
    assert clocked_store.maybe_sweep() == 0
    assert clocked_store.exists(stale_id)

    clock.advance(seconds=600)
    assert clocked_store.maybe_sweep() == 1
    assert not clocked_store.exists(stale_id)


def test_create_triggers_lazy_sweep(clocked_store, clock):
    old_id = clocked_store.create()
    clock.advance(hours=25)

    new_id = clocked_store.create()

    assert not clocked_store.exists(old_id)
    assert clocked_store.exists(new_id)
    assert clocked_store.session_ids() == [new_id]


@pytest.mark.asyncio
async def test_ingestion_lock_is_per_session(session_store):
    first = session_store.create()
    second = session_store.create()

    lock = session_store.ingestion_lock(first)

    assert lock is session_store.ingestion_lock(first)
    assert lock is not session_store.ingestion_lock(second)
    async with lock:
        assert lock.locked()
        assert not session_store.ingestion_lock(second).locked()
    await asyncio.sleep(0)
