from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from core.errors import CollaboratorError
from infrastructure.database.models import PuppyUser, ScheduleEvent
from infrastructure.database.record_store import FlushPolicy, RecordStore
from infrastructure.database.session import Database


def test_zero_window_commits_every_write(store):
    store.repo.add_schedule_event("u1", "walk", 9, 0)

    assert store.pending_writes == 0
    assert not store.flush_scheduled
    assert store.session.query(ScheduleEvent).count() == 1


def test_flush_policy_reads_settings_window():
    assert FlushPolicy.from_settings().window_seconds >= 0
    assert FlushPolicy().window_seconds == 5.0


@pytest.mark.asyncio
async def test_writes_are_coalesced_until_flush(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'bot.db'}")
    db.init_schema()
    store = RecordStore(db, FlushPolicy(window_seconds=60))

    store.repo.subscribe_user("u1")
    store.repo.set_puppy_name("u1", "Снежок")

    # запись сразу видна в той же сессии, но ещё не сохранена
    assert store.repo.get_user("u1").puppy_name == "Снежок"
    assert store.pending_writes == 3
    assert store.flush_scheduled

    store.flush()

    assert store.pending_writes == 0
    assert not store.flush_scheduled

    other = db.get_session()
    try:
        assert other.get(PuppyUser, "u1").puppy_name == "Снежок"
    finally:
        other.close()

    store.close()
    db.dispose()


@pytest.mark.asyncio
async def test_close_flushes_pending_writes(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'bot.db'}")
    db.init_schema()
    store = RecordStore(db, FlushPolicy(window_seconds=60))
    store.repo.add_schedule_event("u1", "feeding", 8, 0)

    store.close()

    other = db.get_session()
    try:
        assert other.query(ScheduleEvent).count() == 1
    finally:
        other.close()
    db.dispose()


def test_commit_failure_is_reported_as_collaborator_error(store):
    store.session.commit = MagicMock(side_effect=SQLAlchemyError("disk I/O error"))

    with pytest.raises(CollaboratorError) as exc_info:
        store.repo.ensure_user("u1")

    assert exc_info.value.source == "store"
    assert store.pending_writes == 0


def test_flush_without_pending_writes_is_noop(store):
    store.session.commit = MagicMock()

    store.flush()

    store.session.commit.assert_not_called()


@pytest.mark.asyncio
async def test_failed_deferred_commit_discards_window_and_runs_rollback_hook(db):
    on_rollback = MagicMock()
    store = RecordStore(db, FlushPolicy(window_seconds=60), on_rollback=on_rollback)
    store.repo.add_schedule_event("u1", "walk", 9, 0)
    store.session.commit = MagicMock(side_effect=SQLAlchemyError("disk I/O error"))

    store._flush_from_timer()

    on_rollback.assert_called_once_with()
    assert store.pending_writes == 0
    assert store.repo.get_schedule_events("u1") == []
    store.session.close()


def test_rollback_hook_error_does_not_hide_store_error(store):
    store.on_rollback = MagicMock(side_effect=RuntimeError("hook failed"))
    store.session.commit = MagicMock(side_effect=SQLAlchemyError("disk I/O error"))

    with pytest.raises(CollaboratorError):
        store.repo.ensure_user("u1")

    store.on_rollback.assert_called_once_with()
