from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from core.errors import CollaboratorError
from core.scheduling.registry import TimerRegistry
from core.scheduling.reminder_scheduler import ReminderScheduler, event_title

MOSCOW = ZoneInfo("Europe/Moscow")


@pytest.fixture
def registry():
    return TimerRegistry()


@pytest.fixture
def scheduler(repo, registry, telegram):
    return ReminderScheduler(repo, registry, telegram, tz=MOSCOW, offset_minutes=10)


def test_reminder_fires_offset_minutes_before_event(repo, scheduler):
    event = repo.add_schedule_event("u1", "feeding", 8, 30)

    spec = scheduler.derive_spec(event)

    assert spec.time_str == "08:20"
    assert spec.key == f"event:{event.id}"
    assert spec.payload["event_time"] == "08:30"


@pytest.mark.parametrize("hour, minute, expected", [(0, 5, "23:55"), (0, 0, "23:50")])
def test_reminder_time_wraps_before_midnight(repo, scheduler, hour, minute, expected):
    event = repo.add_schedule_event("u1", "sleep", hour, minute)

    assert scheduler.derive_spec(event).time_str == expected


@pytest.mark.asyncio
async def test_reschedule_user_is_idempotent(repo, registry, scheduler):
    first = repo.add_schedule_event("u1", "feeding", 8, 0)
    second = repo.add_schedule_event("u1", "walk", 19, 30)

    scheduler.reschedule_user("u1")
    keys = registry.live_keys("u1")
    scheduler.reschedule_user("u1")

    assert registry.live_keys("u1") == keys == {f"event:{first.id}", f"event:{second.id}"}
    assert len(registry.handles("u1")) == 2

    registry.cancel_everything()


@pytest.mark.asyncio
async def test_deleted_event_has_no_reminder(repo, registry, scheduler):
    kept = repo.add_schedule_event("u1", "feeding", 8, 0)
    removed = repo.add_schedule_event("u1", "walk", 19, 30)
    scheduler.reschedule_user("u1")
    removed_handle = next(h for h in registry.handles("u1") if h.key == f"event:{removed.id}")

    repo.delete_schedule_event("u1", removed.id)
    scheduler.on_user_edited_schedule_list("u1")

    assert registry.live_keys("u1") == {f"event:{kept.id}"}
    assert removed_handle.cancelled

    registry.cancel_everything()


@pytest.mark.asyncio
async def test_cold_start_restores_every_user(repo, registry, scheduler):
    repo.add_schedule_event("u1", "feeding", 8, 0)
    repo.add_schedule_event("u2", "walk", 9, 0)
    repo.add_schedule_event("u2", "training", 17, 0)

    assert scheduler.cold_start() == 2
    assert len(registry.handles("u1")) == 1
    assert len(registry.handles("u2")) == 2

    registry.cancel_everything()


@pytest.mark.asyncio
async def test_reschedule_raises_collaborator_error_when_store_fails(registry, telegram):
    repo = MagicMock()
    repo.get_schedule_events.side_effect = OperationalError("SELECT", {}, Exception("locked"))
    scheduler = ReminderScheduler(repo, registry, telegram, tz=MOSCOW)

    with pytest.raises(CollaboratorError):
        scheduler.reschedule_user("u1")


@pytest.mark.asyncio
async def test_fire_reminder_sends_to_owner(scheduler, telegram):
    payload = {"event_id": 3, "event_kind": "walk", "label": None, "event_time": "19:30"}

    assert await scheduler.fire_reminder("u1", payload) is True

    user_id, text = telegram.send.await_args.args
    assert user_id == "u1"
    assert "Прогулка" in text
    assert "19:30" in text
    assert "10 минут" in text


@pytest.mark.asyncio
async def test_fire_reminder_reports_failed_delivery(scheduler, telegram):
    telegram.send.return_value = False

    assert await scheduler.fire_reminder("u1", {"event_kind": "feeding", "event_time": "08:00"}) is False


def test_event_title_with_label_and_unknown_kind():
    assert event_title("other", "витамины") == "📌 Событие: витамины"
    assert event_title("bath") == "bath"
