from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from core.dialog.input_state import PendingInputState, PendingStateStore
from core.dialog.state_machine import InputStateMachine
from core.router import menus
from core.router.update_router import UpdateRouter
from core.scheduling.registry import TimerRegistry
from core.scheduling.reminder_scheduler import ReminderScheduler
from models.puppy_enums import AiMode, EventKind, InputStateKind

MOSCOW = ZoneInfo("Europe/Moscow")


@pytest.fixture
def registry():
    return TimerRegistry()


@pytest.fixture
def router(repo, registry, llm, telegram):
    scheduler = ReminderScheduler(repo, registry, telegram, tz=MOSCOW)
    machine = InputStateMachine(PendingStateStore(), repo, scheduler, llm, telegram, tz=MOSCOW)
    return UpdateRouter(repo, machine, scheduler, registry, telegram, tz=MOSCOW)


def message(text, user_id=42, update_id=1):
    return {
        "update_id": update_id,
        "message": {
            "message_id": 10,
            "from": {"id": user_id, "first_name": "Аня"},
            "chat": {"id": user_id, "type": "private"},
            "text": text,
        },
    }


def callback(data, user_id=42, update_id=2):
    return {
        "update_id": update_id,
        "callback_query": {
            "id": "cb-1",
            "from": {"id": user_id},
            "message": {"message_id": 11, "chat": {"id": user_id}},
            "data": data,
        },
    }


@pytest.mark.asyncio
async def test_start_subscribes_and_asks_for_puppy_name(router, repo, telegram):
    await router.handle_update(message("/start"))

    assert repo.get_subscribers() == {"42"}
    state = router.state_machine.get_pending_state("42")
    assert state.kind == InputStateKind.AWAITING_PUPPY_NAME
    assert telegram.send.await_args_list[-1].args[1] == menus.ASK_PUPPY_NAME


@pytest.mark.asyncio
async def test_start_for_known_puppy_shows_menu(router, repo, telegram):
    repo.set_puppy_name("42", "Снежок")

    await router.handle_update(message("/start@samoyed_mentor_bot"))

    assert router.state_machine.get_pending_state("42").is_none
    assert telegram.send.await_args.args[2] == menus.MAIN_MENU


@pytest.mark.asyncio
async def test_commands_are_not_routed_to_state_machine(router, llm):
    router.state_machine.set_pending_state("42", PendingInputState.ai(AiMode.NORMAL))

    await router.handle_update(message("/menu"))

    llm.answer_question.assert_not_awaited()
    assert router.state_machine.get_pending_state("42").kind == InputStateKind.AI_MODE


@pytest.mark.asyncio
async def test_free_text_goes_to_state_machine(router, llm):
    await router.handle_update(callback("menu_ai"))
    await router.handle_update(message("Почему он воет?"))

    llm.answer_question.assert_awaited_once_with("Почему он воет?", AiMode.NORMAL)


@pytest.mark.asyncio
async def test_sos_enters_emergency_mode(router, telegram):
    await router.handle_update(callback("sos_custom"))

    assert router.state_machine.get_pending_state("42") == PendingInputState.ai(AiMode.EMERGENCY)
    telegram.answer_callback_query.assert_awaited_once_with("cb-1", None)
    telegram.edit_message_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_reset_erases_records_timers_and_state(router, repo, registry):
    repo.subscribe_user("42")
    repo.add_schedule_event("42", "walk", 9, 0)
    router.scheduler.reschedule_user("42")
    router.state_machine.set_pending_state("42", PendingInputState.awaiting_weight())

    await router.handle_update(message("/reset"))

    assert repo.get_user("42") is None
    assert registry.handles("42") == []
    assert router.state_machine.get_pending_state("42").is_none


@pytest.mark.asyncio
async def test_schedule_type_button_waits_for_time(router):
    await router.handle_update(callback("sch_type_training"))

    assert router.state_machine.get_pending_state("42") == PendingInputState.awaiting_schedule_time(EventKind.TRAINING)


@pytest.mark.asyncio
async def test_stale_buttons_are_discarded_silently(router, repo, telegram):
    await router.handle_update(callback("sch_type_bath"))
    await router.handle_update(callback("sch_del_999", update_id=3))
    await router.handle_update(callback("kb_cat_food", update_id=4))

    assert router.state_machine.get_pending_state("42").is_none
    assert telegram.answer_callback_query.await_count == 3
    telegram.send.assert_not_awaited()
    telegram.edit_message_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_button_removes_event_and_reminder(router, repo, registry, telegram):
    event = repo.add_schedule_event("42", "feeding", 8, 0)
    router.scheduler.reschedule_user("42")

    await router.handle_update(callback(f"sch_del_{event.id}"))

    assert repo.get_schedule_events("42") == []
    assert registry.handles("42") == []
    telegram.answer_callback_query.assert_awaited_once_with("cb-1", "🗑 Удалено")


@pytest.mark.asyncio
async def test_vaccination_done_button_marks_entry(router, repo):
    repo.set_birth_date("42", 1_700_000_000_000)
    entry = repo.get_vaccination_entries("42")[0]

    await router.handle_update(callback(f"vacc_done_{entry.id}"))

    assert repo.get_vaccination_entries("42")[0].is_completed


@pytest.mark.asyncio
async def test_tracker_buttons_log_events(router, repo):
    await router.handle_update(callback("track_feed"))
    await router.handle_update(callback("track_walk_ok", update_id=3))
    await router.handle_update(callback("track_walk_fail", update_id=4))

    assert repo.get_last_feeding("42") is not None
    assert repo.get_walk_stats("42", 0) == {"total": 2, "successful": 1}


@pytest.mark.asyncio
async def test_store_failure_in_update_is_logged_and_user_notified(registry, llm, telegram):
    repo = MagicMock()
    repo.subscribe_user.side_effect = OperationalError("INSERT", {}, Exception("locked"))
    scheduler = ReminderScheduler(repo, registry, telegram, tz=MOSCOW)
    machine = InputStateMachine(PendingStateStore(), repo, scheduler, llm, telegram, tz=MOSCOW)
    router = UpdateRouter(repo, machine, scheduler, registry, telegram, tz=MOSCOW)

    await router.handle_update(message("/start"))

    assert telegram.send.await_args.args[1] == menus.STORE_APOLOGY


@pytest.mark.asyncio
async def test_training_button_increments_progress_and_redraws(router, repo, telegram):
    await router.handle_update(callback("track_cmd_sit"))
    await router.handle_update(callback("track_cmd_sit"))

    assert repo.get_command_progress("42") == {"sit": 2}
    telegram.answer_callback_query.assert_awaited_with("cb-1", "✅ Супер! +1 к навыку «Сидеть» (2)")
    text = telegram.edit_message_text.await_args.args[2]
    assert "Сидеть: `█░░░░░░░░░` 2/30" in text
    assert "Ко мне: `░░░░░░░░░░` 0/50" in text


@pytest.mark.asyncio
async def test_unknown_training_command_is_ignored(router, repo, telegram):
    await router.handle_update(callback("track_cmd_jump"))

    assert repo.get_command_progress("42") == {}
    telegram.answer_callback_query.assert_awaited_once_with("cb-1", None)
    telegram.edit_message_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_reports_stale_reminders_when_rebuild_fails(router, repo, registry, telegram, monkeypatch):
    event = repo.add_schedule_event("42", "walk", 9, 0)
    monkeypatch.setattr(router.scheduler, "try_reschedule_user", MagicMock(return_value=False))

    await router.handle_update(callback(f"sch_del_{event.id}"))

    assert repo.get_schedule_events("42") == []
    telegram.answer_callback_query.assert_any_await("cb-1", menus.SCHEDULE_EVENT_DELETED_NO_REMINDER)
    assert menus.STORE_APOLOGY not in [call.args[1] for call in telegram.send.await_args_list]
