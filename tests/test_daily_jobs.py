import random
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from core.errors import CollaboratorError
from core.health.vaccinations import days_left, reminder_text
from core.scheduling.daily_jobs import MORNING_TIP_KEY, TIP_TOPICS, VACCINATION_CHECK_KEY, DailyJobs, pick_topic
from core.scheduling.registry import SYSTEM_OWNER, TimerRegistry
from infrastructure.database.models import VaccinationEntry
from infrastructure.utils.time_utils import MS_PER_DAY, to_ms

MOSCOW = ZoneInfo("Europe/Moscow")
NOW = datetime(2025, 7, 1, 7, 0, tzinfo=timezone.utc)
HOUR_MS = 3600 * 1000


def make_jobs(repo, llm, telegram, registry=None):
    return DailyJobs(repo, llm, telegram, registry if registry is not None else TimerRegistry(), tz=MOSCOW,
                     clock=lambda: NOW, rng=random.Random(7))


def add_entry(repo, user_id, scheduled_at_ms, completed=False, name="💉 Прививка"):
    repo.ensure_user(user_id)
    repo.session.add(VaccinationEntry(user_id=user_id, vaccination_type=name,
                                      scheduled_at_ms=scheduled_at_ms, is_completed=completed))
    repo.session.flush()


@pytest.mark.parametrize("delta_ms, expected", [
    (0, 0),
    (-HOUR_MS, 0),
    (HOUR_MS, 1),
    (MS_PER_DAY, 1),
    (MS_PER_DAY + 1, 2),
    (3 * MS_PER_DAY - HOUR_MS, 3),
])
def test_days_left_rounds_up(delta_ms, expected):
    now_ms = to_ms(NOW)
    assert days_left(now_ms + delta_ms, now_ms) == expected


def test_reminder_text_only_for_notification_days():
    assert reminder_text("💉 Прививка", 2) is None
    assert reminder_text("💉 Прививка", 4) is None
    assert reminder_text("💉 Прививка", -1) is None
    assert "сегодня" in reminder_text("💉 Прививка", 0)
    assert "завтра" in reminder_text("💉 Прививка", 1)
    assert "через 3 дня" in reminder_text("💉 Прививка", 3)


@pytest.mark.asyncio
async def test_vaccination_check_sends_only_for_due_entries(repo, llm, telegram):
    repo.subscribe_user("u1")
    now_ms = to_ms(NOW)
    add_entry(repo, "u1", now_ms + MS_PER_DAY - HOUR_MS, name="💉 Первая вакцинация")   # daysLeft == 1
    add_entry(repo, "u1", now_ms + 2 * MS_PER_DAY - HOUR_MS, name="🪱 Дегельминтизация")  # daysLeft == 2

    sent = await make_jobs(repo, llm, telegram).vaccination_check()

    assert sent == 1
    telegram.send.assert_awaited_once()
    user_id, text = telegram.send.await_args.args
    assert user_id == "u1"
    assert "Первая вакцинация" in text
    assert "завтра" in text


@pytest.mark.asyncio
async def test_vaccination_check_skips_completed_and_unsubscribed(repo, llm, telegram):
    now_ms = to_ms(NOW)
    repo.subscribe_user("u1")
    add_entry(repo, "u1", now_ms + HOUR_MS, completed=True)
    add_entry(repo, "u2", now_ms + HOUR_MS)  # u2 не подписан

    assert await make_jobs(repo, llm, telegram).vaccination_check() == 0
    telegram.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_morning_tip_continues_after_failed_delivery(repo, llm, telegram):
    for user_id in ("u1", "u2", "u3"):
        repo.subscribe_user(user_id)
    telegram.send.side_effect = [True, False, True]

    delivered = await make_jobs(repo, llm, telegram).morning_tip()

    assert delivered == 2
    assert [call.args[0] for call in telegram.send.await_args_list] == ["u1", "u2", "u3"]
    assert telegram.send.await_args_list[0].args[1].startswith("🌅 *Доброе утро!*")
    llm.generate_tip.assert_awaited_once()
    assert llm.generate_tip.await_args.args[0] in TIP_TOPICS


@pytest.mark.asyncio
async def test_morning_tip_is_skipped_when_ai_fails(repo, llm, telegram):
    repo.subscribe_user("u1")
    llm.generate_tip.side_effect = CollaboratorError("timeout", source="ai")

    assert await make_jobs(repo, llm, telegram).morning_tip() == 0
    telegram.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_puts_both_jobs_under_system_owner(repo, llm, telegram):
    registry = TimerRegistry()

    make_jobs(repo, llm, telegram, registry).register()

    assert registry.live_keys(SYSTEM_OWNER) == {MORNING_TIP_KEY, VACCINATION_CHECK_KEY}
    times = {h.key: h.spec.time_str for h in registry.handles(SYSTEM_OWNER)}
    assert times == {MORNING_TIP_KEY: "09:00", VACCINATION_CHECK_KEY: "10:00"}

    registry.cancel_everything()


def test_pick_topic_is_deterministic_with_seeded_rng():
    assert pick_topic(random.Random(1)) == pick_topic(random.Random(1))
    assert pick_topic(random.Random(1)) in TIP_TOPICS
