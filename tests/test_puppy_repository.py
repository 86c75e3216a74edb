from datetime import date
from zoneinfo import ZoneInfo

from core.health.vaccinations import VACCINATION_OFFSETS
from infrastructure.database.models import WeightLog
from infrastructure.utils.time_utils import MS_PER_DAY, MS_PER_WEEK, local_midnight_ms, now_local

MOSCOW = ZoneInfo("Europe/Moscow")


def test_set_birth_date_builds_seven_vaccinations_at_fixed_offsets(repo):
    birth_ms = local_midnight_ms(date(2025, 5, 25), MOSCOW)

    repo.set_birth_date("u1", birth_ms)

    entries = repo.get_vaccination_entries("u1")
    assert len(entries) == 7
    assert [e.scheduled_at_ms - birth_ms for e in entries] == [offset for offset, _ in VACCINATION_OFFSETS]
    assert entries[0].scheduled_at_ms - birth_ms == 7 * MS_PER_WEEK
    assert entries[-1].scheduled_at_ms - birth_ms == 360 * MS_PER_DAY
    assert not any(e.is_completed for e in entries)


def test_regenerating_schedule_discards_completion_flags(repo):
    birth_ms = local_midnight_ms(date(2025, 5, 25), MOSCOW)
    repo.set_birth_date("u1", birth_ms)
    first = repo.get_vaccination_entries("u1")[0]
    assert repo.mark_vaccination_completed("u1", first.id)

    repo.set_birth_date("u1", birth_ms + MS_PER_DAY)

    entries = repo.get_vaccination_entries("u1")
    assert len(entries) == 7
    assert not any(e.is_completed for e in entries)
    assert entries[0].scheduled_at_ms == birth_ms + MS_PER_DAY + 7 * MS_PER_WEEK


def test_mark_vaccination_completed_checks_owner(repo):
    repo.set_birth_date("u1", local_midnight_ms(date(2025, 5, 25), MOSCOW))
    entry = repo.get_vaccination_entries("u1")[0]

    assert repo.mark_vaccination_completed("u2", entry.id) is False
    assert repo.mark_vaccination_completed("u1", 999) is False
    assert repo.get_upcoming_vaccinations("u1", limit=3)[0].id == entry.id


def test_upcoming_vaccinations_skip_completed(repo):
    repo.set_birth_date("u1", local_midnight_ms(date(2025, 5, 25), MOSCOW))
    entries = repo.get_vaccination_entries("u1")
    repo.mark_vaccination_completed("u1", entries[0].id)

    upcoming = repo.get_upcoming_vaccinations("u1", limit=3)

    assert [e.id for e in upcoming] == [e.id for e in entries[1:4]]


def test_subscribers(repo):
    repo.subscribe_user("u1")
    repo.subscribe_user("u2")
    repo.ensure_user("u3")
    repo.unsubscribe_user("u2")

    assert repo.get_subscribers() == {"u1"}


def test_schedule_events_ordered_by_time_and_delete_checks_owner(repo):
    late = repo.add_schedule_event("u1", "walk", 21, 0)
    early = repo.add_schedule_event("u1", "feeding", 8, 0)
    repo.add_schedule_event("u2", "sleep", 13, 0)

    assert [e.id for e in repo.get_schedule_events("u1")] == [early.id, late.id]
    assert repo.delete_schedule_event("u2", late.id) is False
    assert repo.delete_schedule_event("u1", late.id) is True
    assert repo.delete_schedule_event("u1", late.id) is False
    assert [e.id for e in repo.get_schedule_events("u1")] == [early.id]
    assert repo.get_users_with_active_events() == ["u1", "u2"]


def test_weight_history_is_chronological(repo):
    repo.log_weight("u1", 5.0, 8)
    repo.log_weight("u1", 6.5, 9)

    assert repo.get_last_weight("u1").weight == 6.5
    assert [w.weight for w in repo.get_weight_history("u1")] == [5.0, 6.5]
    assert repo.get_last_weight("nobody") is None


def test_walk_stats_and_last_feeding(repo):
    since = local_midnight_ms(now_local(MOSCOW).date(), MOSCOW)
    repo.log_walk("u1", True)
    repo.log_walk("u1", True)
    repo.log_walk("u1", False)
    repo.log_feeding("u1")

    assert repo.get_walk_stats("u1", since) == {"total": 3, "successful": 2}
    assert repo.get_walk_stats("u2", since) == {"total": 0, "successful": 0}
    assert repo.get_last_feeding("u1").fed_at_ms >= since


def test_reset_user_erases_everything(repo):
    repo.subscribe_user("u1")
    repo.set_puppy_name("u1", "Снежок")
    repo.set_birth_date("u1", local_midnight_ms(date(2025, 5, 25), MOSCOW))
    repo.add_schedule_event("u1", "walk", 9, 0)
    repo.log_weight("u1", 4.2, 6)
    repo.log_feeding("u1")
    repo.log_walk("u1", True)
    repo.add_schedule_event("u2", "walk", 9, 0)

    assert repo.reset_user("u1") is True

    assert repo.get_user("u1") is None
    assert repo.get_schedule_events("u1") == []
    assert repo.get_vaccination_entries("u1") == []
    assert repo.get_weight_history("u1") == []
    assert repo.get_subscribers() == set()
    assert len(repo.get_schedule_events("u2")) == 1
    assert repo.session.query(WeightLog).count() == 0
    assert repo.reset_user("u1") is False


def test_command_progress_accumulates_per_user(repo):
    assert repo.update_command_progress("u1", "sit") == 1
    assert repo.update_command_progress("u1", "sit") == 2
    repo.update_command_progress("u1", "come", delta=5)
    repo.update_command_progress("u2", "sit")

    assert repo.get_command_progress("u1") == {"come": 5, "sit": 2}
    assert list(repo.get_command_progress("u1")) == ["come", "sit"]
    assert repo.get_command_progress("u2") == {"sit": 1}

    repo.reset_user("u1")
    assert repo.get_command_progress("u1") == {}
    assert repo.get_command_progress("u2") == {"sit": 1}
