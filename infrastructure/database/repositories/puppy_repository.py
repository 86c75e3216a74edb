# Samoyed Mentor - Telegram assistant for puppy owners
# Copyright (C) 2025-2026 Olga Kalinina

# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.

"""
Репозиторий данных щенка: профиль, режим дня, прививки, вес, трекер и дрессировка.

Методы записи не делают commit сами: после изменения вызывается `on_write`.
RecordStore передаёт сюда отложенный commit, без него commit выполняется сразу.
"""

from typing import Callable, Dict, List, Optional, Set

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from core.health.vaccinations import build_vaccination_plan
from infrastructure.database.models import (
    CommandProgress,
    FeedingLog,
    PuppyUser,
    ScheduleEvent,
    VaccinationEntry,
    WalkLog,
    WeightLog,
    now_ms,
)
from infrastructure.logging.logger import setup_logger

logger = setup_logger("puppy_repository")


class PuppyRepository:
    """Репозиторий для работы с данными пользователя и его щенка."""

    def __init__(self, session: Session, on_write: Optional[Callable[[], None]] = None):
        self.session = session
        self._on_write = on_write or session.commit

    def _written(self) -> None:
        # flush делает запись видимой для следующих запросов в этой же сессии
        self.session.flush()
        self._on_write()

    # ============ Пользователь ============

    def get_user(self, user_id: str) -> Optional[PuppyUser]:
        return self.session.get(PuppyUser, str(user_id))

    def ensure_user(self, user_id: str) -> PuppyUser:
        """Возвращает пользователя, создавая запись при первом контакте."""
        user = self.get_user(user_id)
        if user is None:
            user = PuppyUser(user_id=str(user_id), subscribed=False, created_at_ms=now_ms())
            self.session.add(user)
            self._written()
            logger.info(f"Создан пользователь {user_id}")
        return user

    def subscribe_user(self, user_id: str) -> PuppyUser:
        user = self.ensure_user(user_id)
        if not user.subscribed:
            user.subscribed = True
            self._written()
        return user

    def unsubscribe_user(self, user_id: str) -> None:
        user = self.get_user(user_id)
        if user and user.subscribed:
            user.subscribed = False
            self._written()

    def get_subscribers(self) -> Set[str]:
        rows = self.session.query(PuppyUser.user_id).filter(PuppyUser.subscribed.is_(True)).all()
        return {row.user_id for row in rows}

    def set_puppy_name(self, user_id: str, name: str) -> PuppyUser:
        user = self.ensure_user(user_id)
        user.puppy_name = name
        self._written()
        return user

    def set_birth_date(self, user_id: str, birth_date_ms: int) -> PuppyUser:
        """
        Сохраняет дату рождения и пересобирает календарь прививок.

        Старый график удаляется целиком, отметки о выполнении не переносятся.
        """
        user = self.ensure_user(user_id)
        user.birth_date_ms = birth_date_ms
        self.replace_vaccination_schedule(user_id, birth_date_ms)
        return user

    def reset_user(self, user_id: str) -> bool:
        """
        Полностью удаляет все данные пользователя.

        Returns:
            True если пользователь был, False если удалять нечего
        """
        user_id = str(user_id)
        user = self.get_user(user_id)
        for model in (ScheduleEvent, VaccinationEntry, WeightLog, FeedingLog, WalkLog, CommandProgress):
            self.session.query(model).filter(model.user_id == user_id).delete()
        if user is not None:
            self.session.delete(user)
        self._written()
        logger.info(f"Удалены данные пользователя {user_id}")
        return user is not None

    # ============ Режим дня ============

    def get_schedule_events(self, user_id: str, active_only: bool = True) -> List[ScheduleEvent]:
        query = self.session.query(ScheduleEvent).filter(ScheduleEvent.user_id == str(user_id))
        if active_only:
            query = query.filter(ScheduleEvent.is_active.is_(True))
        return query.order_by(ScheduleEvent.hour, ScheduleEvent.minute, ScheduleEvent.id).all()

    def get_schedule_event(self, event_id: int) -> Optional[ScheduleEvent]:
        return self.session.get(ScheduleEvent, event_id)

    def get_users_with_active_events(self) -> List[str]:
        rows = (
            self.session.query(ScheduleEvent.user_id)
            .filter(ScheduleEvent.is_active.is_(True))
            .distinct()
            .all()
        )
        return sorted(row.user_id for row in rows)

    def add_schedule_event(
        self,
        user_id: str,
        event_kind: str,
        hour: int,
        minute: int,
        label: Optional[str] = None,
    ) -> ScheduleEvent:
        self.ensure_user(user_id)
        event = ScheduleEvent(
            user_id=str(user_id),
            event_kind=event_kind,
            label=label,
            hour=hour,
            minute=minute,
            is_active=True,
            created_at_ms=now_ms(),
        )
        self.session.add(event)
        self._written()
        logger.info(f"Добавлено событие {event.id} для {user_id}: {event_kind} {event.time_str}")
        return event

    def delete_schedule_event(self, user_id: str, event_id: int) -> bool:
        """
        Удаляет событие, только если оно принадлежит пользователю.

        Returns:
            True если удалено, False если не найдено
        """
        event = self.get_schedule_event(event_id)
        if event is None or event.user_id != str(user_id):
            return False
        self.session.delete(event)
        self._written()
        logger.info(f"Удалено событие {event_id} пользователя {user_id}")
        return True

    # ============ Прививки ============

    def get_vaccination_entries(self, user_id: str) -> List[VaccinationEntry]:
        return (
            self.session.query(VaccinationEntry)
            .filter(VaccinationEntry.user_id == str(user_id))
            .order_by(VaccinationEntry.scheduled_at_ms)
            .all()
        )

    def get_upcoming_vaccinations(self, user_id: str, limit: int = 3) -> List[VaccinationEntry]:
        return (
            self.session.query(VaccinationEntry)
            .filter(
                VaccinationEntry.user_id == str(user_id),
                VaccinationEntry.is_completed.is_(False),
            )
            .order_by(VaccinationEntry.scheduled_at_ms)
            .limit(limit)
            .all()
        )

    def replace_vaccination_schedule(self, user_id: str, birth_date_ms: int) -> List[VaccinationEntry]:
        user_id = str(user_id)
        self.session.query(VaccinationEntry).filter(
            VaccinationEntry.user_id == user_id
        ).delete()

        entries = [
            VaccinationEntry(
                user_id=user_id,
                vaccination_type=planned.vaccination_type,
                scheduled_at_ms=planned.scheduled_at_ms,
                is_completed=False,
            )
            for planned in build_vaccination_plan(birth_date_ms)
        ]
        self.session.add_all(entries)
        self._written()
        logger.info(f"Пересобран календарь прививок для {user_id}: {len(entries)} записей")
        return entries

    def mark_vaccination_completed(self, user_id: str, entry_id: int) -> bool:
        entry = self.session.get(VaccinationEntry, entry_id)
        if entry is None or entry.user_id != str(user_id):
            return False
        entry.is_completed = True
        self._written()
        return True

    # ============ Вес ============

    def log_weight(self, user_id: str, weight: float, age_weeks: int) -> WeightLog:
        self.ensure_user(user_id)
        record = WeightLog(user_id=str(user_id), weight=weight, age_weeks=age_weeks, timestamp_ms=now_ms())
        self.session.add(record)
        self._written()
        return record

    def get_last_weight(self, user_id: str) -> Optional[WeightLog]:
        return (
            self.session.query(WeightLog)
            .filter(WeightLog.user_id == str(user_id))
            .order_by(WeightLog.timestamp_ms.desc(), WeightLog.id.desc())
            .first()
        )

    def get_weight_history(self, user_id: str, limit: int = 20) -> List[WeightLog]:
        rows = (
            self.session.query(WeightLog)
            .filter(WeightLog.user_id == str(user_id))
            .order_by(WeightLog.timestamp_ms.desc(), WeightLog.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(rows))

    # ============ Кормления и прогулки ============

    def log_feeding(self, user_id: str) -> FeedingLog:
        self.ensure_user(user_id)
        record = FeedingLog(user_id=str(user_id), fed_at_ms=now_ms())
        self.session.add(record)
        self._written()
        return record

    def get_last_feeding(self, user_id: str) -> Optional[FeedingLog]:
        return (
            self.session.query(FeedingLog)
            .filter(FeedingLog.user_id == str(user_id))
            .order_by(FeedingLog.fed_at_ms.desc(), FeedingLog.id.desc())
            .first()
        )

    def log_walk(self, user_id: str, success: bool) -> WalkLog:
        self.ensure_user(user_id)
        record = WalkLog(user_id=str(user_id), success=success, walked_at_ms=now_ms())
        self.session.add(record)
        self._written()
        return record

    def get_walk_stats(self, user_id: str, since_ms: int) -> Dict[str, int]:
        """Количество прогулок с момента since_ms: всего и успешных."""
        total, successful = (
            self.session.query(
                func.count(WalkLog.id),
                func.coalesce(func.sum(case((WalkLog.success.is_(True), 1), else_=0)), 0),
            )
            .filter(WalkLog.user_id == str(user_id), WalkLog.walked_at_ms >= since_ms)
            .one()
        )
        return {"total": int(total or 0), "successful": int(successful or 0)}

    # ============ Дрессировка ============

    def update_command_progress(self, user_id: str, command: str, delta: int = 1) -> int:
        """
        Прибавляет delta к счётчику тренировок команды.

        Returns:
            int: новое значение счётчика
        """
        self.ensure_user(user_id)
        progress = (
            self.session.query(CommandProgress)
            .filter(CommandProgress.user_id == str(user_id), CommandProgress.command == command)
            .first()
        )
        if progress is None:
            progress = CommandProgress(user_id=str(user_id), command=command, score=0)
            self.session.add(progress)
        progress.score += delta
        progress.updated_at_ms = now_ms()
        self._written()
        logger.info(f"Прогресс {user_id}: {command} = {progress.score}")
        return progress.score

    def get_command_progress(self, user_id: str) -> Dict[str, int]:
        """Счётчики по командам пользователя, от самой натренированной."""
        rows = (
            self.session.query(CommandProgress)
            .filter(CommandProgress.user_id == str(user_id))
            .order_by(CommandProgress.score.desc(), CommandProgress.command)
            .all()
        )
        return {row.command: row.score for row in rows}
