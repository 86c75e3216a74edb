"""
Напоминания по режиму дня.

Каждое активное событие пользователя превращается в ежедневный таймер,
который срабатывает за REMINDER_OFFSET_MINUTES до события. После любого
изменения списка событий набор таймеров пользователя пересобирается целиком.
"""

from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from core.errors import CollaboratorError
from core.scheduling.registry import TimerHandle, TimerRegistry
from core.scheduling.triggers import TriggerSpec, shift_time_of_day
from infrastructure.database.models import ScheduleEvent
from infrastructure.logging.logger import setup_logger
from infrastructure.utils.time_utils import reference_tz
from models.puppy_enums import EventKind
from settings import settings

logger = setup_logger("reminder_scheduler")


def event_title(event_kind: str, label: Optional[str] = None) -> str:
    try:
        title = EventKind.from_str(event_kind).label
    except ValueError:
        title = event_kind
    if label:
        title = f"{title}: {label}"
    return title


class ReminderScheduler:
    """Держит таймеры пользователя в соответствии с его списком событий."""

    def __init__(self, repo, registry: TimerRegistry, telegram,
                 tz: Optional[ZoneInfo] = None, offset_minutes: Optional[int] = None):
        self.repo = repo
        self.registry = registry
        self.telegram = telegram
        self.tz = tz or reference_tz()
        self.offset_minutes = settings.REMINDER_OFFSET_MINUTES if offset_minutes is None else offset_minutes

    def derive_spec(self, event: ScheduleEvent) -> TriggerSpec:
        hour, minute = shift_time_of_day(event.hour, event.minute, -self.offset_minutes)
        return TriggerSpec(
            hour=hour,
            minute=minute,
            tz=self.tz,
            key=f"event:{event.id}",
            payload={
                "event_id": event.id,
                "event_kind": event.event_kind,
                "label": event.label,
                "event_time": event.time_str,
            },
        )

    def derive_specs(self, events: Iterable[ScheduleEvent]) -> List[TriggerSpec]:
        return [self.derive_spec(event) for event in events if event.is_active]

    def reschedule_user(self, user_id: str) -> List[TimerHandle]:
        """
        Пересобирает все таймеры пользователя по текущему списку событий.

        Идемпотентно: повторный вызов без изменений даёт тот же набор таймеров.

        Raises:
            CollaboratorError: если не удалось прочитать события из хранилища.
        """
        user_id = str(user_id)
        try:
            events = self.repo.get_schedule_events(user_id)
        except SQLAlchemyError as e:
            logger.error(f"[reminders] Не удалось прочитать события {user_id}: {e}", exc_info=True)
            raise CollaboratorError(f"Не удалось прочитать режим дня: {e}", source="store") from e

        handles = self.registry.replace_all(user_id, self.derive_specs(events), self.fire_reminder)
        logger.info(f"[reminders] {user_id}: активных напоминаний {len(handles)}")
        return handles

    on_user_edited_schedule_list = reschedule_user

    def try_reschedule_user(self, user_id: str) -> bool:
        """Как reschedule_user, но ошибку хранилища только логирует. False, если таймеры не обновлены."""
        try:
            self.reschedule_user(user_id)
        except CollaboratorError as e:
            logger.error(f"[reminders] {user_id}: напоминания не обновлены: {e}")
            return False
        return True

    def cold_start(self) -> int:
        """Восстанавливает таймеры всех пользователей после перезапуска процесса."""
        user_ids = self.repo.get_users_with_active_events()
        restored = 0
        for user_id in user_ids:
            try:
                self.reschedule_user(user_id)
                restored += 1
            except CollaboratorError as e:
                logger.error(f"[reminders] Пропущен пользователь {user_id} при восстановлении: {e}")
        logger.info(f"[reminders] Восстановлены напоминания для {restored}/{len(user_ids)} пользователей")
        return restored

    def format_reminder(self, payload: dict) -> str:
        title = event_title(payload.get("event_kind", ""), payload.get("label"))
        return (f"⏰ *Напоминание*\n\n"
                f"Через {self.offset_minutes} минут: {title} в {payload.get('event_time')}.")

    async def fire_reminder(self, user_id: str, payload: dict) -> bool:
        """Отправляет напоминание одному пользователю. Сбой доставки не трогает таймер."""
        delivered = await self.telegram.send(user_id, self.format_reminder(payload))
        if not delivered:
            logger.error(f"[reminders] Не доставлено напоминание {payload.get('event_id')} пользователю {user_id}")
        return delivered
