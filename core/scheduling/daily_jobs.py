"""
Две общие ежедневные задачи: утренний совет и проверка календаря прививок.

Обе регистрируются один раз при старте под SYSTEM_OWNER и обходят всех
подписчиков. Сбой у одного подписчика логируется и не останавливает обход.
"""

import random
from datetime import datetime
from typing import Callable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from core.errors import CollaboratorError
from core.health.vaccinations import days_left, reminder_text
from core.scheduling.registry import SYSTEM_OWNER, TimerHandle, TimerRegistry, utc_now
from core.scheduling.triggers import TriggerSpec
from infrastructure.logging.logger import setup_logger
from infrastructure.utils.time_utils import reference_tz, to_ms
from settings import settings

logger = setup_logger("daily_jobs")

MORNING_TIP_KEY = "morning_tip"
VACCINATION_CHECK_KEY = "vaccination_check"

TIP_TOPICS = (
    "Приучение к туалету на улице",
    "Как отучить щенка кусаться",
    "Социализация с людьми и собаками",
    "Команда «Ко мне»",
    "Привыкание к поводку и шлейке",
    "Вычёсывание густой шерсти",
    "Режим сна щенка",
    "Одиночество дома и вой",
    "Игры для умственной нагрузки",
    "Режим кормления по возрасту",
    "Уход за лапами и когтями",
    "Спокойствие при гостях",
)


def pick_topic(rng: random.Random = None) -> str:
    return (rng or random).choice(TIP_TOPICS)


class DailyJobs:
    """Утренняя рассылка и проверка прививок."""

    def __init__(self, repo, llm, telegram, registry: TimerRegistry,
                 tz: Optional[ZoneInfo] = None,
                 clock: Callable[[], datetime] = utc_now,
                 rng: Optional[random.Random] = None):
        self.repo = repo
        self.llm = llm
        self.telegram = telegram
        self.registry = registry
        self.tz = tz or reference_tz()
        self.clock = clock
        self.rng = rng or random.Random()

    def register(self) -> List[TimerHandle]:
        """Регистрирует обе задачи под общим владельцем."""
        handles = [
            self.registry.register(
                SYSTEM_OWNER,
                TriggerSpec(settings.MORNING_TIP_HOUR, settings.MORNING_TIP_MINUTE, self.tz, key=MORNING_TIP_KEY),
                self.morning_tip,
            ),
            self.registry.register(
                SYSTEM_OWNER,
                TriggerSpec(settings.VACCINATION_CHECK_HOUR, settings.VACCINATION_CHECK_MINUTE, self.tz,
                            key=VACCINATION_CHECK_KEY),
                self.vaccination_check,
            ),
        ]
        for handle in handles:
            logger.info(f"📅 {handle.key} запланирован на {handle.spec.time_str} ({self.tz.key})")
        return handles

    def _subscribers(self) -> List[str]:
        try:
            return sorted(self.repo.get_subscribers())
        except SQLAlchemyError as e:
            logger.error(f"Не удалось получить подписчиков: {e}", exc_info=True)
            raise CollaboratorError(f"Не удалось получить подписчиков: {e}", source="store") from e

    async def morning_tip(self, owner: str = SYSTEM_OWNER, payload: Optional[dict] = None) -> int:
        """Генерирует совет на случайную тему и рассылает всем подписчикам."""
        logger.info("⏰ Запуск утренней рассылки советов...")
        topic = pick_topic(self.rng)
        logger.info(f"📝 Тема сегодня: {topic}")

        try:
            tip = await self.llm.generate_tip(topic)
        except CollaboratorError as e:
            logger.error(f"❌ Утренний совет не сгенерирован, рассылка отменена: {e}")
            return 0

        message = f"🌅 *Доброе утро!*\n\n{tip}"
        subscribers = self._subscribers()

        delivered = 0
        for user_id in subscribers:
            if await self.telegram.send(user_id, message):
                delivered += 1
            else:
                logger.error(f"❌ Ошибка отправки совета пользователю {user_id}")

        logger.info(f"📨 Рассылка завершена: {delivered}/{len(subscribers)} пользователей")
        return delivered

    async def vaccination_check(self, owner: str = SYSTEM_OWNER, payload: Optional[dict] = None) -> int:
        """Напоминает о прививках, до которых осталось 3, 1 или 0 дней."""
        now_ms = to_ms(self.clock())
        sent = 0

        for user_id in self._subscribers():
            try:
                entries = self.repo.get_vaccination_entries(user_id)
            except SQLAlchemyError as e:
                logger.error(f"Не удалось прочитать прививки {user_id}: {e}")
                continue

            for entry in entries:
                if entry.is_completed:
                    continue
                text = reminder_text(entry.vaccination_type, days_left(entry.scheduled_at_ms, now_ms))
                if text is None:
                    continue
                if await self.telegram.send(user_id, text):
                    sent += 1
                else:
                    logger.error(f"❌ Не доставлено напоминание о прививке {entry.id} пользователю {user_id}")

        logger.info(f"💉 Проверка прививок завершена, отправлено напоминаний: {sent}")
        return sent
