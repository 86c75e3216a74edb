"""
Общий контекст процесса.

Создаётся один раз при старте приложения: хранилище, реестр таймеров,
ожидаемые состояния пользователей и внешние клиенты. start() восстанавливает
напоминания и ставит ежедневные задачи, shutdown() сохраняет данные и
останавливает таймеры.
"""

import asyncio
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from core.dialog.input_state import PendingStateStore
from core.dialog.state_machine import InputStateMachine
from core.errors import CollaboratorError
from core.router.update_router import UpdateRouter
from core.scheduling.daily_jobs import DailyJobs
from core.scheduling.registry import SYSTEM_OWNER, Clock, TimerRegistry, utc_now
from core.scheduling.reminder_scheduler import ReminderScheduler
from infrastructure.database.record_store import FlushPolicy, RecordStore
from infrastructure.database.session import Database
from infrastructure.llm.client import LLMClient
from infrastructure.logging.logger import setup_logger
from infrastructure.telegram.client import TelegramClient
from infrastructure.utils.time_utils import reference_tz
from settings import settings

logger = setup_logger("runtime")


class MentorRuntime:
    def __init__(self,
                 db: Optional[Database] = None,
                 telegram: Optional[TelegramClient] = None,
                 llm: Optional[LLMClient] = None,
                 flush_policy: Optional[FlushPolicy] = None,
                 tz: Optional[ZoneInfo] = None,
                 clock: Clock = utc_now,
                 polling: Optional[bool] = None):
        self.tz = tz or reference_tz()
        self.db = db or Database()
        self.telegram = telegram or TelegramClient()
        self.llm = llm or LLMClient()
        self.flush_policy = flush_policy or FlushPolicy.from_settings()
        self.clock = clock
        self.polling = settings.TELEGRAM_POLLING if polling is None else polling

        self.registry = TimerRegistry(clock=clock)
        self.states = PendingStateStore()
        self.store: Optional[RecordStore] = None
        self.scheduler: Optional[ReminderScheduler] = None
        self.daily_jobs: Optional[DailyJobs] = None
        self.state_machine: Optional[InputStateMachine] = None
        self.router: Optional[UpdateRouter] = None
        self.started = False
        self._polling_task: Optional[asyncio.Task] = None

    @property
    def repo(self):
        return self.store.repo

    def _open_store(self) -> None:
        try:
            self.db.init_schema()
        except SQLAlchemyError as e:
            logger.critical(f"❌ Не удалось открыть базу данных {self.db.db_url}: {e}")
            raise
        self.store = RecordStore(self.db, self.flush_policy)

    def _wire(self) -> None:
        repo = self.store.repo
        self.scheduler = ReminderScheduler(repo, self.registry, self.telegram, tz=self.tz)
        self.daily_jobs = DailyJobs(repo, self.llm, self.telegram, self.registry, tz=self.tz, clock=self.clock)
        self.state_machine = InputStateMachine(self.states, repo, self.scheduler, self.llm, self.telegram, tz=self.tz)
        self.router = UpdateRouter(repo, self.state_machine, self.scheduler, self.registry, self.telegram, tz=self.tz)
        self.store.on_rollback = self._resync_timers

    def _resync_timers(self) -> None:
        """Пересобирает таймеры по базе после отката: откатанные события не должны напоминать."""
        owners = set(self.registry.owners()) | set(self.repo.get_users_with_active_events())
        owners.discard(SYSTEM_OWNER)
        for user_id in sorted(owners):
            self.scheduler.try_reschedule_user(user_id)
        logger.warning(f"⚠️ Таймеры пересобраны после отката записей: {len(owners)} пользователей")

    async def start(self) -> None:
        """Открывает хранилище, восстанавливает таймеры и ставит ежедневные задачи."""
        if self.started:
            return

        self._open_store()
        self._wire()

        self.scheduler.cold_start()
        self.daily_jobs.register()

        if self.polling:
            self._polling_task = asyncio.create_task(self._poll_updates(), name="telegram-polling")
            logger.info("📡 Запущен long polling Telegram")

        self.started = True
        logger.info("🐕 Samoyed Mentor запущен")

    async def _poll_updates(self) -> None:
        offset = None
        while True:
            updates = await self.telegram.get_updates(offset)
            for update in updates:
                offset = update["update_id"] + 1
                await self.router.handle_update(update)
            if not updates:
                await asyncio.sleep(1)

    async def shutdown(self) -> None:
        """Сохраняет данные и останавливает все таймеры."""
        if not self.started:
            return

        if self._polling_task is not None:
            self._polling_task.cancel()
            try:
                await self._polling_task
            except asyncio.CancelledError:
                pass
            self._polling_task = None

        self.registry.cancel_everything()
        self.states.clear_all()
        self.store.on_rollback = None

        try:
            self.store.close()
        except CollaboratorError as e:
            logger.error(f"❌ Данные не сохранены при остановке: {e}")

        await self.telegram.close()
        self.db.dispose()
        self.started = False
        logger.info("👋 Samoyed Mentor остановлен")
