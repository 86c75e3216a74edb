"""
Хранилище записей с отложенным сохранением.

Все записи сразу попадают в открытую транзакцию и видны следующим чтениям,
но на диск (commit) уходят пачкой: не чаще раза в `FlushPolicy.window_seconds`.
До явного `flush()` или очередного commit по таймеру данные не считаются сохранёнными.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.errors import CollaboratorError
from infrastructure.database.repositories import PuppyRepository
from infrastructure.database.session import Database
from infrastructure.logging.logger import setup_logger
from settings import settings

logger = setup_logger("record_store")


@dataclass(frozen=True)
class FlushPolicy:
    """Окно склейки записей. 0: commit после каждой записи."""
    window_seconds: float = 5.0

    @classmethod
    def from_settings(cls) -> "FlushPolicy":
        return cls(window_seconds=settings.FLUSH_WINDOW_SECONDS)


class RecordStore:
    """Write-through кэш поверх одной долгоживущей сессии SQLAlchemy."""

    def __init__(self, db: Database, policy: Optional[FlushPolicy] = None,
                 on_rollback: Optional[Callable[[], None]] = None):
        self.db = db
        self.policy = policy or FlushPolicy.from_settings()
        # вызывается после отката неудачного commit, когда в сессии снова данные из базы
        self.on_rollback = on_rollback
        self.session = db.get_session()
        self.repo = PuppyRepository(self.session, on_write=self._schedule_flush)
        self._pending_writes = 0
        self._flush_handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending_writes(self) -> int:
        """Сколько записей ждут commit."""
        return self._pending_writes

    @property
    def flush_scheduled(self) -> bool:
        return self._flush_handle is not None

    def _schedule_flush(self) -> None:
        self._pending_writes += 1

        if self.policy.window_seconds <= 0:
            self.flush()
            return

        if self._flush_handle is not None:
            return  # уже запланировано

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # вне event loop отложить некуда
            self.flush()
            return

        self._flush_handle = loop.call_later(self.policy.window_seconds, self._flush_from_timer)

    def _flush_from_timer(self) -> None:
        self._flush_handle = None
        try:
            self.flush()
        except CollaboratorError as e:
            logger.error(f"[record_store] Отложенный commit не удался, записи окна потеряны: {e}")

    def flush(self) -> None:
        """Немедленно сохраняет все накопленные записи."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

        if self._pending_writes == 0:
            return

        count = self._pending_writes
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            self._pending_writes = 0
            logger.error(f"[record_store] Ошибка сохранения {count} записей: {e}", exc_info=True)
            self._run_rollback_hook()
            raise CollaboratorError(f"Не удалось сохранить данные: {e}", source="store") from e

        self._pending_writes = 0
        logger.debug(f"[record_store] Сохранено записей: {count}")

    def _run_rollback_hook(self) -> None:
        if self.on_rollback is None:
            return
        try:
            self.on_rollback()
        except Exception as e:
            logger.error(f"[record_store] Ошибка обработчика отката: {e}", exc_info=True)

    def close(self) -> None:
        try:
            self.flush()
        finally:
            self.session.close()
