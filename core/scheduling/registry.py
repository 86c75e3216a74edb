"""
Реестр живых таймеров.

Таймеры сгруппированы по владельцу: id пользователя или SYSTEM_OWNER для
общих ежедневных задач. Каждый таймер это asyncio.Task, который спит до
следующего срабатывания и вызывает action(owner, payload).

Отмена и регистрация выполняются синхронно, без await между ними, поэтому
внутри одного event loop replace_all атомарен для вызывающего кода: после
возврата из cancel_all ни один отменённый таймер больше не сработает.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from core.errors import ScheduleConsistencyError
from core.scheduling.triggers import TriggerSpec, next_occurrence
from infrastructure.logging.logger import setup_logger

logger = setup_logger("timer_registry")

SYSTEM_OWNER = "__system__"

TimerAction = Callable[[str, dict], Awaitable[None]]
Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[None]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimerHandle:
    """Один повторяющийся таймер: (owner, spec, action)."""

    def __init__(self, owner: str, spec: TriggerSpec, action: TimerAction,
                 clock: Clock = utc_now, sleep: Sleeper = asyncio.sleep):
        self.owner = owner
        self.spec = spec
        self.action = action
        self.cancelled = False
        self.fire_count = 0
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._last_fire_at: Optional[datetime] = None

    @property
    def key(self) -> Optional[str]:
        return self.spec.key

    @property
    def active(self) -> bool:
        return not self.cancelled

    def start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise ScheduleConsistencyError(
                "Таймер можно запустить только внутри event loop",
                owner=self.owner, key=self.key or "",
            ) from e
        self._task = loop.create_task(self._run(), name=f"timer:{self.owner}:{self.key or self.spec.time_str}")

    def next_fire_at(self) -> datetime:
        now = self._clock()
        if self._last_fire_at is not None and self._last_fire_at > now:
            # sleep мог проснуться чуть раньше, второй раз за тот же день не срабатываем
            now = self._last_fire_at
        return next_occurrence(self.spec, now)

    async def _run(self) -> None:
        while not self.cancelled:
            fire_at = self.next_fire_at()
            delay = max((fire_at - self._clock()).total_seconds(), 0.0)
            await self._sleep(delay)
            if self.cancelled:
                return
            self._last_fire_at = fire_at
            await self.fire()

    async def fire(self) -> bool:
        """Вызывает action. Ошибка логируется и не останавливает повторения."""
        if self.cancelled:
            return False
        self.fire_count += 1
        try:
            await self.action(self.owner, self.spec.payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[timers] Ошибка таймера owner={self.owner} key={self.key} time={self.spec.time_str}: {e}",
                exc_info=True,
            )
        return True

    def cancel(self) -> None:
        self.cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def __repr__(self):
        return f"<TimerHandle owner={self.owner} key={self.key} time={self.spec.time_str} active={self.active}>"


class TimerRegistry:
    """Владелец всех активных таймеров процесса."""

    def __init__(self, clock: Clock = utc_now, sleep: Sleeper = asyncio.sleep):
        self._clock = clock
        self._sleep = sleep
        self._timers: Dict[str, List[TimerHandle]] = {}

    def register(self, owner: str, spec: TriggerSpec, action: TimerAction) -> TimerHandle:
        """Запускает action в каждое будущее срабатывание spec. Не блокирует."""
        owner = str(owner)
        spec.validate()

        handles = self._timers.setdefault(owner, [])
        if spec.key is not None:
            for stale in [h for h in handles if h.key == spec.key]:
                stale.cancel()
                handles.remove(stale)
                logger.info(f"[timers] Заменён таймер owner={owner} key={spec.key}")

        handle = TimerHandle(owner, spec, action, clock=self._clock, sleep=self._sleep)
        handle.start()
        handles.append(handle)
        logger.debug(f"[timers] Зарегистрирован {handle}")
        return handle

    def cancel_all(self, owner: str) -> int:
        """Отменяет все таймеры владельца. Если их нет, ничего не делает."""
        handles = self._timers.pop(str(owner), [])
        for handle in handles:
            handle.cancel()
        if handles:
            logger.debug(f"[timers] Отменено {len(handles)} таймеров owner={owner}")
        return len(handles)

    def replace_all(self, owner: str, specs: Iterable[TriggerSpec], action: TimerAction) -> List[TimerHandle]:
        """
        Отменяет таймеры владельца и регистрирует новый набор.

        Ошибка одной регистрации логируется и не мешает остальным.
        """
        owner = str(owner)
        self.cancel_all(owner)

        registered = []
        for spec in specs:
            try:
                registered.append(self.register(owner, spec, action))
            except ScheduleConsistencyError as e:
                logger.error(f"[timers] Пропущен таймер owner={owner} key={spec.key}: {e}")
            except Exception as e:
                logger.error(f"[timers] Неожиданная ошибка регистрации owner={owner} key={spec.key}: {e}",
                             exc_info=True)
        return registered

    def cancel_everything(self) -> int:
        total = 0
        for owner in list(self._timers):
            total += self.cancel_all(owner)
        logger.info(f"[timers] Остановлены все таймеры: {total}")
        return total

    def handles(self, owner: str) -> List[TimerHandle]:
        return list(self._timers.get(str(owner), []))

    def live_keys(self, owner: str) -> Set[str]:
        return {h.key for h in self.handles(owner) if h.key is not None and h.active}

    def owners(self) -> List[str]:
        return [owner for owner, handles in self._timers.items() if handles]

    def __len__(self):
        return sum(len(h) for h in self._timers.values())
