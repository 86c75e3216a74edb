"""
Описание ежедневных срабатываний таймеров.

TriggerSpec: время суток в опорном часовом поясе, повторяется каждый день.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from core.errors import ScheduleConsistencyError

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class TriggerSpec:
    hour: int
    minute: int
    tz: ZoneInfo
    key: Optional[str] = None  # идентичность события, не больше одного таймера на ключ
    payload: dict = field(default_factory=dict, compare=False, hash=False)

    def validate(self) -> None:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise ScheduleConsistencyError(
                f"Некорректное время срабатывания {self.hour}:{self.minute}",
                key=self.key or "",
            )

    @property
    def time_str(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def shift_time_of_day(hour: int, minute: int, delta_minutes: int) -> tuple:
    """
    Сдвигает время суток на delta_minutes с переходом через полночь.

    shift_time_of_day(0, 5, -10) -> (23, 55)
    """
    total = (hour * 60 + minute + delta_minutes) % MINUTES_PER_DAY
    return total // 60, total % 60


def next_occurrence(spec: TriggerSpec, now: datetime) -> datetime:
    """Ближайшее срабатывание строго позже now, в часовом поясе спеки."""
    local_now = now.astimezone(spec.tz)
    candidate = local_now.replace(hour=spec.hour, minute=spec.minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = (candidate.replace(tzinfo=None) + timedelta(days=1)).replace(tzinfo=spec.tz)
    return candidate
