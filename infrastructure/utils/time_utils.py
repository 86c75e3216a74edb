from datetime import date, datetime, time as dt_time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from settings import settings

MS_PER_DAY = 24 * 3600 * 1000
MS_PER_WEEK = 7 * MS_PER_DAY
MS_PER_MONTH = 30 * MS_PER_DAY  # календарные месяцы не нужны, месяц = 30 дней


def reference_tz(name: Optional[str] = None) -> ZoneInfo:
    """Часовой пояс, в котором живут все напоминания."""
    return ZoneInfo(name or settings.TIMEZONE)


def to_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def from_ms(ms: int, tz: Optional[ZoneInfo] = None) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz or reference_tz())


def local_midnight_ms(day: date, tz: Optional[ZoneInfo] = None) -> int:
    """Полночь календарной даты в опорном часовом поясе, в миллисекундах."""
    return to_ms(datetime.combine(day, dt_time(0, 0), tzinfo=tz or reference_tz()))


def now_local(tz: Optional[ZoneInfo] = None) -> datetime:
    return datetime.now(tz or reference_tz())
