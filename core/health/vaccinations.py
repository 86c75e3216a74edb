"""
Календарь прививок щенка.

График строится один раз от даты рождения по фиксированной таблице смещений.
Ежедневная проверка напоминает о процедуре за 3 дня, за 1 день и в сам день.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

from infrastructure.utils.time_utils import MS_PER_DAY, MS_PER_MONTH, MS_PER_WEEK

# Смещения от даты рождения в миллисекундах
VACCINATION_OFFSETS = (
    (7 * MS_PER_WEEK, "🪱 Дегельминтизация перед первой прививкой"),
    (8 * MS_PER_WEEK, "💉 Первая комплексная вакцинация (DHPPi+L)"),
    (11 * MS_PER_WEEK, "🪱 Дегельминтизация перед ревакцинацией"),
    (12 * MS_PER_WEEK, "💉 Ревакцинация + бешенство"),
    (15 * MS_PER_WEEK, "🪱 Дегельминтизация"),
    (16 * MS_PER_WEEK, "💉 Третья комплексная вакцинация"),
    (12 * MS_PER_MONTH, "💉 Ежегодная ревакцинация"),
)

NOTIFY_DAYS_LEFT = frozenset({3, 1, 0})


@dataclass(frozen=True)
class PlannedVaccination:
    vaccination_type: str
    scheduled_at_ms: int


def build_vaccination_plan(birth_date_ms: int) -> List[PlannedVaccination]:
    """Полный график от даты рождения: одна запись на каждую строку таблицы."""
    return [
        PlannedVaccination(vaccination_type=name, scheduled_at_ms=birth_date_ms + offset)
        for offset, name in VACCINATION_OFFSETS
    ]


def days_left(scheduled_at_ms: int, now_ms: int) -> int:
    return math.ceil((scheduled_at_ms - now_ms) / MS_PER_DAY)


def reminder_text(vaccination_type: str, days: int) -> Optional[str]:
    """Текст напоминания или None, если сегодня о записи молчим."""
    if days not in NOTIFY_DAYS_LEFT:
        return None
    if days == 0:
        when = "сегодня"
    elif days == 1:
        when = "завтра"
    else:
        when = f"через {days} дня"
    return f"💉 *Напоминание о прививке*\n\n{vaccination_type} — {when}.\n\n_Не забудьте отметить процедуру в календаре прививок._"
