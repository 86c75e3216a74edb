"""Разбор пользовательского ввода: имя, дата рождения, вес, время события."""

import math
import re
from datetime import date
from typing import Tuple

from core.errors import ValidationError

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 30
MAX_WEIGHT_KG = 100.0

BIRTH_DATE_RE = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$")
TIME_RE = re.compile(r"^(\d{1,2})[:.\- ](\d{1,2})$")


def parse_puppy_name(text: str) -> str:
    name = (text or "").strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Имя должно быть от {NAME_MIN_LENGTH} до {NAME_MAX_LENGTH} символов", value=name
        )
    return name


def parse_birth_date(text: str) -> date:
    """Строгий формат ДД.ММ.ГГГГ. Несуществующие даты (31.02) отклоняются."""
    raw = (text or "").strip()
    match = BIRTH_DATE_RE.match(raw)
    if not match:
        raise ValidationError("Ожидается дата в формате ДД.ММ.ГГГГ", value=raw)

    day, month, year = (int(group) for group in match.groups())
    if day > 31 or month > 12:
        raise ValidationError("День или месяц вне диапазона", value=raw)
    try:
        return date(year, month, day)
    except ValueError as e:
        raise ValidationError(f"Такой даты не существует: {e}", value=raw) from e


def format_birth_date(value: date) -> str:
    return value.strftime("%d.%m.%Y")


def parse_weight(text: str) -> float:
    """Вес в кг, разделитель точка или запятая, 0 < вес <= 100."""
    raw = (text or "").strip().replace(",", ".")
    try:
        weight = float(raw)
    except ValueError as e:
        raise ValidationError("Вес должен быть числом", value=raw) from e

    if math.isnan(weight) or weight <= 0 or weight > MAX_WEIGHT_KG:
        raise ValidationError(f"Вес должен быть больше 0 и не больше {MAX_WEIGHT_KG:g} кг", value=raw)
    return weight


def parse_time_of_day(text: str) -> Tuple[int, int]:
    """ЧЧ:ММ, разделитель двоеточие, точка, дефис или пробел."""
    raw = (text or "").strip()
    match = TIME_RE.match(raw)
    if not match:
        raise ValidationError("Ожидается время в формате ЧЧ:ММ", value=raw)

    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValidationError("Часы 0–23, минуты 0–59", value=raw)
    return hour, minute
