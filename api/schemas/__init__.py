"""
Схемы API Samoyed Mentor.

Структура:
- schedule: Схемы для режима дня и напоминаний
- telegram: Схема входящего обновления Telegram
"""

# Schedule
from api.schemas.schedule import (
    ScheduleEventCreate,
    ScheduleEventResponse,
    ScheduleListResponse,
)

# Telegram
from api.schemas.telegram import TelegramUpdate

__all__ = [
    "ScheduleEventCreate",
    "ScheduleEventResponse",
    "ScheduleListResponse",
    "TelegramUpdate",
]
