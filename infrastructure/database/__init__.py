"""
Database infrastructure package.

Экспортирует основные функции и классы для работы с базой данных.
"""

from .repositories import PuppyRepository
from .session import Database
from .record_store import FlushPolicy, RecordStore
from .models import (
    Base,
    PuppyUser,
    ScheduleEvent,
    VaccinationEntry,
    WeightLog,
    FeedingLog,
    WalkLog,
    CommandProgress,
)

__all__ = [
    # Репозитории
    "PuppyRepository",
    # Database
    "Database",
    "FlushPolicy",
    "RecordStore",
    # Модели
    "Base",
    "PuppyUser",
    "ScheduleEvent",
    "VaccinationEntry",
    "WeightLog",
    "FeedingLog",
    "WalkLog",
    "CommandProgress",
]
