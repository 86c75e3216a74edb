# Samoyed Mentor - Telegram assistant for puppy owners
# Copyright (C) 2025-2026 Olga Kalinina

# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.

"""
Схемы для эндпоинта /schedule.

Событие режима дня и напоминание, которое из него выводится.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.puppy_enums import EventKind


class ScheduleEventCreate(BaseModel):
    """
    Запрос на добавление события в режим дня.

    Attributes:
        user_id: Идентификатор пользователя (Telegram chat id).
        event_kind: Тип события.
        time: Время события "ЧЧ:ММ" (допускаются разделители ":", ".", "-" и пробел).
        label: Необязательная подпись, например "витамины".
    """
    user_id: str = Field(..., min_length=1, description="Telegram chat id")
    event_kind: EventKind = Field(..., description="Тип события")
    time: str = Field(..., description="Время события, ЧЧ:ММ")
    label: Optional[str] = Field(None, max_length=100, description="Подпись события")


class ScheduleEventResponse(BaseModel):
    """Событие режима дня и время напоминания о нём."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    event_kind: str
    label: Optional[str] = None
    time: str = Field(..., description="Время события, ЧЧ:ММ")
    reminder_time: str = Field(..., description="Время напоминания, ЧЧ:ММ")


class ScheduleListResponse(BaseModel):
    user_id: str
    events: List[ScheduleEventResponse]
    active_reminders: int = Field(..., description="Сколько таймеров сейчас запущено для пользователя")
