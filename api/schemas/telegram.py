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

"""Схемы для вебхука Telegram."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class TelegramUpdate(BaseModel):
    """
    Входящее обновление Telegram.

    Используются только message и callback_query, остальные поля
    сохраняются как есть и игнорируются.
    """
    model_config = ConfigDict(extra="allow")

    update_id: int
    message: Optional[Dict[str, Any]] = None
    callback_query: Optional[Dict[str, Any]] = None
