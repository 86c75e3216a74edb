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

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from api.dependencies.runtime import get_runtime
from api.schemas.telegram import TelegramUpdate
from core.runtime import MentorRuntime
from infrastructure.logging.logger import setup_logger
from settings import settings

logger = setup_logger("telegram_webhook")

router = APIRouter(prefix="/telegram", tags=["Telegram"])


@router.post("/webhook")
async def telegram_webhook(
        update: TelegramUpdate,
        runtime: MentorRuntime = Depends(get_runtime),
        secret_token: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    """
    Принимает обновление от Telegram.

    Если задан TELEGRAM_WEBHOOK_SECRET, заголовок X-Telegram-Bot-Api-Secret-Token
    должен с ним совпадать. Ошибки обработки не возвращаются Telegram,
    иначе он будет повторять доставку того же обновления.
    """
    if settings.TELEGRAM_WEBHOOK_SECRET and secret_token != settings.TELEGRAM_WEBHOOK_SECRET:
        logger.warning(f"[webhook] Неверный секрет для update {update.update_id}")
        raise HTTPException(status_code=403, detail="Invalid secret token")

    await runtime.router.handle_update(update.model_dump(exclude_none=True))
    return {"ok": True}
