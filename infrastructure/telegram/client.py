"""
Клиент Telegram Bot API.

Все методы отправки возвращают True/False и никогда не бросают исключения:
сбой доставки одному пользователю логируется и не ломает вызывающий код.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from infrastructure.logging.logger import setup_logger
from settings import settings

logger = setup_logger("telegram_client")

STALE_CALLBACK_MARKERS = ("query is too old", "query ID is invalid")
NOT_MODIFIED_MARKER = "message is not modified"


class TelegramClient:
    """Тонкая обёртка над HTTP API бота поверх aiohttp."""

    def __init__(self, token: Optional[str] = None, api_url: Optional[str] = None, timeout: float = 30.0):
        self.token = token or settings.BOT_TOKEN
        self.api_url = (api_url or settings.TELEGRAM_API_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def _method_url(self, method: str) -> str:
        return f"{self.api_url}/bot{self.token}/{method}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def call(self, method: str, payload: Dict[str, Any],
                   timeout: Optional[aiohttp.ClientTimeout] = None) -> Dict[str, Any]:
        """
        Вызывает метод Bot API.

        Returns:
            Ответ Telegram как есть: {"ok": bool, "result": ..., "description": ...}.
            Сетевые ошибки превращаются в {"ok": False, "description": "..."}.
        """
        if not self.token:
            logger.warning("Telegram не настроен (задайте BOT_TOKEN)")
            return {"ok": False, "description": "BOT_TOKEN is not configured"}

        try:
            session = await self._get_session()
            async with session.post(self._method_url(method), json=payload, timeout=timeout or self.timeout) as resp:
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"[telegram] {method} не выполнен: {e}")
            return {"ok": False, "description": str(e)}

    async def send(self, user_id: str, text: str, reply_markup: Optional[dict] = None) -> bool:
        """Отправляет сообщение. Markdown, при ошибке разметки повтор простым текстом."""
        for parse_mode in ("Markdown", None):
            payload: Dict[str, Any] = {"chat_id": user_id, "text": text}
            if parse_mode:
                payload["parse_mode"] = parse_mode
            if reply_markup:
                payload["reply_markup"] = reply_markup

            result = await self.call("sendMessage", payload)
            if result.get("ok"):
                logger.info(f"[telegram] Отправлено {user_id}: {text[:50]}...")
                return True

            description = str(result.get("description", ""))
            if parse_mode and "can't parse entities" in description:
                logger.debug("[telegram] Markdown не распарсился, повтор простым текстом")
                continue

            logger.error(f"[telegram] Ошибка отправки пользователю {user_id}: {description}")
            return False
        return False

    async def edit_message_text(self, chat_id: str, message_id: int, text: str,
                                reply_markup: Optional[dict] = None) -> bool:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": "Markdown",
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup

        result = await self.call("editMessageText", payload)
        if result.get("ok") or NOT_MODIFIED_MARKER in str(result.get("description", "")):
            return True
        logger.error(f"[telegram] Не удалось изменить сообщение {message_id}: {result.get('description')}")
        return False

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text

        result = await self.call("answerCallbackQuery", payload)
        if result.get("ok"):
            return True

        description = str(result.get("description", ""))
        if any(marker in description for marker in STALE_CALLBACK_MARKERS):
            # нажатие кнопки пришло после перезапуска, просто пропускаем
            logger.info("[telegram] Пропущен устаревший callback-запрос")
        else:
            logger.error(f"[telegram] answerCallbackQuery: {description}")
        return False

    async def send_chat_action(self, chat_id: str, action: str = "typing") -> bool:
        result = await self.call("sendChatAction", {"chat_id": chat_id, "action": action})
        return bool(result.get("ok"))

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 25) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message", "callback_query"]}
        if offset is not None:
            payload["offset"] = offset

        result = await self.call("getUpdates", payload, timeout=aiohttp.ClientTimeout(total=timeout + 10))
        if not result.get("ok"):
            return []
        return result.get("result") or []

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
