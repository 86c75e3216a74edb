import asyncio
import traceback
from typing import Any, Dict, List, Optional

import aiohttp

from core.errors import CollaboratorError
from core.persona.prompt_builder import MentorPromptBuilder
from infrastructure.logging.logger import setup_logger
from models.puppy_enums import AiMode
from settings import settings


class LLMClient:
    """Клиент OpenAI-совместимого chat-completions API (по умолчанию GitHub Models)."""

    def __init__(self,
                 api_key: Optional[str] = None,
                 url: Optional[str] = None,
                 model: Optional[str] = None,
                 prompt_builder: Optional[MentorPromptBuilder] = None):
        self.logger = setup_logger("llm_client")
        self.api_key = api_key or settings.LLM_API_KEY
        self.url = url or settings.LLM_API_URL
        self.model_name = model or settings.LLM_MODEL
        self.prompts = prompt_builder or MentorPromptBuilder()
        self.timeout = aiohttp.ClientTimeout(total=settings.LLM_TIMEOUT_SECONDS)
        self.max_retries = 3
        self.mode_config = {
            AiMode.NORMAL: {"temperature": 0.7, "max_tokens": 1000},
            AiMode.EMERGENCY: {"temperature": 0.3, "max_tokens": 1200},
        }

    async def generate_tip(self, topic: str) -> str:
        """
        Генерирует утренний совет на заданную тему.

        Raises:
            CollaboratorError: если API недоступен или вернул пустой ответ.
        """
        self.logger.info(f"[INFO] Генерация совета на тему: {topic}")
        messages = [
            {"role": "system", "content": self.prompts.system_prompt(AiMode.NORMAL)},
            {"role": "user", "content": self.prompts.tip_prompt(topic)},
        ]
        return await self._send_request(self._build_payload(messages, temperature=0.9, max_tokens=400))

    async def answer_question(self, question: str, mode: AiMode = AiMode.NORMAL) -> str:
        """
        Отвечает на вопрос владельца в обычном или экстренном режиме.

        Args:
            question: Текст вопроса, передаётся без изменений.
            mode: Режим ответа, определяет системный промпт.

        Returns:
            str: Ответ LLM.

        Raises:
            CollaboratorError: если API недоступен или вернул некорректный ответ.
        """
        mode = AiMode(mode)
        self.logger.info(f"[INFO] Запуск LLM в режиме {mode.value}")
        cfg = self.mode_config[mode]
        messages = [
            {"role": "system", "content": self.prompts.system_prompt(mode)},
            {"role": "user", "content": question},
        ]
        return await self._send_request(self._build_payload(messages, **cfg))

    def _build_payload(self, messages: List[Dict[str, str]], temperature: float, max_tokens: int) -> Dict[str, Any]:
        """Формирует JSON-payload для API-запроса."""
        return {
            "model": self.model_name,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

    async def _send_request(self, json_payload: Dict[str, Any]) -> str:
        """Отправляет запрос к LLM API с ретраями на 429 и таймаутах."""
        if not self.api_key:
            raise CollaboratorError("LLM_API_KEY не задан", source="ai")

        last_error = "unknown"
        for retry in range(self.max_retries):
            try:
                async with aiohttp.ClientSession(timeout=self.timeout) as session:
                    self.logger.debug(f"[DEBUG] Запрос к {self.url}, попытка {retry + 1}/{self.max_retries}")
                    async with session.post(
                        self.url,
                        json=json_payload,
                        headers={"Authorization": f"Bearer {self.api_key}"},
                    ) as response:
                        if response.status == 429:
                            last_error = "429 Too Many Requests"
                            self.logger.info(f"[DEBUG] Лимит запросов, повтор через {2 ** retry} секунд")
                            await asyncio.sleep(2 ** retry)
                            continue

                        if response.status != 200:
                            error_body = await response.text()
                            self.logger.error(f"[ERROR] Получен статус {response.status}, тело: {error_body[:500]}")
                            raise CollaboratorError(f"LLM API вернул статус {response.status}", source="ai")

                        data = await response.json()

                return self._extract_content(data)

            except asyncio.TimeoutError:
                last_error = "timeout"
                self.logger.error(f"[ERROR] TimeoutError, повтор через {2 ** retry} секунд")
                await asyncio.sleep(2 ** retry)
                continue

            except aiohttp.ClientError as e:
                self.logger.error(f"[ERROR] Ошибка соединения с LLM API: {e}")
                self.logger.debug(f"[DEBUG] Traceback: {traceback.format_exc()}")
                raise CollaboratorError(f"LLM API недоступен: {e}", source="ai") from e

            except (ValueError, KeyError, AttributeError, TypeError) as e:
                # битый JSON или неожиданная структура ответа
                self.logger.error(f"[ERROR] Некорректный ответ LLM API: {e}")
                raise CollaboratorError(f"Некорректный ответ LLM: {e}", source="ai") from e

        self.logger.error(f"[ERROR] Все {self.max_retries} попытки провалились: {last_error}")
        raise CollaboratorError(f"LLM API не ответил: {last_error}", source="ai")

    def _extract_content(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            self.logger.error("[ERROR] В ответе API отсутствуют choices")
            raise CollaboratorError("Пустой ответ LLM", source="ai")

        content = (choices[0].get("message") or {}).get("content")
        if not content or not content.strip():
            self.logger.error("[ERROR] Содержимое ответа пустое")
            raise CollaboratorError("Пустой ответ LLM", source="ai")

        self.logger.info(f"[DEBUG] Результат API: {content[:100]}...")
        return content.strip()
