"""
Маршрутизация свободного текста по ожидаемому вводу.

У пользователя одно ожидаемое состояние. Таблица PRECEDENCE проверяется
сверху вниз, первое совпадение забирает сообщение. Если ничего не ждём,
текст молча отбрасывается.
"""

import asyncio
import weakref
from typing import Awaitable, Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from core.dialog.input_state import PendingInputState, PendingStateStore
from core.dialog.parsers import (
    format_birth_date,
    parse_birth_date,
    parse_puppy_name,
    parse_time_of_day,
    parse_weight,
)
from core.errors import CollaboratorError, ValidationError
from core.router import menus
from core.scheduling.reminder_scheduler import event_title
from infrastructure.logging.logger import setup_logger
from infrastructure.utils.time_utils import MS_PER_WEEK, local_midnight_ms, now_local, reference_tz, to_ms
from models.puppy_enums import AiMode, BirthDatePurpose, InputStateKind

logger = setup_logger("input_state")

StateHandler = Callable[[str, str, PendingInputState], Awaitable[None]]


class InputStateMachine:
    """Потребитель следующего текстового сообщения пользователя."""

    def __init__(self, states: PendingStateStore, repo, scheduler, llm, telegram,
                 tz: Optional[ZoneInfo] = None):
        self.states = states
        self.repo = repo
        self.scheduler = scheduler
        self.llm = llm
        self.telegram = telegram
        self.tz = tz or reference_tz()
        # замок живёт, пока его держит или ждёт хотя бы одно сообщение
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

        # (вид состояния, уточнение или None, обработчик)
        self.precedence: Tuple[Tuple[InputStateKind, Optional[BirthDatePurpose], StateHandler], ...] = (
            (InputStateKind.AWAITING_PUPPY_NAME, None, self._on_puppy_name),
            (InputStateKind.AWAITING_BIRTH_DATE, BirthDatePurpose.REGISTRATION, self._on_registration_birth_date),
            (InputStateKind.AWAITING_BIRTH_DATE, BirthDatePurpose.UPDATE, self._on_updated_birth_date),
            (InputStateKind.AWAITING_WEIGHT, None, self._on_weight),
            (InputStateKind.AWAITING_SCHEDULE_TIME, None, self._on_schedule_time),
            (InputStateKind.AI_MODE, None, self._on_ai_question),
        )

    # ============ Состояние ============

    def get_pending_state(self, user_id: str) -> PendingInputState:
        return self.states.get(user_id)

    def set_pending_state(self, user_id: str, state: PendingInputState) -> None:
        logger.info(f"[state] {user_id}: {state.kind.value}")
        self.states.set(user_id, state)

    def clear_pending_state(self, user_id: str) -> None:
        self.states.clear(user_id)

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def handler_for(self, state: PendingInputState) -> Optional[StateHandler]:
        for kind, purpose, handler in self.precedence:
            if state.kind != kind:
                continue
            if purpose is not None and state.purpose != purpose:
                continue
            return handler
        return None

    # ============ Входящий текст ============

    async def on_incoming_text(self, user_id: str, text: str) -> bool:
        """
        Передаёт текст обработчику текущего состояния.

        Returns:
            bool: True, если сообщение было обработано, False если его никто не ждал.
        """
        user_id = str(user_id)
        async with self._lock_for(user_id):
            state = self.states.get(user_id)
            handler = self.handler_for(state)
            if handler is None:
                logger.debug(f"[state] {user_id}: ввод не ожидается, сообщение пропущено")
                return False

            try:
                await handler(user_id, text, state)
            except ValidationError as e:
                logger.info(f"[state] {user_id}: некорректный ввод для {state.kind.value}: {e} ({e.value!r})")
                await self.telegram.send(user_id, self._reprompt(state))
            except (CollaboratorError, SQLAlchemyError) as e:
                logger.error(f"[state] {user_id}: ошибка в состоянии {state.kind.value}: {e}", exc_info=True)
                self.states.clear(user_id)
                await self.telegram.send(user_id, menus.STORE_APOLOGY, menus.MENU_BUTTON)
            return True

    @staticmethod
    def _reprompt(state: PendingInputState) -> str:
        if state.kind == InputStateKind.AWAITING_PUPPY_NAME:
            return menus.INVALID_NAME
        if state.kind == InputStateKind.AWAITING_BIRTH_DATE:
            return menus.INVALID_BIRTH_DATE
        if state.kind == InputStateKind.AWAITING_WEIGHT:
            return menus.INVALID_WEIGHT
        return menus.INVALID_TIME

    # ============ Обработчики ============

    async def _on_puppy_name(self, user_id: str, text: str, state: PendingInputState) -> None:
        name = parse_puppy_name(text)
        self.repo.set_puppy_name(user_id, name)
        self.states.set(user_id, PendingInputState.awaiting_birth_date(BirthDatePurpose.REGISTRATION))
        await self.telegram.send(user_id, menus.ASK_BIRTH_DATE.format(name=name))

    def _store_birth_date(self, user_id: str, text: str) -> str:
        birth_date = parse_birth_date(text)
        self.repo.set_birth_date(user_id, local_midnight_ms(birth_date, self.tz))
        return format_birth_date(birth_date)

    async def _on_registration_birth_date(self, user_id: str, text: str, state: PendingInputState) -> None:
        self._store_birth_date(user_id, text)
        self.states.clear(user_id)

        user = self.repo.get_user(user_id)
        upcoming = self.repo.get_upcoming_vaccinations(user_id)
        await self.telegram.send(user_id, menus.welcome_text(user.puppy_name if user else None, upcoming),
                                 menus.MAIN_MENU)

    async def _on_updated_birth_date(self, user_id: str, text: str, state: PendingInputState) -> None:
        formatted = self._store_birth_date(user_id, text)
        self.states.clear(user_id)
        await self.telegram.send(user_id, menus.BIRTH_DATE_UPDATED.format(date=formatted), menus.VACCINATIONS_MENU)

    def age_in_weeks(self, user_id: str) -> int:
        user = self.repo.get_user(user_id)
        if user is None or user.birth_date_ms is None:
            return 0
        return max(0, (to_ms(now_local(self.tz)) - user.birth_date_ms) // MS_PER_WEEK)

    async def _on_weight(self, user_id: str, text: str, state: PendingInputState) -> None:
        weight = parse_weight(text)
        age_weeks = self.age_in_weeks(user_id)
        self.repo.log_weight(user_id, weight, age_weeks)
        self.states.clear(user_id)
        await self.telegram.send(user_id, menus.WEIGHT_SAVED.format(weight=weight, age_weeks=age_weeks),
                                 menus.weight_keyboard(True))

    async def _on_schedule_time(self, user_id: str, text: str, state: PendingInputState) -> None:
        hour, minute = parse_time_of_day(text)
        event = self.repo.add_schedule_event(user_id, state.event_kind.value, hour, minute)
        self.states.clear(user_id)

        template = menus.SCHEDULE_EVENT_ADDED
        if not self.scheduler.try_reschedule_user(user_id):
            template = menus.SCHEDULE_EVENT_ADDED_NO_REMINDER
        confirmation = template.format(
            title=event_title(event.event_kind, event.label),
            time=event.time_str,
            offset=self.scheduler.offset_minutes,
        )
        await self.telegram.send(user_id, confirmation, menus.schedule_keyboard(True))

    async def _on_ai_question(self, user_id: str, text: str, state: PendingInputState) -> None:
        mode = state.ai_mode or AiMode.NORMAL
        await self.telegram.send_chat_action(user_id, "typing")
        try:
            answer = await self.llm.answer_question(text, mode)
        except CollaboratorError as e:
            logger.error(f"[state] {user_id}: AI не ответил ({mode.value}): {e}")
            await self.telegram.send(user_id, menus.AI_APOLOGY, menus.MENU_BUTTON)
            return
        except Exception as e:
            logger.error(f"[state] {user_id}: непредвиденная ошибка AI ({mode.value}): {e}", exc_info=True)
            await self.telegram.send(user_id, menus.AI_APOLOGY, menus.MENU_BUTTON)
            return
        finally:
            # режим AI одноразовый
            self.states.clear(user_id)

        await self.telegram.send(user_id, answer, menus.MENU_BUTTON)
