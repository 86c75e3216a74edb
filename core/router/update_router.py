"""
Разбор входящих обновлений Telegram.

Команды и нажатия кнопок обрабатываются здесь, свободный текст уходит
в InputStateMachine. Исключение в одном обновлении логируется и не
прерывает обработку следующих.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from core.dialog.input_state import PendingInputState
from core.dialog.state_machine import InputStateMachine
from core.errors import CollaboratorError
from core.router import menus
from core.scheduling.reminder_scheduler import ReminderScheduler, event_title
from core.scheduling.registry import TimerRegistry
from core.training.commands import find_command
from infrastructure.logging.logger import setup_logger
from infrastructure.utils.time_utils import local_midnight_ms, now_local, reference_tz
from models.puppy_enums import AiMode, BirthDatePurpose, EventKind

logger = setup_logger("update_router")

Update = Dict[str, Any]
CallbackHandler = Callable[["CallbackContext"], Awaitable[None]]


class CallbackContext:
    """Нажатие inline-кнопки: кто нажал, где сообщение и что в callback_data."""

    def __init__(self, query: Dict[str, Any]):
        message = query.get("message") or {}
        self.query_id: str = query.get("id", "")
        self.user_id: str = str(query["from"]["id"])
        self.chat_id: str = str((message.get("chat") or {}).get("id", self.user_id))
        self.message_id: Optional[int] = message.get("message_id")
        self.data: str = query.get("data") or ""
        self.argument: str = ""
        self.answered = False


class UpdateRouter:
    def __init__(self, repo, state_machine: InputStateMachine, scheduler: ReminderScheduler,
                 registry: TimerRegistry, telegram, tz: Optional[ZoneInfo] = None):
        self.repo = repo
        self.state_machine = state_machine
        self.scheduler = scheduler
        self.registry = registry
        self.telegram = telegram
        self.tz = tz or reference_tz()

        self.commands: Dict[str, Callable[[str, Dict[str, Any]], Awaitable[None]]] = {
            "/start": self._cmd_start,
            "/menu": self._cmd_menu,
            "/reset": self._cmd_reset,
        }
        self.callbacks: Dict[str, CallbackHandler] = {
            "menu_main": self._on_main_menu,
            "menu_ai": self._on_ai,
            "sos_custom": self._on_sos,
            "menu_schedule": self._on_schedule,
            "schedule_add": self._on_schedule_add,
            "schedule_delete": self._on_schedule_delete,
            "menu_vaccinations": self._on_vaccinations,
            "vacc_full_schedule": self._on_full_vaccination_schedule,
            "vacc_reset_date": self._on_reset_birth_date,
            "menu_weight": self._on_weight,
            "weight_add": self._on_weight_add,
            "weight_history": self._on_weight_history,
            "menu_tracker": self._on_tracker,
            "track_feed": self._on_track_feed,
            "track_walk_ok": self._on_track_walk_ok,
            "track_walk_fail": self._on_track_walk_fail,
            "menu_progress": self._on_progress,
            "track_progress_select": self._on_track_progress_select,
        }
        self.prefixed_callbacks: Tuple[Tuple[str, CallbackHandler], ...] = (
            ("sch_type_", self._on_schedule_type),
            ("sch_del_", self._on_schedule_event_delete),
            ("vacc_done_", self._on_vaccination_done),
            ("track_cmd_", self._on_track_command),
        )

    async def handle_update(self, update: Update) -> None:
        chat_id = None
        try:
            if "callback_query" in update:
                context = CallbackContext(update["callback_query"])
                chat_id = context.chat_id
                await self._on_callback(context)
            elif "message" in update:
                message = update["message"]
                chat_id = str(message["chat"]["id"])
                await self._on_message(chat_id, message)
        except (CollaboratorError, SQLAlchemyError) as e:
            logger.error(f"[router] Ошибка обработки update {update.get('update_id')}: {e}", exc_info=True)
            if chat_id is not None:
                self.state_machine.clear_pending_state(chat_id)
                await self.telegram.send(chat_id, menus.STORE_APOLOGY, menus.MENU_BUTTON)
        except Exception as e:
            logger.error(f"[router] Непредвиденная ошибка в update {update.get('update_id')}: {e}", exc_info=True)

    # ============ Сообщения ============

    async def _on_message(self, chat_id: str, message: Dict[str, Any]) -> None:
        text = message.get("text")
        if not text:
            return

        if text.startswith("/"):
            command = text.split()[0].split("@")[0].lower()
            handler = self.commands.get(command)
            if handler is None:
                logger.info(f"[router] Неизвестная команда {command} от {chat_id}")
                return
            await handler(chat_id, message)
            return

        await self.state_machine.on_incoming_text(chat_id, text)

    async def _cmd_start(self, user_id: str, message: Dict[str, Any]) -> None:
        first_name = (message.get("from") or {}).get("first_name") or "друг"
        user = self.repo.subscribe_user(user_id)
        logger.info(f"[router] /start от {user_id}")

        if user.puppy_name:
            await self.telegram.send(user_id, menus.START_TEXT.format(first_name=first_name), menus.MAIN_MENU)
            return

        await self.telegram.send(user_id, menus.START_TEXT.format(first_name=first_name))
        self.state_machine.set_pending_state(user_id, PendingInputState.awaiting_puppy_name())
        await self.telegram.send(user_id, menus.ASK_PUPPY_NAME)

    async def _cmd_menu(self, user_id: str, message: Dict[str, Any]) -> None:
        await self.telegram.send(user_id, menus.MAIN_MENU_TEXT, menus.MAIN_MENU)

    async def _cmd_reset(self, user_id: str, message: Dict[str, Any]) -> None:
        self.repo.reset_user(user_id)
        cancelled = self.registry.cancel_all(user_id)
        self.state_machine.clear_pending_state(user_id)
        logger.info(f"[router] /reset от {user_id}, отменено таймеров: {cancelled}")
        await self.telegram.send(user_id, menus.RESET_DONE)

    # ============ Кнопки ============

    def _resolve_callback(self, context: CallbackContext) -> Optional[CallbackHandler]:
        handler = self.callbacks.get(context.data)
        if handler is not None:
            return handler
        for prefix, prefixed_handler in self.prefixed_callbacks:
            if context.data.startswith(prefix):
                context.argument = context.data[len(prefix):]
                return prefixed_handler
        return None

    async def _on_callback(self, context: CallbackContext) -> None:
        handler = self._resolve_callback(context)
        if handler is None:
            logger.info(f"[router] Неизвестная кнопка {context.data!r} от {context.user_id}, пропускаем")
            await self._answer(context)
            return

        await handler(context)
        if not context.answered:
            await self._answer(context)

    async def _answer(self, context: CallbackContext, text: Optional[str] = None) -> None:
        context.answered = True
        await self.telegram.answer_callback_query(context.query_id, text)

    async def _show(self, context: CallbackContext, text: str, markup: Optional[dict] = None) -> None:
        if context.message_id is None:
            await self.telegram.send(context.chat_id, text, markup)
        else:
            await self.telegram.edit_message_text(context.chat_id, context.message_id, text, markup)

    async def _on_main_menu(self, context: CallbackContext) -> None:
        self.state_machine.clear_pending_state(context.user_id)
        await self._show(context, menus.MAIN_MENU_TEXT, menus.MAIN_MENU)

    async def _on_ai(self, context: CallbackContext) -> None:
        self.state_machine.set_pending_state(context.user_id, PendingInputState.ai(AiMode.NORMAL))
        await self._show(context, menus.AI_INTRO, menus.MENU_BUTTON)

    async def _on_sos(self, context: CallbackContext) -> None:
        self.state_machine.set_pending_state(context.user_id, PendingInputState.ai(AiMode.EMERGENCY))
        await self._show(context, menus.SOS_INTRO, menus.MENU_BUTTON)

    # ============ Режим дня ============

    def _event_titles(self, events) -> Dict[int, str]:
        return {event.id: event_title(event.event_kind, event.label) for event in events}

    async def _on_schedule(self, context: CallbackContext) -> None:
        events = self.repo.get_schedule_events(context.user_id)
        await self._show(context, menus.schedule_text(events, self._event_titles(events)),
                         menus.schedule_keyboard(bool(events)))

    async def _on_schedule_add(self, context: CallbackContext) -> None:
        await self._show(context, "📅 *Новое событие*\n\nЧто добавить?", menus.event_kind_keyboard())

    async def _on_schedule_type(self, context: CallbackContext) -> None:
        try:
            kind = EventKind.from_str(context.argument)
        except ValueError:
            logger.info(f"[router] Устаревшая кнопка типа события {context.data!r}, пропускаем")
            return

        self.state_machine.set_pending_state(context.user_id, PendingInputState.awaiting_schedule_time(kind))
        await self._show(context, menus.ASK_SCHEDULE_TIME.format(title=kind.label),
                         menus.keyboard([menus.button("« Отмена", "menu_schedule")]))

    async def _on_schedule_delete(self, context: CallbackContext) -> None:
        events = self.repo.get_schedule_events(context.user_id)
        await self._show(context, "🗑 *Удаление*\n\nВыберите событие:",
                         menus.delete_events_keyboard(events, self._event_titles(events)))

    async def _on_schedule_event_delete(self, context: CallbackContext) -> None:
        if not context.argument.isdigit():
            return
        if not self.repo.delete_schedule_event(context.user_id, int(context.argument)):
            logger.info(f"[router] Событие {context.argument} уже удалено, кнопка устарела")
            return

        if self.scheduler.try_reschedule_user(context.user_id):
            await self._answer(context, "🗑 Удалено")
        else:
            await self._answer(context, menus.SCHEDULE_EVENT_DELETED_NO_REMINDER)
        await self._on_schedule(context)

    # ============ Прививки ============

    async def _on_vaccinations(self, context: CallbackContext) -> None:
        entries = self.repo.get_vaccination_entries(context.user_id)
        if not entries:
            self.state_machine.set_pending_state(
                context.user_id, PendingInputState.awaiting_birth_date(BirthDatePurpose.REGISTRATION)
            )
            await self._show(context, menus.ASK_FIRST_BIRTH_DATE, menus.MENU_BUTTON)
            return

        upcoming = self.repo.get_upcoming_vaccinations(context.user_id)
        await self._show(context, menus.vaccinations_text(upcoming), menus.VACCINATIONS_MENU)

    async def _on_full_vaccination_schedule(self, context: CallbackContext) -> None:
        entries = self.repo.get_vaccination_entries(context.user_id)
        if not entries:
            await self._on_vaccinations(context)
            return
        await self._show(context, menus.full_schedule_text(entries), menus.full_schedule_keyboard(entries))

    async def _on_reset_birth_date(self, context: CallbackContext) -> None:
        self.state_machine.set_pending_state(
            context.user_id, PendingInputState.awaiting_birth_date(BirthDatePurpose.UPDATE)
        )
        await self._show(context, menus.ASK_NEW_BIRTH_DATE,
                         menus.keyboard([menus.button("« Отмена", "menu_vaccinations")]))

    async def _on_vaccination_done(self, context: CallbackContext) -> None:
        if not context.argument.isdigit():
            return
        if not self.repo.mark_vaccination_completed(context.user_id, int(context.argument)):
            logger.info(f"[router] Прививка {context.argument} не найдена, кнопка устарела")
            return

        await self._answer(context, "✅ Отмечено")
        await self._on_full_vaccination_schedule(context)

    # ============ Вес ============

    def _has_birth_date(self, user_id: str) -> bool:
        user = self.repo.get_user(user_id)
        return bool(user and user.birth_date_ms is not None)

    async def _on_weight(self, context: CallbackContext) -> None:
        has_birth_date = self._has_birth_date(context.user_id)
        last = self.repo.get_last_weight(context.user_id)
        await self._show(context, menus.weight_text(last, has_birth_date), menus.weight_keyboard(has_birth_date))

    async def _on_weight_add(self, context: CallbackContext) -> None:
        self.state_machine.set_pending_state(context.user_id, PendingInputState.awaiting_weight())
        await self._show(context, menus.ASK_WEIGHT, menus.keyboard([menus.button("« Отмена", "menu_weight")]))

    async def _on_weight_history(self, context: CallbackContext) -> None:
        history = self.repo.get_weight_history(context.user_id)
        await self._show(context, menus.weight_history_text(history),
                         menus.keyboard([menus.button("« Назад", "menu_weight")]))

    # ============ Трекер ============

    async def _on_tracker(self, context: CallbackContext) -> None:
        last_feeding = self.repo.get_last_feeding(context.user_id)
        today_ms = local_midnight_ms(now_local(self.tz).date(), self.tz)
        stats = self.repo.get_walk_stats(context.user_id, today_ms)
        await self._show(context, menus.tracker_text(last_feeding.fed_at_ms if last_feeding else None, stats),
                         menus.TRACKER_MENU)

    async def _on_track_feed(self, context: CallbackContext) -> None:
        self.repo.log_feeding(context.user_id)
        await self._answer(context, "🍽️ Кормление записано!")
        await self._on_tracker(context)

    async def _on_track_walk_ok(self, context: CallbackContext) -> None:
        self.repo.log_walk(context.user_id, True)
        await self._answer(context, "✅ Успешная прогулка записана! Молодец!")
        await self._on_tracker(context)

    async def _on_track_walk_fail(self, context: CallbackContext) -> None:
        self.repo.log_walk(context.user_id, False)
        await self._answer(context, "Записано. Не расстраивайтесь, в следующий раз получится!")
        await self._on_tracker(context)

    # ============ Дрессировка ============

    async def _on_progress(self, context: CallbackContext) -> None:
        progress = self.repo.get_command_progress(context.user_id)
        await self._show(context, menus.progress_text(progress), menus.PROGRESS_MENU)

    async def _on_track_progress_select(self, context: CallbackContext) -> None:
        await self._show(context, menus.TRACK_COMMAND_TEXT, menus.track_command_keyboard())

    async def _on_track_command(self, context: CallbackContext) -> None:
        command = find_command(context.argument)
        if command is None:
            logger.info(f"[router] Неизвестная команда дрессировки {context.argument!r}, кнопка устарела")
            return

        score = self.repo.update_command_progress(context.user_id, command.id)
        await self._answer(context, f"✅ Супер! +1 к навыку «{command.name}» ({score})")
        await self._on_progress(context)
