"""Тексты экранов и inline-клавиатуры бота."""

from typing import Dict, Iterable, List, Optional

from core.training.commands import CATEGORY_TITLES, COMMANDS, commands_by_category, progress_percent
from infrastructure.database.models import ScheduleEvent, VaccinationEntry, WeightLog
from infrastructure.utils.time_utils import from_ms
from models.puppy_enums import EventKind

Keyboard = Dict[str, List[List[Dict[str, str]]]]


def button(text: str, callback_data: str) -> Dict[str, str]:
    return {"text": text, "callback_data": callback_data}


def keyboard(*rows: List[Dict[str, str]]) -> Keyboard:
    return {"inline_keyboard": [list(row) for row in rows]}


BACK_TO_MENU = [button("« Главное меню", "menu_main")]

MAIN_MENU = keyboard(
    [button("📅 Режим дня", "menu_schedule")],
    [button("📊 Трекер", "menu_tracker"), button("🎓 Дрессировка", "menu_progress")],
    [button("💉 Прививки", "menu_vaccinations"), button("⚖️ Вес", "menu_weight")],
    [button("🤖 AI-ассистент", "menu_ai")],
    [button("🆘 SOS", "sos_custom")],
)
MENU_BUTTON = keyboard(BACK_TO_MENU)

MAIN_MENU_TEXT = "🐕 *Samoyed Mentor*\n\nВыберите раздел:"

START_TEXT = """🐕 Привет, {first_name}!

Я *Samoyed Mentor* — помощник в воспитании щенка самоеда.

• Напомню о кормлении, прогулках и тренировках
• Прослежу за календарём прививок и весом
• Отвечу на вопросы о поведении

Каждое утро я буду присылать полезный совет!"""

ASK_PUPPY_NAME = "Как зовут вашего щенка? Напишите имя (от 2 до 30 символов):"
ASK_BIRTH_DATE = "Отлично, *{name}*! 🎉\n\nТеперь напишите дату рождения щенка в формате ДД.ММ.ГГГГ (например, 15.03.2025):"
ASK_NEW_BIRTH_DATE = "✏️ *Изменение даты рождения*\n\nВведите новую дату рождения щенка (ДД.ММ.ГГГГ):"
ASK_FIRST_BIRTH_DATE = ("💉 *Календарь прививок*\n\nЧтобы рассчитать график прививок, мне нужна дата рождения щенка.\n\n"
                        "👇 Напишите дату в формате ДД.ММ.ГГГГ (например, 15.03.2025):")
ASK_WEIGHT = "⚖️ Введите текущий вес щенка в кг (например: 12.5):"
ASK_SCHEDULE_TIME = "🕐 *{title}*\n\nВо сколько? Напишите время в формате ЧЧ:ММ (например, 08:30):"

INVALID_NAME = "❌ Имя должно быть от 2 до 30 символов. Попробуйте ещё раз:"
INVALID_BIRTH_DATE = "❌ Не получилось разобрать дату. Нужен формат ДД.ММ.ГГГГ, например 15.03.2025:"
INVALID_WEIGHT = "❌ Вес должен быть числом больше 0 и не больше 100 кг. Попробуйте ещё раз:"
INVALID_TIME = "❌ Неверный формат времени. Напишите ЧЧ:ММ, например 08:30:"

BIRTH_DATE_UPDATED = "✅ Дата рождения изменена на {date}. График прививок пересчитан."
WEIGHT_SAVED = "✅ Вес *{weight:g} кг* записан (возраст: {age_weeks} нед.)."
SCHEDULE_EVENT_ADDED = "✅ Добавлено: {title} в {time}.\n\nНапомню за {offset} минут."
SCHEDULE_EVENT_ADDED_NO_REMINDER = ("✅ Добавлено: {title} в {time}.\n\n"
                                    "⚠️ Напоминание сейчас включить не удалось, оно заработает после перезапуска бота.")
SCHEDULE_EVENT_DELETED_NO_REMINDER = "🗑 Удалено. Напоминания обновятся после перезапуска бота."

AI_INTRO = """🤖 *AI-ассистент по самоедам*

✅ Режим активирован! Напишите любой вопрос о щенке.

Примеры вопросов:
• Как отучить кусаться?
• Сколько раз в день кормить?
• Как приучить к поводку?

_Просто напишите сообщение в чат:_"""

SOS_INTRO = """🆘 *Напишите свою проблему*

⚠️ Экстренный режим активирован! Опишите, что случилось с вашим самоедом.

Примеры:
• Щенок не ест уже 2 дня
• Боится выходить на улицу после прививки

_Просто напишите сообщение в чат:_"""

AI_APOLOGY = "😔 Произошла ошибка. Попробуйте ещё раз чуть позже."
STORE_APOLOGY = "😔 Не удалось сохранить данные. Попробуйте ещё раз чуть позже."
RESET_DONE = "🗑 Все данные удалены. Напишите /start, чтобы начать заново."


def format_date(ms: int) -> str:
    return from_ms(ms).strftime("%d.%m.%Y")


def welcome_text(name: Optional[str], upcoming: Iterable[VaccinationEntry]) -> str:
    text = f"🐾 Добро пожаловать, *{name or 'щенок'}*!\n\nЯ рассчитал персональный график прививок.\n"
    lines = [f"📅 {format_date(entry.scheduled_at_ms)} — {entry.vaccination_type}" for entry in upcoming]
    if lines:
        text += "\n*Ближайшие процедуры:*\n" + "\n".join(lines) + "\n"
    text += "\nВыберите раздел:"
    return text


def schedule_text(events: List[ScheduleEvent], titles: Dict[int, str]) -> str:
    if not events:
        return "📅 *Режим дня*\n\nПока нет ни одного события. Добавьте первое!"
    lines = [f"🕐 *{event.time_str}* — {titles[event.id]}" for event in events]
    return "📅 *Режим дня*\n\n" + "\n".join(lines)


def schedule_keyboard(has_events: bool) -> Keyboard:
    rows = [[button("➕ Добавить", "schedule_add")]]
    if has_events:
        rows.append([button("🗑 Удалить", "schedule_delete")])
    rows.append(BACK_TO_MENU)
    return keyboard(*rows)


def event_kind_keyboard() -> Keyboard:
    rows = [[button(kind.label, f"sch_type_{kind.value}")] for kind in EventKind]
    rows.append([button("« Назад", "menu_schedule")])
    return keyboard(*rows)


def delete_events_keyboard(events: List[ScheduleEvent], titles: Dict[int, str]) -> Keyboard:
    rows = [[button(f"❌ {event.time_str} {titles[event.id]}", f"sch_del_{event.id}")] for event in events]
    rows.append([button("« Назад", "menu_schedule")])
    return keyboard(*rows)


def vaccinations_text(upcoming: List[VaccinationEntry]) -> str:
    text = "💉 *Ваш календарь прививок*\n\n"
    if upcoming:
        text += "*Ближайшие процедуры:*\n"
        text += "\n".join(f"📅 {format_date(v.scheduled_at_ms)} — {v.vaccination_type}" for v in upcoming)
        text += "\n"
    else:
        text += "✅ Все основные прививки сделаны!\n"
    text += "\n_Можно посмотреть полный список или изменить дату рождения._"
    return text


VACCINATIONS_MENU = keyboard(
    [button("📋 Полный график", "vacc_full_schedule")],
    [button("✏️ Изменить дату", "vacc_reset_date")],
    BACK_TO_MENU,
)


def full_schedule_text(entries: List[VaccinationEntry]) -> str:
    lines = []
    for entry in entries:
        status = "✅" if entry.is_completed else "⏳"
        lines.append(f"{status} *{format_date(entry.scheduled_at_ms)}* — {entry.vaccination_type}")
    return "📋 *Полный график прививок*\n\n" + "\n".join(lines)


def full_schedule_keyboard(entries: List[VaccinationEntry]) -> Keyboard:
    rows = [[button(f"✅ Сделано: {format_date(e.scheduled_at_ms)}", f"vacc_done_{e.id}")]
            for e in entries if not e.is_completed]
    rows.append([button("« Назад", "menu_vaccinations")])
    return keyboard(*rows)


def weight_text(last: Optional[WeightLog], has_birth_date: bool) -> str:
    text = "⚖️ *Трекер веса щенка*\n\n"
    if last:
        text += (f"Последнее взвешивание:\n⚖️ *{last.weight:g} кг* ({last.age_weeks} нед.)\n"
                 f"📅 {format_date(last.timestamp_ms)}\n\n")
    else:
        text += "Пока нет записей о весе. Давайте добавим первое взвешивание!\n\n"
    if not has_birth_date:
        text += "⚠️ *Важно:* для расчёта возраста укажите дату рождения.\n"
    return text


def weight_keyboard(has_birth_date: bool) -> Keyboard:
    rows = [[button("➕ Добавить вес", "weight_add")], [button("📈 История", "weight_history")]]
    if not has_birth_date:
        rows.append([button("📅 Указать дату рождения", "vacc_reset_date")])
    rows.append(BACK_TO_MENU)
    return keyboard(*rows)


def weight_history_text(history: List[WeightLog]) -> str:
    if not history:
        return "📉 История пуста."
    lines = [f"{format_date(entry.timestamp_ms)}: *{entry.weight:g} кг* ({entry.age_weeks} нед.)" for entry in history]
    return "📈 *История веса*\n\n" + "\n".join(lines)


def tracker_text(last_feeding_ms: Optional[int], walk_stats: Dict[str, int]) -> str:
    feeding = from_ms(last_feeding_ms).strftime("%H:%M") if last_feeding_ms else "ещё не кушал"
    successful = walk_stats.get("successful", 0)
    accidents = walk_stats.get("total", 0) - successful
    return (f"📊 *Трекер щенка*\n\n"
            f"🍖 *Дали покушать:* {feeding}\n\n"
            f"🚽 *Туалет (сегодня):*\n"
            f"✅ На улице: {successful}\n"
            f"💦 Промахи дома: {accidents}\n\n"
            f"Отмечайте события кнопками ниже:")


TRACKER_MENU = keyboard(
    [button("🍽️ Покормили", "track_feed")],
    [button("✅ Сходил на улице", "track_walk_ok"), button("💦 Лужа дома", "track_walk_fail")],
    BACK_TO_MENU,
)


def progress_bar(percent: int) -> str:
    filled = round(percent / 10)
    return "█" * filled + "░" * (10 - filled)


def progress_text(progress: Dict[str, int]) -> str:
    lines = ["📊 *Прогресс обучения*", ""]
    for category, commands in commands_by_category().items():
        lines.append(f"*{CATEGORY_TITLES[category]}:*")
        for command in commands:
            score = progress.get(command.id, 0)
            bar = progress_bar(progress_percent(score, command.target))
            lines.append(f"{command.name}: `{bar}` {score}/{command.target}")
        lines.append("")
    return "\n".join(lines).rstrip()


PROGRESS_MENU = keyboard(
    [button("📝 Отметить тренировку", "track_progress_select")],
    BACK_TO_MENU,
)

TRACK_COMMAND_TEXT = "📝 *Выберите команду, которую тренировали:*"


def track_command_keyboard() -> Keyboard:
    rows = [[button(command.name, f"track_cmd_{command.id}")] for command in COMMANDS]
    rows.append([button("« Назад", "menu_progress")])
    return keyboard(*rows)
