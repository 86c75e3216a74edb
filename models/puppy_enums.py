from enum import Enum


class EventKind(str, Enum):
    """Тип события в режиме дня щенка."""
    FEEDING = "feeding"
    WALK = "walk"
    TRAINING = "training"
    SLEEP = "sleep"
    OTHER = "other"

    @classmethod
    def from_str(cls, kind_str: str) -> "EventKind":
        """
        Преобразует строку в значение enum EventKind.

        Args:
            kind_str (str): Строка, соответствующая значению enum.

        Returns:
            EventKind: Соответствующее значение enum.

        Raises:
            ValueError: Если строка не соответствует ни одному значению enum.
        """
        try:
            return cls(kind_str)
        except ValueError:
            raise ValueError(f"Неизвестный тип события: {kind_str}")

    @property
    def label(self) -> str:
        return EVENT_KIND_TITLES[self]


EVENT_KIND_TITLES = {
    EventKind.FEEDING: "🍖 Кормление",
    EventKind.WALK: "🚶 Прогулка",
    EventKind.TRAINING: "🎓 Тренировка",
    EventKind.SLEEP: "😴 Сон",
    EventKind.OTHER: "📌 Событие",
}


class AiMode(str, Enum):
    """Режим AI-ассистента: обычный вопрос или экстренная ситуация."""
    NORMAL = "normal"
    EMERGENCY = "emergency"


class BirthDatePurpose(str, Enum):
    """Зачем ждём дату рождения: первичная регистрация или исправление."""
    REGISTRATION = "registration"
    UPDATE = "update"


class InputStateKind(str, Enum):
    """Что бот ожидает от пользователя следующим текстовым сообщением."""
    NONE = "none"
    AWAITING_PUPPY_NAME = "awaiting_puppy_name"
    AWAITING_BIRTH_DATE = "awaiting_birth_date"
    AWAITING_WEIGHT = "awaiting_weight"
    AWAITING_SCHEDULE_TIME = "awaiting_schedule_time"
    AI_MODE = "ai_mode"
