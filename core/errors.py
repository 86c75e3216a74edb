"""Ошибки движка напоминаний и диалоговых состояний."""


class MentorError(Exception):
    """Базовая ошибка бота."""


class ValidationError(MentorError):
    """Пользователь прислал некорректные данные. Переспрашиваем, состояние не меняем."""

    def __init__(self, message: str, value: str = ""):
        super().__init__(message)
        self.value = value


class CollaboratorError(MentorError):
    """Отказ внешнего сервиса: хранилища, LLM или канала доставки."""

    def __init__(self, message: str, source: str = "unknown"):
        super().__init__(message)
        self.source = source


class ScheduleConsistencyError(MentorError):
    """Не удалось зарегистрировать один из таймеров пачки replace_all."""

    def __init__(self, message: str, owner: str = "", key: str = ""):
        super().__init__(message)
        self.owner = owner
        self.key = key
