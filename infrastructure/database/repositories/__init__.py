"""
Репозитории для работы с моделями базы данных.

Все данные бота привязаны к пользователю Telegram (user_id = chat id),
поэтому пока достаточно одного репозитория.
"""

from .puppy_repository import PuppyRepository

__all__ = [
    "PuppyRepository",
]
