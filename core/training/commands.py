"""
Команды для дрессировки щенка и цели по количеству повторений.

Прогресс хранится как счётчик отмеченных тренировок на пару (пользователь, команда).
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

CATEGORY_TITLES = {
    "basic": "🟢 Базовые",
    "advanced": "🟡 Продвинутые",
    "discipline": "🔴 Дисциплина",
}


@dataclass(frozen=True)
class TrainingCommand:
    id: str
    name: str
    category: str
    target: int


COMMANDS = (
    TrainingCommand("name", "Отклик на кличку", "basic", 20),
    TrainingCommand("sit", "Сидеть", "basic", 30),
    TrainingCommand("lie", "Лежать", "basic", 30),
    TrainingCommand("come", "Ко мне", "basic", 50),
    TrainingCommand("place", "Место", "advanced", 30),
    TrainingCommand("paw", "Дай лапу", "advanced", 20),
    TrainingCommand("heel", "Рядом", "advanced", 50),
    TrainingCommand("fu", "Фу", "discipline", 40),
    TrainingCommand("wait", "Ждать", "discipline", 40),
)


def find_command(command_id: str) -> Optional[TrainingCommand]:
    for command in COMMANDS:
        if command.id == command_id:
            return command
    return None


def progress_percent(score: int, target: int) -> int:
    return min(100, round(score * 100 / target))


def commands_by_category() -> Dict[str, List[TrainingCommand]]:
    grouped: Dict[str, List[TrainingCommand]] = {}
    for category in CATEGORY_TITLES:
        commands = [command for command in COMMANDS if command.category == category]
        if commands:
            grouped[category] = commands
    return grouped
