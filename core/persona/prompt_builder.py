from pathlib import Path
from typing import Dict

import yaml

from infrastructure.logging.logger import setup_logger
from models.puppy_enums import AiMode
from settings import settings

logger = setup_logger("prompt_builder")


class MentorPromptBuilder:
    """Собирает системные промпты ментора из YAML-конфигурации.

    В YAML лежит общее ядро персонажа (`core`), дополнения для режимов
    ответа (`modes.normal`, `modes.emergency`) и шаблон утреннего совета (`tip`).
    """

    def __init__(self, yaml_path: Path = settings.PROMPTS_PATH):
        self.yaml_path = yaml_path
        self.yaml_data = self.load_yaml()

    def load_yaml(self) -> Dict:
        """Загружает конфигурацию промптов. При ошибке логирует и возвращает пустой словарь."""
        try:
            with open(self.yaml_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except Exception as e:
            logger.error(f"Ошибка загрузки {self.yaml_path}: {e}")
            return {}

    def system_prompt(self, mode: AiMode = AiMode.NORMAL) -> str:
        core = self.yaml_data.get("core", "").strip()
        addition = self.yaml_data.get("modes", {}).get(AiMode(mode).value, "").strip()
        return "\n\n".join(part for part in (core, addition) if part)

    def tip_prompt(self, topic: str) -> str:
        template = self.yaml_data.get("tip") or "Дай короткий совет владельцу щенка на тему: {topic}"
        return template.format(topic=topic).strip()
