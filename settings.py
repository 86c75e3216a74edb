import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()  # Загружаем .env, если он есть

# Используем переменную окружения или текущую рабочую директорию
BASE_DIR = Path(os.getenv("MENTOR_ROOT", os.getcwd())).resolve()


class Settings(BaseSettings):
    BASE_DIR: Path = BASE_DIR

    # Telegram
    BOT_TOKEN: Optional[str] = None
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = None
    TELEGRAM_POLLING: bool = False

    # LLM (GitHub Models / любой OpenAI-совместимый endpoint)
    LLM_API_KEY: Optional[str] = os.getenv("LLM_API_KEY") or os.getenv("GITHUB_TOKEN")
    LLM_API_URL: str = "https://models.inference.ai.azure.com/chat/completions"
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_SECONDS: float = 60.0

    # База данных
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'bot.db'}"
    # Окно, в течение которого записи копятся перед commit
    FLUSH_WINDOW_SECONDS: float = 5.0

    # Планировщик
    TIMEZONE: str = "Europe/Moscow"
    MORNING_TIP_HOUR: int = 9
    MORNING_TIP_MINUTE: int = 0
    VACCINATION_CHECK_HOUR: int = 10
    VACCINATION_CHECK_MINUTE: int = 0
    REMINDER_OFFSET_MINUTES: int = 10

    # Логи
    LOG_DIR: Path = BASE_DIR / "logs"
    LOG_LEVEL: str = "INFO"

    # Пути к промптам
    PROMPTS_PATH: Path = (Path(__file__).parent / "core/persona/prompts/mentor.yaml").resolve()

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
