import logging
from pathlib import Path
from typing import Optional

import dotenv
import pydantic
from pydantic_settings import BaseSettings, SettingsConfigDict

dotenv.load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", case_sensitive=True)

    SERVER_BASE_URL: str = "http://localhost:9000"

    DB_PATH: Path = Path("data/qualityhook.sqlite3")

    WEBHOOKS_ENABLED: bool = True
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_DELIVERY_RETENTION_COUNT: int = 10

    OVERRIDE_LOGGING: str = "WARNING"
    ALERT_LOG_LEVEL: str = "WARNING"

    TELEGRAM_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None

    HOST: str = "0.0.0.0"
    PORT: int = 8080

    @pydantic.field_validator("SERVER_BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @pydantic.field_validator("WEBHOOK_DELIVERY_RETENTION_COUNT")
    @classmethod
    def _positive_retention(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Retention count must be at least 1")
        return value

    @property
    def log_level(self) -> int:
        return _level_from_name(self.OVERRIDE_LOGGING)

    @property
    def alert_level(self) -> int:
        return _level_from_name(self.ALERT_LOG_LEVEL)


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        return logging.WARNING
    return level


SETTINGS = Settings()
