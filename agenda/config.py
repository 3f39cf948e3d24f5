import sys
from enum import Enum

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agenda.domain.models import NotificationChannel, WallTime


class StoreAdapter(Enum):
    MEMORY = "memory"
    SQL = "sql"


class DatabaseConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENDA_DB_", env_file=".env", extra="ignore")

    url: str = "sqlite+aiosqlite:///./agenda.db"
    echo: bool = False


class SchedulingConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENDA_SCHEDULING_", env_file=".env", extra="ignore"
    )

    work_start: WallTime = "08:00"
    work_end: WallTime = "18:00"
    slot_minutes: int = Field(default=30, gt=0)
    default_actor_id: str | None = None


class ReminderConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENDA_REMINDERS_", env_file=".env", extra="ignore"
    )

    webhook_url: str = ""
    webhook_token: str = ""
    timeout_seconds: float = 10.0
    interval_seconds: float = Field(default=300, gt=0)
    default_channels: tuple[NotificationChannel, ...] = (
        NotificationChannel.EMAIL,
        NotificationChannel.SMS,
    )


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENDA_", env_file=".env", extra="ignore")

    clinic_timezone: str = "America/Sao_Paulo"
    store_adapter: StoreAdapter = StoreAdapter.MEMORY
    log_level: str = "INFO"
    database: DatabaseConfig = Field(default_factory=lambda: DatabaseConfig())
    scheduling: SchedulingConfig = Field(default_factory=lambda: SchedulingConfig())
    reminders: ReminderConfig = Field(default_factory=lambda: ReminderConfig())


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a single stderr sink at ``level``."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
