"""Configuration management for todoq."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from todoq.core.state_machine import TaskStatus

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class TodoqSettings(BaseSettings):
    """todoq settings loaded from TODOQ_* environment variables."""

    # Database configuration
    database_path: str = ".todoq/todoq.db"
    wal_mode: bool = True
    auto_migrate: bool = True
    busy_timeout: float = Field(5.0, ge=0)

    # Defaults applied to imported/created tasks
    default_status: TaskStatus = TaskStatus.PENDING
    default_priority: int = Field(0, ge=0, le=10)

    # Logging configuration
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="TODOQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"TODOQ_LOG_LEVEL must be one of {allowed}, got: {v}")
        return v_upper


def load_environment(env_file: str = ".env") -> None:
    """Load environment variables from a .env file if present.

    Args:
        env_file: Path to .env file (default: .env in current directory)
    """
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)


@lru_cache(maxsize=1)
def get_settings() -> TodoqSettings:
    """Process-wide settings instance."""
    load_environment()
    return TodoqSettings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for command-line use.

    Args:
        level: Log level name; defaults to the configured log_level
    """
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.WARNING), format=LOG_FORMAT)
