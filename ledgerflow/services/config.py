"""Engine configuration from environment variables and .env file."""

import logging
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Engine settings loaded from environment variables.

    Pydantic automatically loads values from:
    1. OS environment variables (at instantiation time)
    2. .env file in the working directory
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./ledgerflow.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/ledgerflow.log", description="Log file path")

    # Recurrence engine
    catch_up_cap: int = Field(
        default=366,
        description="Maximum missed occurrences materialized per rule in one tick",
    )
    tick_batch_size: int = Field(default=100, description="Rules fetched per page")
    tick_time_budget_seconds: float = Field(
        default=30.0,
        description="Tick stops between rules once this budget is spent",
    )
    tick_interval_seconds: int = Field(default=3600, description="Scheduler loop interval")
    tick_retry_attempts: int = Field(default=3, description="Attempts when the store is down")
    tick_retry_min_wait: float = Field(default=1.0, description="Backoff lower bound (s)")
    tick_retry_max_wait: float = Field(default=10.0, description="Backoff upper bound (s)")

    # Budgets
    default_alert_threshold: Decimal = Field(
        default=Decimal("0.80"),
        description="Fraction of target that triggers a budget alert",
    )

    @field_validator("catch_up_cap", "tick_batch_size", "tick_retry_attempts")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        name = value.strip().upper()
        if name not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return name

    @field_validator("default_alert_threshold")
    @classmethod
    def _threshold_range(cls, value: Decimal) -> Decimal:
        if not Decimal(0) < value <= Decimal(1):
            raise ValueError("alert threshold must be in (0, 1]")
        return value


# Lazy loader so tests can set environment variables before first use
_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
        logger.debug("Loaded settings for database %s", _settings_instance.database_url)
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings instance (used by tests)."""
    global _settings_instance
    _settings_instance = None


__all__ = ["Settings", "get_settings", "reset_settings"]
