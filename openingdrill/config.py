"""
Centralized configuration management for openingdrill.
"""
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DAY_BOUNDARY_HOURS,
    DEFAULT_DAILY_NEW_CAP,
    MAX_DAILY_NEW_CAP,
    MIN_DAILY_NEW_CAP,
    RETRY_DELAY_MINUTES,
)


def get_default_db_path() -> Path:
    """Returns the default path for the database file."""
    return Path.home() / ".openingdrill" / "drill.db"


def clamp_daily_cap(value: int) -> int:
    """Clamp a daily new-line cap into the supported range."""
    return max(MIN_DAILY_NEW_CAP, min(MAX_DAILY_NEW_CAP, int(value)))


class Settings(BaseSettings):
    """
    Defines application settings, loaded from environment variables or .env files.

    Every field can be overridden with an ``OPENINGDRILL_`` prefixed variable,
    e.g. ``OPENINGDRILL_DAILY_NEW_CAP=15``.
    """

    model_config = SettingsConfigDict(
        env_prefix="OPENINGDRILL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Core Paths ---
    db_path: Path = get_default_db_path()

    # --- User Configuration ---
    user_id: str = "local"
    # IANA timezone name used for every "today" computation.
    timezone: str = "UTC"

    # --- Drill Policy ---
    daily_new_cap: int = DEFAULT_DAILY_NEW_CAP
    retry_delay_minutes: int = RETRY_DELAY_MINUTES
    day_boundary_hours: int = DAY_BOUNDARY_HOURS

    # --- Testing Configuration ---
    # When True, disables safety checks that prevent data loss during tests.
    testing_mode: bool = False

    @field_validator("daily_new_cap")
    @classmethod
    def clamp_cap(cls, v: int) -> int:
        return clamp_daily_cap(v)

    @field_validator("retry_delay_minutes")
    @classmethod
    def non_negative_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_delay_minutes must be >= 0")
        return v


# Create a singleton instance of the settings
settings = Settings()
