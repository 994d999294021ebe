from functools import lru_cache
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    # App settings
    app_name: str = "Step Tracker"

    # Database (durable key-value slot)
    database_url: str = "sqlite:///./steptracker.db"

    # Storage keys
    history_key: str = "step_history"
    goal_key: str = "daily_goal"

    # Goal and distance
    default_goal: int = 10000
    step_length_m: float = 0.7

    # IANA timezone used for day keys; empty means the host's local timezone
    timezone: str = ""

    # Rollover scheduler wakes at least this often, even far from midnight
    rollover_max_sleep_seconds: float = 60.0

    # History writes are retried this many times before giving up
    storage_write_attempts: int = 3

    # Logging
    log_level: str = "INFO"

    @property
    def debug(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.environment == "development"

    @property
    def tz(self) -> Optional[ZoneInfo]:
        """Configured timezone, or None to follow the host's local time."""
        if not self.timezone:
            return None
        return ZoneInfo(self.timezone)

    class Config:
        env_file = ".env"
        extra = "ignore"

    def validate_settings(self) -> None:
        """Reject configuration the tracker cannot run with."""
        if self.default_goal <= 0:
            raise ValueError("DEFAULT_GOAL must be a positive integer")
        if self.storage_write_attempts < 1:
            raise ValueError("STORAGE_WRITE_ATTEMPTS must be at least 1")
        if self.timezone:
            try:
                ZoneInfo(self.timezone)
            except ZoneInfoNotFoundError:
                raise ValueError(f"TIMEZONE '{self.timezone}' is not a known IANA timezone")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.validate_settings()
    return settings
