"""
Ledger configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``LEDGER_*`` environment variables."""

    # Storage; unset keeps everything in process memory
    DATABASE_URL: Optional[str] = None
    CREATE_SCHEMA: bool = True

    # Reporting
    REPORTING_TIMEZONE: str = "UTC"
    RECENT_SALES_LIMIT: int = Field(default=10, gt=0)
    RECENT_TOPUPS_LIMIT: int = Field(default=5, gt=0)
    AGGREGATION_MAX_WORKERS: int = Field(default=4, gt=0)
    BALANCE_CACHE_ENABLED: bool = False

    # Registration
    MIN_PASSWORD_LENGTH: int = Field(default=6, gt=0)

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("REPORTING_TIMEZONE")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @property
    def reporting_tz(self) -> ZoneInfo:
        return ZoneInfo(self.REPORTING_TIMEZONE)


@lru_cache
def get_settings() -> Settings:
    return Settings()
