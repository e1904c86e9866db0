from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application runtime configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    app_name: str = "Hourbook"
    environment: str = "development"
    host: str = os.getenv("HB_HOST", "127.0.0.1")
    port: int = int(os.getenv("HB_PORT", "8080"))
    log_level: str = os.getenv("HB_LOG_LEVEL", "INFO")

    sqlite_path: Path = Path(os.getenv("HB_SQLITE_PATH", "./data/hourbook.db"))

    # IANA zone name or "auto" for the system zone
    timezone: str = os.getenv("HB_TIMEZONE", "auto")
    business_name: str = os.getenv("HB_BUSINESS_NAME", "")

    stripe_api_key: Optional[str] = os.getenv("HB_STRIPE_API_KEY")
    stripe_api_base: str = os.getenv("HB_STRIPE_API_BASE", "https://api.stripe.com/v1")
    currency: str = os.getenv("HB_CURRENCY", "usd")
    invoice_days_until_due: int = int(os.getenv("HB_INVOICE_DAYS_UNTIL_DUE", "30"))
    invoice_cache_ttl_seconds: int = int(os.getenv("HB_INVOICE_CACHE_TTL", "120"))

    weekly_stats_months: int = int(os.getenv("HB_WEEKLY_STATS_MONTHS", "6"))
    # Monday=0 ... Sunday=6
    week_anchor_weekday: int = int(os.getenv("HB_WEEK_ANCHOR_WEEKDAY", "6"))

    # done tasks older than this are removed at startup
    completed_task_retention_days: int = int(os.getenv("HB_COMPLETED_TASK_RETENTION_DAYS", "3"))

    @field_validator("week_anchor_weekday")
    @classmethod
    def _check_weekday(cls, value: int) -> int:
        if not 0 <= value <= 6:
            raise ValueError("week_anchor_weekday must be between 0 (Monday) and 6 (Sunday)")
        return value

    @field_validator("timezone", mode="before")
    @classmethod
    def _default_timezone(cls, value: Optional[str]) -> str:
        if value is None or not str(value).strip():
            return "auto"
        return str(value).strip()


settings = Settings()

settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
