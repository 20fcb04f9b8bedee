"""
Application settings for LinearVue.

This module defines all configuration settings for LinearVue using Pydantic BaseSettings.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings using Pydantic BaseSettings."""

    # Database settings
    database_url: str = Field(default="sqlite:///./linearvue.db", alias="DATABASE_URL")
    echo_sql: bool = Field(default=False, alias="ECHO_SQL")
    pool_size: int = Field(default=5, alias="DB_POOL_SIZE")
    max_overflow: int = Field(default=10, alias="DB_MAX_OVERFLOW")
    pool_timeout: int = Field(default=30, alias="DB_POOL_TIMEOUT")
    connect_timeout: int = Field(default=30, alias="DB_CONNECT_TIMEOUT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    env: str = Field(default="dev", alias="ENV")  # dev|prod|test

    # Schedule grid and horizon
    block_hours: int = Field(default=8, alias="SCHEDULE_BLOCK_HOURS")
    horizon_lookahead_blocks: int = Field(default=3, ge=1, alias="HORIZON_LOOKAHEAD_BLOCKS")
    retention_hours: int = Field(default=24, ge=0, alias="SCHEDULE_RETENTION_HOURS")

    # Filler policy
    interstitial_fill_seconds: int = Field(default=300, gt=0, alias="INTERSTITIAL_FILL_SECONDS")
    interstitial_gap_seconds: int = Field(default=0, ge=0, alias="INTERSTITIAL_GAP_SECONDS")

    # Background regeneration
    auto_regenerate_enabled: bool = Field(default=True, alias="AUTO_REGENERATE_ENABLED")
    auto_regenerate_interval_seconds: int = Field(
        default=4 * 60 * 60, gt=0, alias="AUTO_REGENERATE_INTERVAL_SECONDS"
    )
    regeneration_max_workers: int = Field(default=4, ge=1, alias="REGENERATION_MAX_WORKERS")
    store_timeout_seconds: float = Field(default=5.0, gt=0, alias="STORE_TIMEOUT_SECONDS")

    # HTTP
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3080, alias="PORT")

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("block_hours")
    @classmethod
    def _block_hours_divides_day(cls, value: int) -> int:
        if value <= 0 or 24 % value != 0:
            raise ValueError("SCHEDULE_BLOCK_HOURS must be a divisor of 24")
        return value


def _resolve_env_file() -> str | None:
    # 1) Explicit override
    explicit = os.getenv("LINEARVUE_ENV_FILE")
    if explicit and Path(explicit).is_file():
        return explicit

    # 2) CWD .env
    cwd_env = Path.cwd() / ".env"
    if cwd_env.is_file():
        return str(cwd_env)

    # 3) Walk up from this file to find nearest .env
    here = Path(__file__).resolve()
    for parent in here.parents:
        candidate = parent / ".env"
        if candidate.is_file():
            return str(candidate)
    return None


# Global settings instance (load from best-effort .env discovery)
_env_file = _resolve_env_file()
settings = Settings(_env_file=_env_file) if _env_file else Settings()  # type: ignore[call-arg]
