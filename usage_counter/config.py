import logging
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COUNTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Aggregator ──────────────────────────────────────────────────────
    instance_name: str = "main"
    data_dir: Path = Path("data")
    # Seconds since the last heartbeat before a session stops counting as online
    liveness_window_seconds: int = Field(default=90, gt=0)
    # IANA zone whose calendar defines hour/day buckets and the daily rollover
    timezone: str = "UTC"
    hourly_window: int = Field(default=12, gt=0)
    daily_window: int = Field(default=7, gt=0)
    # 0 keeps every bucket forever
    retention_days: int = Field(default=0, ge=0)

    # ── Client script ───────────────────────────────────────────────────
    heartbeat_interval_seconds: int = Field(default=30, gt=0)

    # ── General ─────────────────────────────────────────────────────────
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"
    # None lets Rich size the console to the terminal
    log_width: int | None = Field(default=None, gt=0)
    log_time_format: str = "[%Y-%m-%d %H:%M:%S]"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning("Invalid log level '%s', defaulting to INFO", v)
            return "INFO"
        return v_upper

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v}") from exc
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def snapshot_path(self) -> Path:
        return self.data_dir / f"{self.instance_name}.json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
