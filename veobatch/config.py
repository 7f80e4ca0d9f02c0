"""Application settings loaded from environment variables via pydantic-settings."""

from enum import StrEnum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(StrEnum):
    json = "json"
    console = "console"


class Settings(BaseSettings):
    """Central configuration — all values sourced from env vars or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── Gemini ──────────────────────────────────────────────────────────────
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_timeout_seconds: float = 60.0

    # ── Queue ───────────────────────────────────────────────────────────────
    queue_max_concurrent: int = 4
    queue_max_per_minute: int = 4
    queue_window_seconds: float = 60.0
    scheduler_tick_seconds: float = 2.0

    # ── Remote operations ───────────────────────────────────────────────────
    poll_interval_seconds: float = 10.0
    # 0 disables the bound and polls until the operation reports done.
    operation_max_polls: int = 180

    # ── Observability ───────────────────────────────────────────────────────
    log_level: str = "info"
    log_format: LogFormat = LogFormat.json


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance (cached after first call)."""
    return Settings()
