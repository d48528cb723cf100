"""
Application configuration using pydantic-settings.
Loads from environment variables with sensible defaults.
"""
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

FALLBACK_NOTICE_POLICIES = ("banner", "silent")


class Settings(BaseSettings):
    """Relay and dashboard settings."""

    # Application
    app_name: str = "Sensor Telemetry Relay"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Device (fixed upstream address, no discovery)
    device_base_url: str = "http://localhost:5000"
    upstream_timeout_s: float = 10.0
    stream_chunk_size: Optional[int] = None

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Dashboard polling
    dashboard_enabled: bool = True
    dashboard_relay_url: str = ""  # empty = poll this app in-process
    poll_interval_s: float = 1.0
    max_history_length: int = 20

    # Synthetic data
    fallback_notice: str = "banner"  # banner, silent
    fallback_seed: Optional[int] = None

    @field_validator("poll_interval_s", "upstream_timeout_s")
    @classmethod
    def check_positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("max_history_length")
    @classmethod
    def check_history_length(cls, value: int) -> int:
        if value < 1:
            raise ValueError("history must hold at least one sample")
        return value

    @field_validator("fallback_notice")
    @classmethod
    def check_fallback_notice(cls, value: str) -> str:
        value = value.lower()
        if value not in FALLBACK_NOTICE_POLICIES:
            raise ValueError(
                f"fallback_notice must be one of {', '.join(FALLBACK_NOTICE_POLICIES)}"
            )
        return value

    @property
    def device_url(self) -> str:
        return self.device_base_url.rstrip("/")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
