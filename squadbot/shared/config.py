"""Application settings for the squad bot.

Settings are read from environment variables (and an optional ``.env`` file)
once per process and cached. Only the bot entry point reads them; services
receive the values they need through their constructors.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

HOUR = 60 * 60


class Settings(BaseSettings):
    """Squad bot configuration. Env vars prefixed with SQUADBOT_."""

    model_config = SettingsConfigDict(
        env_prefix="SQUADBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"

    # Discord
    discord_bot_token: str = ""

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = Field(5.0, gt=0)

    # Squad lifecycle
    posting_ttl_seconds: int = Field(11 * HOUR, gt=0)
    squad_ttl_seconds: int = Field(12 * HOUR, gt=0)
    reconcile_interval_seconds: float = Field(30.0, gt=0)
    min_capacity: int = Field(1, ge=1)
    max_capacity: int = Field(10, ge=1, le=255)
    max_hours: int = Field(10, ge=1, le=25)

    @model_validator(mode="after")
    def _check_lifetimes(self) -> Settings:
        if self.squad_ttl_seconds <= self.posting_ttl_seconds:
            raise ValueError(
                "SQUADBOT_SQUAD_TTL_SECONDS must exceed SQUADBOT_POSTING_TTL_SECONDS "
                f"(got {self.squad_ttl_seconds} <= {self.posting_ttl_seconds})"
            )
        if self.min_capacity > self.max_capacity:
            raise ValueError("SQUADBOT_MIN_CAPACITY must not exceed SQUADBOT_MAX_CAPACITY")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
