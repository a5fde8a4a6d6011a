"""Application settings loaded from the environment."""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, overridable through ``TRACKER_*`` variables."""

    model_config = SettingsConfigDict(env_prefix="TRACKER_", env_file=".env", extra="ignore")

    database_path: str = "production_tracker.sqlite3"
    app_title: str = "Production Tracker"
    log_level: str = "INFO"
    seed_demo_data: bool = True
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8000

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        return str(value).upper()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
