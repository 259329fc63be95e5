"""Configuration management for tasktree."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .storage.models import record_key_for


class TaskTreeSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    store_path: Path = Field(
        default=Path("./storage/tasktree.json"), validation_alias="TASKTREE_STORE_PATH"
    )
    log_level: str = Field(default="INFO", validation_alias="TASKTREE_LOG_LEVEL")
    record_key: str | None = Field(default=None, validation_alias="TASKTREE_RECORD_KEY")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "TASKTREE_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("record_key", mode="before")
    @classmethod
    def _blank_key_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    def current_record_key(self) -> str:
        """The configured record key, or today's date."""

        return self.record_key or record_key_for()


@lru_cache(maxsize=1)
def get_settings() -> TaskTreeSettings:
    """Return cached settings instance."""

    settings = TaskTreeSettings()
    settings.store_path = settings.store_path.expanduser().resolve()
    return settings


__all__ = ["TaskTreeSettings", "get_settings"]
