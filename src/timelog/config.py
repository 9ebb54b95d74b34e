"""Configuration management for timelog."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class TimelogSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    db_path: Path = Field(
        default=Path("./storage/timelog.sqlite3"), validation_alias="TIMELOG_DB_PATH"
    )
    quiet_time_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("quiet_times"),), validation_alias="TIMELOG_QUIET_TIME_PATHS"
    )
    log_level: str = Field(default="INFO", validation_alias="TIMELOG_LOG_LEVEL")
    poll_interval_seconds: float = Field(
        default=1.0, validation_alias="TIMELOG_POLL_INTERVAL_SECONDS"
    )
    session_max_age_seconds: int = Field(
        default=3600, validation_alias="TIMELOG_SESSION_MAX_AGE_SECONDS"
    )
    default_interval_ms: int = Field(
        default=15000, validation_alias="TIMELOG_DEFAULT_INTERVAL_MS"
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "TIMELOG_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("quiet_time_paths", mode="before")
    @classmethod
    def _parse_quiet_time_paths(cls, value):
        if value is None or value == "":
            return (Path("quiet_times"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("quiet_times"),)
        raise TypeError(
            "TIMELOG_QUIET_TIME_PATHS must be a list of paths or a path-separated string"
        )

    @field_validator("poll_interval_seconds")
    @classmethod
    def _validate_poll_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("TIMELOG_POLL_INTERVAL_SECONDS must be > 0")
        return value

    @field_validator("session_max_age_seconds")
    @classmethod
    def _validate_session_max_age(cls, value: int) -> int:
        if value < 1:
            raise ValueError("TIMELOG_SESSION_MAX_AGE_SECONDS must be >= 1")
        return value

    @field_validator("default_interval_ms")
    @classmethod
    def _validate_default_interval(cls, value: int) -> int:
        if value < 1000:
            raise ValueError("TIMELOG_DEFAULT_INTERVAL_MS must be >= 1000")
        return value


@lru_cache(maxsize=1)
def get_settings() -> TimelogSettings:
    """Return cached settings instance."""

    settings = TimelogSettings()
    settings.db_path = settings.db_path.expanduser().resolve()
    settings.quiet_time_paths = tuple(
        path.expanduser().resolve() for path in settings.quiet_time_paths
    )
    return settings


__all__ = ["TimelogSettings", "get_settings"]
