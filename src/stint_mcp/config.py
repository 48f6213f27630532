"""Configuration management for Stint MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import shlex

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class StintSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    progress_path: Path = Field(
        default=Path(".stint/progress.json"), validation_alias="STINT_PROGRESS_PATH"
    )
    policy_path: Path | None = Field(default=None, validation_alias="STINT_POLICY_PATH")
    executor_command: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), validation_alias="STINT_EXECUTOR_CMD"
    )
    verify_command: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), validation_alias="STINT_VERIFY_CMD"
    )
    repo_path: Path = Field(default=Path("."), validation_alias="STINT_REPO_PATH")
    commit_enabled: bool = Field(default=True, validation_alias="STINT_COMMIT_ENABLED")
    log_level: str = Field(default="INFO", validation_alias="STINT_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "STINT_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("executor_command", "verify_command", mode="before")
    @classmethod
    def _split_command(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(str(part) for part in value)
        if isinstance(value, str):
            return tuple(shlex.split(value))
        raise TypeError("Commands must be a list of arguments or a shell-style string")

    @property
    def lock_path(self) -> Path:
        return self.progress_path.with_name(self.progress_path.name + ".lock")


@lru_cache(maxsize=1)
def get_settings() -> StintSettings:
    """Return cached settings instance."""

    settings = StintSettings()
    settings.progress_path = settings.progress_path.expanduser().resolve()
    settings.repo_path = settings.repo_path.expanduser().resolve()
    if settings.policy_path is not None:
        settings.policy_path = settings.policy_path.expanduser().resolve()
    return settings


__all__ = ["StintSettings", "get_settings"]
