"""Runtime settings sourced from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_CONTEXT_LINES, DEFAULT_REMOTE

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """gitlanes settings.

    Every field can be set through a ``GITLANES_*`` environment variable,
    e.g. ``GITLANES_CONTEXT_LINES=0``. Invalid values raise a
    ``ValidationError`` (a ``ValueError``) when the settings are built.
    """

    model_config = SettingsConfigDict(
        env_prefix="GITLANES_", env_ignore_empty=True, extra="ignore"
    )

    context_lines: int = Field(default=DEFAULT_CONTEXT_LINES, ge=0)
    log_level: str = "INFO"
    remote: str = DEFAULT_REMOTE
    author_name: str | None = None
    author_email: str | None = None
    project: Path | None = None

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in _LOG_LEVELS:
            raise ValueError(
                "GITLANES_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("remote")
    @classmethod
    def _validate_remote(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("GITLANES_REMOTE must not be empty")
        return value
