"""Configuration management for agentdeck."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AgentDeckSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    data_path: Path = Field(
        default=Path("~/.agentdeck/sessions.json"), validation_alias="AGENTDECK_DATA_PATH"
    )
    agent_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(), validation_alias="AGENTDECK_AGENT_PATHS"
    )
    shell: str | None = Field(default=None, validation_alias="AGENTDECK_SHELL")
    terminal_cols: int = Field(default=120, validation_alias="AGENTDECK_TERMINAL_COLS")
    terminal_rows: int = Field(default=30, validation_alias="AGENTDECK_TERMINAL_ROWS")
    settle_delay: float = Field(default=0.5, validation_alias="AGENTDECK_SETTLE_DELAY")
    event_queue_size: int = Field(default=10_000, validation_alias="AGENTDECK_EVENT_QUEUE_SIZE")
    rollback_worktree_on_spawn_failure: bool = Field(
        default=False, validation_alias="AGENTDECK_ROLLBACK_WORKTREE"
    )
    log_level: str = Field(default="INFO", validation_alias="AGENTDECK_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "AGENTDECK_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("agent_paths", mode="before")
    @classmethod
    def _parse_agent_paths(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts)
        raise TypeError("AGENTDECK_AGENT_PATHS must be a list of paths or a path-separated string")

    @field_validator("terminal_cols", "terminal_rows")
    @classmethod
    def _validate_geometry(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Terminal geometry must be at least 1x1")
        return value

    @field_validator("settle_delay")
    @classmethod
    def _validate_settle_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("AGENTDECK_SETTLE_DELAY must be >= 0")
        return value

    @field_validator("event_queue_size")
    @classmethod
    def _validate_event_queue_size(cls, value: int) -> int:
        if value < 0:
            raise ValueError("AGENTDECK_EVENT_QUEUE_SIZE must be >= 0 (0 means unbounded)")
        return value


@lru_cache(maxsize=1)
def get_settings() -> AgentDeckSettings:
    """Return cached settings instance."""

    settings = AgentDeckSettings()
    settings.data_path = settings.data_path.expanduser().resolve()
    settings.agent_paths = tuple(path.expanduser().resolve() for path in settings.agent_paths)
    return settings


__all__ = ["AgentDeckSettings", "get_settings"]
