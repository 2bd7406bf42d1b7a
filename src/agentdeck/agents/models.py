"""Agent kind definitions for agentdeck sessions."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class AgentKind(str, Enum):
    """Closed set of coding-agent programs a session can run."""

    CLAUDE_CODE = "claude-code"
    CODEX = "codex"
    CURSOR = "cursor"


class AgentConfig(BaseModel):
    """Launch configuration for one agent kind."""

    name: str = Field(..., description="Human-friendly name shown to the operator.")
    command: str = Field(..., description="Executable typed into the session shell.")
    args: list[str] = Field(
        default_factory=list,
        description="Arguments appended to the command on the launch line.",
    )
    available: bool = Field(
        default=True,
        description="Disabled agents cannot be spawned.",
    )

    @field_validator("command")
    @classmethod
    def _normalize_command(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Agent command must not be empty")
        return normalized

    @field_validator("args", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise TypeError("Agent args must be a sequence of strings")

    def launch_line(self) -> str:
        """Return the text typed into the shell to start the agent."""

        return " ".join([self.command, *self.args]) + "\r"


DEFAULT_AGENT_CONFIGS: dict[AgentKind, AgentConfig] = {
    AgentKind.CLAUDE_CODE: AgentConfig(name="Claude Code", command="claude", available=True),
    AgentKind.CODEX: AgentConfig(name="Codex", command="codex", available=False),
    AgentKind.CURSOR: AgentConfig(name="Cursor", command="cursor", args=["--chat"], available=False),
}


__all__ = ["AgentConfig", "AgentKind", "DEFAULT_AGENT_CONFIGS"]
