"""Data models for persisted sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from ..agents import AgentKind
from ..vcs import AGENT_BRANCH_PREFIX


class Session(BaseModel):
    """One agent run: an agent kind, a working directory and a terminal."""

    id: str
    name: str
    repo_path: str
    worktree_path: str | None = None
    branch: str = ""
    base_branch: str = ""
    agent: AgentKind = AgentKind.CLAUDE_CODE
    is_git_repo: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_worktree_binding(self) -> "Session":
        if (self.worktree_path is not None) != self.is_git_repo:
            raise ValueError("worktree_path must be set exactly when is_git_repo is true")
        if self.is_git_repo and not self.branch.startswith(AGENT_BRANCH_PREFIX):
            raise ValueError(f"Session branch must start with '{AGENT_BRANCH_PREFIX}'")
        if not self.is_git_repo and self.branch:
            raise ValueError("Unversioned sessions have no branch")
        return self

    @property
    def working_directory(self) -> Path:
        return Path(self.worktree_path or self.repo_path)


class StoredData(BaseModel):
    sessions: list[Session] = Field(default_factory=list)
    reviewed_files: dict[str, list[str]] = Field(default_factory=dict)


__all__ = ["Session", "StoredData"]
