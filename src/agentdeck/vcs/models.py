"""Data models for git working copies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

ChangeStatus = Literal["added", "modified", "deleted", "renamed", "untracked"]


@dataclass(slots=True)
class WorktreeRecord:
    path: str
    branch: str
    is_main: bool


@dataclass(slots=True)
class FileChange:
    path: str
    status: ChangeStatus
    old_path: str | None = None


@dataclass(slots=True)
class GitStatus:
    files: list[FileChange] = field(default_factory=list)
    branch: str = ""
    ahead: int = 0
    behind: int = 0


__all__ = ["ChangeStatus", "FileChange", "GitStatus", "WorktreeRecord"]
