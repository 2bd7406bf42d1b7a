"""Git worktree service and models."""

from .models import ChangeStatus, FileChange, GitStatus, WorktreeRecord
from .service import (
    AGENT_BRANCH_PREFIX,
    WORKTREES_DIRNAME,
    RepositoryError,
    WorktreeCreateError,
    WorktreeDeleteError,
    WorktreeError,
    WorktreeService,
    agent_branch_name,
    parse_status_porcelain,
    parse_worktree_porcelain,
    worktree_path_for,
)

__all__ = [
    "AGENT_BRANCH_PREFIX",
    "ChangeStatus",
    "FileChange",
    "GitStatus",
    "RepositoryError",
    "WORKTREES_DIRNAME",
    "WorktreeCreateError",
    "WorktreeDeleteError",
    "WorktreeError",
    "WorktreeRecord",
    "WorktreeService",
    "agent_branch_name",
    "parse_status_porcelain",
    "parse_worktree_porcelain",
    "worktree_path_for",
]
