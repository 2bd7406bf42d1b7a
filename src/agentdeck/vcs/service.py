"""Git worktree management for isolating agent sessions."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import git

from .models import ChangeStatus, FileChange, GitStatus, WorktreeRecord

logger = logging.getLogger(__name__)

WORKTREES_DIRNAME = ".worktrees"
AGENT_BRANCH_PREFIX = "agent/"

_AHEAD_RE = re.compile(r"ahead (\d+)")
_BEHIND_RE = re.compile(r"behind (\d+)")


class WorktreeError(RuntimeError):
    """Base class for worktree service errors."""


class RepositoryError(WorktreeError):
    """Raised when a path is not inside a git repository."""


class WorktreeCreateError(WorktreeError):
    """Raised when a session worktree or its branch cannot be created."""


class WorktreeDeleteError(WorktreeError):
    """Raised when a worktree directory cannot be removed."""


def agent_branch_name(session_id: str) -> str:
    return f"{AGENT_BRANCH_PREFIX}{session_id}"


def worktree_path_for(repo_path: str | Path, session_id: str) -> Path:
    return Path(os.path.abspath(repo_path)) / WORKTREES_DIRNAME / session_id


def _same_path(left: str | Path, right: str | Path) -> bool:
    return os.path.realpath(left) == os.path.realpath(right)


def parse_worktree_porcelain(output: str, repo_path: str | Path) -> list[WorktreeRecord]:
    """Parse ``git worktree list --porcelain`` output.

    Records are blank-line separated ``key value`` lines. Only ``worktree`` and
    ``branch refs/heads/...`` are used; detached heads keep an empty branch.
    A record is considered the main checkout when its path is the repository
    path or does not live under a ``.worktrees`` directory.
    """

    records: list[WorktreeRecord] = []
    current_path = ""
    current_branch = ""

    def _flush() -> None:
        if current_path:
            records.append(
                WorktreeRecord(
                    path=current_path,
                    branch=current_branch,
                    is_main=_same_path(current_path, repo_path)
                    or WORKTREES_DIRNAME not in Path(current_path).parts,
                )
            )

    for line in output.splitlines():
        if line.startswith("worktree "):
            current_path = line[len("worktree ") :]
        elif line.startswith("branch refs/heads/"):
            current_branch = line[len("branch refs/heads/") :]
        elif line == "":
            _flush()
            current_path = ""
            current_branch = ""
    _flush()

    return records


def _classify_change(index: str, working: str) -> ChangeStatus:
    codes = {index, working}
    if "A" in codes:
        return "added"
    if "D" in codes:
        return "deleted"
    if "R" in codes:
        return "renamed"
    if "?" in codes:
        return "untracked"
    return "modified"


def parse_status_porcelain(output: str) -> GitStatus:
    """Parse ``git status --porcelain=v1 --branch -z`` output."""

    status = GitStatus()
    entries = output.split("\0")
    position = 0
    while position < len(entries):
        entry = entries[position]
        position += 1
        if not entry:
            continue

        if entry.startswith("## "):
            header = entry[3:]
            head, _, tracking = header.partition(" [")
            head = head.removeprefix("No commits yet on ").removeprefix("Initial commit on ")
            status.branch = head.split("...", 1)[0].split(" ", 1)[0]
            if ahead := _AHEAD_RE.search(tracking):
                status.ahead = int(ahead.group(1))
            if behind := _BEHIND_RE.search(tracking):
                status.behind = int(behind.group(1))
            continue

        index, working, path = entry[0], entry[1], entry[3:]
        old_path = None
        if index in {"R", "C"} and position < len(entries):
            old_path = entries[position]
            position += 1
        status.files.append(
            FileChange(path=path, status=_classify_change(index, working), old_path=old_path)
        )

    return status


class WorktreeService:
    """Create, list and remove per-session git worktrees.

    The read-only accessors (``status``, ``file_diff``, ``file_content`` and
    ``original_file_content``) never raise; they feed best-effort display and
    return empty results on any failure.
    """

    @staticmethod
    def _open(path: str | Path) -> git.Repo:
        try:
            return git.Repo(path, search_parent_directories=True)
        except (git.GitError, OSError, ValueError) as exc:
            raise RepositoryError(f"{path} is not a git repository") from exc

    def is_repository(self, path: str | Path) -> bool:
        try:
            with self._open(path):
                return True
        except RepositoryError:
            return False

    def current_branch(self, path: str | Path) -> str:
        with self._open(path) as repo:
            try:
                return repo.active_branch.name
            except TypeError:
                pass
            # Detached HEAD: branch from the commit itself.
            try:
                return repo.head.commit.hexsha
            except ValueError as exc:
                raise RepositoryError(f"{path} has no commits") from exc

    def branches(self, path: str | Path) -> list[str]:
        try:
            with self._open(path) as repo:
                return [head.name for head in repo.heads]
        except RepositoryError:
            return []

    def create_worktree(self, repo_path: str | Path, session_id: str, base_branch: str) -> Path:
        """Create ``<repo>/.worktrees/<id>`` on a new ``agent/<id>`` branch.

        Branch collisions are not retried: they mean a session id was reused.
        """

        worktree_path = worktree_path_for(repo_path, session_id)
        branch_name = agent_branch_name(session_id)

        with self._open(repo_path) as repo:
            worktree_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                repo.git.worktree("add", "-b", branch_name, str(worktree_path), base_branch)
            except git.GitCommandError as exc:
                raise WorktreeCreateError(
                    f"Could not create worktree {worktree_path} on {branch_name} "
                    f"from '{base_branch}': {exc.stderr.strip() if exc.stderr else exc}"
                ) from exc

        logger.info(
            "Created worktree",
            extra={"session_id": session_id, "path": str(worktree_path), "branch": branch_name},
        )
        return worktree_path

    def delete_worktree(self, repo_path: str | Path, worktree_path: str | Path) -> None:
        """Remove a worktree and, for ``agent/`` branches, its branch.

        A worktree directory already removed by hand is pruned instead of
        removed. Branch deletion is best effort.
        """

        records = self.list_worktrees(repo_path)
        match = next((record for record in records if _same_path(record.path, worktree_path)), None)
        branch_to_delete = match.branch if match is not None else ""

        with self._open(repo_path) as repo:
            try:
                if Path(worktree_path).exists():
                    repo.git.worktree("remove", str(worktree_path), "--force")
                else:
                    repo.git.worktree("prune")
            except git.GitCommandError as exc:
                raise WorktreeDeleteError(
                    f"Could not remove worktree {worktree_path}: "
                    f"{exc.stderr.strip() if exc.stderr else exc}"
                ) from exc

            if branch_to_delete.startswith(AGENT_BRANCH_PREFIX):
                try:
                    repo.git.branch("-D", branch_to_delete)
                except git.GitCommandError as exc:
                    logger.debug(
                        "Branch cleanup skipped",
                        extra={"branch": branch_to_delete, "error": str(exc)},
                    )

        logger.info(
            "Deleted worktree",
            extra={"path": str(worktree_path), "branch": branch_to_delete or None},
        )

    def list_worktrees(self, repo_path: str | Path) -> list[WorktreeRecord]:
        with self._open(repo_path) as repo:
            try:
                output = repo.git.worktree("list", "--porcelain")
            except git.GitCommandError as exc:
                raise RepositoryError(f"Could not list worktrees for {repo_path}: {exc}") from exc
        return parse_worktree_porcelain(output, repo_path)

    def status(self, working_dir: str | Path) -> GitStatus:
        try:
            with self._open(working_dir) as repo:
                output = repo.git.status("--porcelain=v1", "--branch", "-z")
        except (RepositoryError, git.GitCommandError):
            return GitStatus()
        return parse_status_porcelain(output)

    def file_diff(self, working_dir: str | Path, file_path: str) -> str:
        try:
            with self._open(working_dir) as repo:
                return repo.git.diff("HEAD", "--", file_path, strip_newline_in_stdout=False)
        except (RepositoryError, git.GitCommandError, UnicodeDecodeError):
            return ""

    def file_content(self, working_dir: str | Path, file_path: str) -> str:
        root = Path(working_dir).resolve()
        target = (root / file_path).resolve()
        if not target.is_relative_to(root):
            return ""
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return ""

    def original_file_content(self, working_dir: str | Path, file_path: str) -> str:
        try:
            with self._open(working_dir) as repo:
                return repo.git.show(f"HEAD:{file_path}", strip_newline_in_stdout=False)
        except (RepositoryError, git.GitCommandError, UnicodeDecodeError):
            return ""


__all__ = [
    "AGENT_BRANCH_PREFIX",
    "RepositoryError",
    "WORKTREES_DIRNAME",
    "WorktreeCreateError",
    "WorktreeDeleteError",
    "WorktreeError",
    "WorktreeService",
    "agent_branch_name",
    "parse_status_porcelain",
    "parse_worktree_porcelain",
    "worktree_path_for",
]
