"""Session lifecycle: worktree, terminal and persisted record per agent run."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable
from uuid import uuid4

from pydantic import BaseModel, Field

from .agents import AgentKind, AgentRegistry
from .storage import Session, SessionStore
from .terminal import ProcessSupervisor, TerminalState
from .vcs import GitStatus, WorktreeError, WorktreeService, agent_branch_name

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """Raised when a session id is not in the live registry."""


class CreateSessionConfig(BaseModel):
    """Operator request for a new session."""

    repo_path: str = Field(..., description="Absolute path of the source repository or folder.")
    name: str = Field(default="", description="Display name; defaults to 'Session <id>'.")
    branch: str = Field(
        default="", description="Base branch for the worktree; defaults to the current branch."
    )
    agent: AgentKind = Field(default=AgentKind.CLAUDE_CODE, description="Agent program to run.")


def _short_id() -> str:
    return uuid4().hex[:8]


class SessionOrchestrator:
    """Sole owner of the live session registry.

    Creation runs worktree setup before spawning the terminal; closing runs in
    reverse so a worktree is never removed under a live process. Sessions
    persisted by an earlier run are loaded into the registry without a
    terminal.
    """

    def __init__(
        self,
        *,
        worktrees: WorktreeService,
        supervisor: ProcessSupervisor,
        store: SessionStore,
        agents: AgentRegistry,
        id_factory: Callable[[], str] | None = None,
        rollback_worktree_on_spawn_failure: bool = False,
    ) -> None:
        self._worktrees = worktrees
        self._supervisor = supervisor
        self._store = store
        self._agents = agents
        self._id_factory = id_factory or _short_id
        self._rollback = rollback_worktree_on_spawn_failure
        self._lock = threading.Lock()
        self._closing: set[str] = set()
        self._sessions: dict[str, Session] = {session.id: session for session in store.sessions()}

    def create(self, config: CreateSessionConfig) -> Session:
        self._agents.require_available(config.agent)

        session_id = self._id_factory()
        repo_path = os.path.abspath(config.repo_path)
        is_git_repo = self._worktrees.is_repository(repo_path)

        worktree_path: Path | None = None
        base_branch = config.branch
        if is_git_repo:
            if not base_branch:
                base_branch = self._worktrees.current_branch(repo_path)
            worktree_path = self._worktrees.create_worktree(repo_path, session_id, base_branch)

        session = Session(
            id=session_id,
            name=config.name or f"Session {session_id}",
            repo_path=repo_path,
            worktree_path=str(worktree_path) if worktree_path is not None else None,
            branch=agent_branch_name(session_id) if is_git_repo else "",
            base_branch=base_branch or "",
            agent=config.agent,
            is_git_repo=is_git_repo,
        )

        with self._lock:
            self._sessions[session.id] = session
        self._store.add_session(session)

        try:
            self._supervisor.spawn(session.id, session.working_directory, session.agent)
        except Exception:
            self._forget(session.id)
            if self._rollback and session.worktree_path is not None:
                self._rollback_worktree(session)
            raise

        logger.info(
            "Created session",
            extra={
                "session_id": session.id,
                "agent": session.agent.value,
                "worktree_path": session.worktree_path,
                "base_branch": session.base_branch,
            },
        )
        return session

    def close(self, session_id: str, delete_worktree: bool = False) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session_id in self._closing:
                raise SessionNotFoundError(f"Session {session_id} not found")
            self._closing.add(session_id)

        try:
            self._supervisor.kill(session_id)
            if delete_worktree and session.is_git_repo and session.worktree_path is not None:
                self._worktrees.delete_worktree(session.repo_path, session.worktree_path)
            self._forget(session_id)
        finally:
            with self._lock:
                self._closing.discard(session_id)

        logger.info(
            "Closed session",
            extra={"session_id": session_id, "deleted_worktree": delete_worktree},
        )

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    def list(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def working_directory(self, session_id: str) -> Path:
        """Directory every git and file accessor must use for a session."""

        return self.get(session_id).working_directory

    def write(self, session_id: str, data: bytes | str) -> None:
        self._supervisor.write(session_id, data)

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        self._supervisor.resize(session_id, cols, rows)

    def state(self, session_id: str) -> TerminalState | None:
        return self._supervisor.state(session_id)

    def is_running(self, session_id: str) -> bool:
        return session_id in self._supervisor

    def status(self, session_id: str) -> GitStatus:
        return self._worktrees.status(self.working_directory(session_id))

    def file_diff(self, session_id: str, file_path: str) -> str:
        return self._worktrees.file_diff(self.working_directory(session_id), file_path)

    def file_content(self, session_id: str, file_path: str) -> str:
        return self._worktrees.file_content(self.working_directory(session_id), file_path)

    def original_file_content(self, session_id: str, file_path: str) -> str:
        return self._worktrees.original_file_content(self.working_directory(session_id), file_path)

    def shutdown(self) -> None:
        """Kill every terminal; session records stay persisted."""

        self._supervisor.kill_all()

    def _forget(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
        self._store.remove_session(session_id)

    def _rollback_worktree(self, session: Session) -> None:
        try:
            self._worktrees.delete_worktree(session.repo_path, session.worktree_path)
        except WorktreeError as exc:
            logger.warning(
                "Worktree rollback failed",
                extra={"session_id": session.id, "error": str(exc)},
            )


__all__ = ["CreateSessionConfig", "SessionNotFoundError", "SessionOrchestrator"]
