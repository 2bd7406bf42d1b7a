"""Tool registration for the agentdeck MCP server."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..agents import AgentKind, AgentRegistry
from ..events import EventChannel
from ..orchestrator import CreateSessionConfig, SessionNotFoundError, SessionOrchestrator
from ..storage import Session, SessionStore
from ..vcs import WorktreeService

DEFAULT_EVENT_BATCH = 500


@dataclass(slots=True)
class ToolHandles:
    session_create: Any
    session_close: Any
    session_list: Any
    git_is_repo: Any
    git_branches: Any
    git_status: Any
    git_diff: Any
    file_content: Any
    file_original_content: Any
    terminal_input: Any
    terminal_resize: Any
    terminal_events: Any
    worktree_list: Any
    worktree_delete: Any
    reviewed_get: Any
    reviewed_add: Any
    reviewed_remove: Any
    reviewed_clear: Any
    agents_list: Any


def _session_payload(session: Session, orchestrator: SessionOrchestrator) -> dict[str, Any]:
    state = orchestrator.state(session.id)
    return {
        **session.model_dump(mode="json"),
        "working_directory": str(session.working_directory),
        "running": orchestrator.is_running(session.id),
        "state": state.to_dict() if state is not None else None,
    }


def register_tools(
    server: FastMCP,
    *,
    orchestrator: SessionOrchestrator,
    worktrees: WorktreeService,
    store: SessionStore,
    agents: AgentRegistry,
    events: EventChannel,
) -> ToolHandles:
    """Register agentdeck's MCP tools on the server."""

    def _session_create(
        repo_path: str,
        name: str = "",
        branch: str = "",
        agent: str = AgentKind.CLAUDE_CODE.value,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Create an isolated worktree for the repository and start an agent terminal in it."""

        config = CreateSessionConfig(repo_path=repo_path, name=name, branch=branch, agent=agent)
        session = orchestrator.create(config)
        _emit_log(
            context,
            "info",
            "Session created",
            extra={"session_id": session.id, "agent": session.agent.value},
        )
        return _session_payload(session, orchestrator)

    def _session_close(
        session_id: str,
        delete_worktree: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Stop the session's terminal, optionally delete its worktree, and forget the session."""

        try:
            orchestrator.close(session_id, delete_worktree)
        except SessionNotFoundError:
            _emit_log(
                context,
                "debug",
                "Close of unknown session ignored",
                extra={"session_id": session_id},
            )
            return {"session_id": session_id, "closed": False, "deleted_worktree": False}

        _emit_log(
            context,
            "info",
            "Session closed",
            extra={"session_id": session_id, "deleted_worktree": delete_worktree},
        )
        return {"session_id": session_id, "closed": True, "deleted_worktree": delete_worktree}

    def _session_list(context: Context | None = None) -> list[dict[str, Any]]:
        """List known sessions with their terminal state."""

        sessions = [_session_payload(session, orchestrator) for session in orchestrator.list()]
        _emit_log(context, "debug", "Listing sessions", extra={"count": len(sessions)})
        return sessions

    tool_session_create = server.tool(
        name="session_create",
        description=(
            "Start a coding agent on a repository. Versioned repositories get a dedicated "
            "worktree under .worktrees/<id> on branch agent/<id>."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Creates a git branch and worktree and launches an interactive shell",
            }
        },
    )(_session_create)

    tool_session_close = server.tool(
        name="session_close",
        description="Close a session; set delete_worktree=true to remove its worktree and agent branch.",
    )(_session_close)

    tool_session_list = server.tool(
        name="session_list",
        description="List agent sessions, their working directories and activity states.",
    )(_session_list)

    def _git_is_repo(path: str) -> bool:
        """Report whether a path is inside a git repository."""

        return worktrees.is_repository(path)

    def _git_branches(path: str) -> list[str]:
        """List local branches of a repository."""

        return worktrees.branches(path)

    def _git_status(session_id: str) -> dict[str, Any]:
        """Summarize changed files in a session's working directory."""

        return asdict(orchestrator.status(session_id))

    def _git_diff(session_id: str, file_path: str) -> str:
        """Diff one file in a session's working directory against HEAD."""

        return orchestrator.file_diff(session_id, file_path)

    def _file_content(session_id: str, file_path: str) -> str:
        return orchestrator.file_content(session_id, file_path)

    def _file_original_content(session_id: str, file_path: str) -> str:
        return orchestrator.original_file_content(session_id, file_path)

    tool_git_is_repo = server.tool(
        name="git_is_repo", description="Check whether a folder is a git repository."
    )(_git_is_repo)
    tool_git_branches = server.tool(
        name="git_branches", description="List local branches to use as a session base."
    )(_git_branches)
    tool_git_status = server.tool(
        name="git_status", description="Changed files, branch, ahead/behind for a session."
    )(_git_status)
    tool_git_diff = server.tool(
        name="git_diff", description="Unified diff of one file in a session against HEAD."
    )(_git_diff)
    tool_file_content = server.tool(
        name="file_content", description="Current content of a file in a session's working directory."
    )(_file_content)
    tool_file_original_content = server.tool(
        name="file_original_content", description="Content of a file at HEAD for a session."
    )(_file_original_content)

    def _terminal_input(session_id: str, data: str) -> dict[str, Any]:
        """Send keystrokes to a session terminal. Unknown or exited sessions are ignored."""

        orchestrator.write(session_id, data)
        return {"session_id": session_id, "bytes": len(data.encode("utf-8"))}

    def _terminal_resize(session_id: str, cols: int, rows: int) -> dict[str, Any]:
        """Resize a session terminal. Unknown or exited sessions are ignored."""

        orchestrator.resize(session_id, cols, rows)
        return {"session_id": session_id, "cols": cols, "rows": rows}

    def _terminal_events(limit: int = DEFAULT_EVENT_BATCH) -> list[dict[str, Any]]:
        """Drain pending terminal output, state and exit events in arrival order."""

        return [event.to_dict() for event in events.drain(limit if limit > 0 else None)]

    tool_terminal_input = server.tool(
        name="terminal_input", description="Write raw input to a session terminal."
    )(_terminal_input)
    tool_terminal_resize = server.tool(
        name="terminal_resize", description="Change a session terminal's columns and rows."
    )(_terminal_resize)
    tool_terminal_events = server.tool(
        name="terminal_events",
        description="Fetch queued terminal.output, terminal.state and terminal.exit events.",
    )(_terminal_events)

    def _worktree_list(repo_path: str) -> list[dict[str, Any]]:
        """List the repository's worktrees, flagging the main checkout."""

        return [asdict(record) for record in worktrees.list_worktrees(repo_path)]

    def _worktree_delete(
        repo_path: str,
        worktree_path: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Remove a worktree and its agent/ branch."""

        worktrees.delete_worktree(repo_path, worktree_path)
        _emit_log(context, "info", "Worktree deleted", extra={"worktree_path": worktree_path})
        return {"repo_path": repo_path, "worktree_path": worktree_path, "deleted": True}

    tool_worktree_list = server.tool(
        name="worktree_list", description="List git worktrees of a repository."
    )(_worktree_list)
    tool_worktree_delete = server.tool(
        name="worktree_delete",
        description="Force-remove a worktree; agent/ branches bound to it are deleted too.",
        annotations={"safety": {"level": "caution", "notes": "Discards uncommitted work"}},
    )(_worktree_delete)

    def _reviewed_get(session_id: str) -> list[str]:
        return store.reviewed_files(session_id)

    def _reviewed_add(session_id: str, file_path: str) -> list[str]:
        store.add_reviewed_file(session_id, file_path)
        return store.reviewed_files(session_id)

    def _reviewed_remove(session_id: str, file_path: str) -> list[str]:
        store.remove_reviewed_file(session_id, file_path)
        return store.reviewed_files(session_id)

    def _reviewed_clear(session_id: str) -> list[str]:
        store.clear_reviewed_files(session_id)
        return []

    tool_reviewed_get = server.tool(
        name="reviewed_get", description="Files the operator marked as reviewed in a session."
    )(_reviewed_get)
    tool_reviewed_add = server.tool(
        name="reviewed_add", description="Mark a file as reviewed."
    )(_reviewed_add)
    tool_reviewed_remove = server.tool(
        name="reviewed_remove", description="Unmark a reviewed file."
    )(_reviewed_remove)
    tool_reviewed_clear = server.tool(
        name="reviewed_clear", description="Clear a session's reviewed files."
    )(_reviewed_clear)

    def _agents_list() -> list[dict[str, Any]]:
        """List supported agent kinds and whether they can be started."""

        return [
            {"id": kind.value, **config.model_dump()}
            for kind, config in agents.all().items()
        ]

    tool_agents_list = server.tool(
        name="agents_list", description="List agent kinds with launch command and availability."
    )(_agents_list)

    return ToolHandles(
        session_create=tool_session_create,
        session_close=tool_session_close,
        session_list=tool_session_list,
        git_is_repo=tool_git_is_repo,
        git_branches=tool_git_branches,
        git_status=tool_git_status,
        git_diff=tool_git_diff,
        file_content=tool_file_content,
        file_original_content=tool_file_original_content,
        terminal_input=tool_terminal_input,
        terminal_resize=tool_terminal_resize,
        terminal_events=tool_terminal_events,
        worktree_list=tool_worktree_list,
        worktree_delete=tool_worktree_delete,
        reviewed_get=tool_reviewed_get,
        reviewed_add=tool_reviewed_add,
        reviewed_remove=tool_reviewed_remove,
        reviewed_clear=tool_reviewed_clear,
        agents_list=tool_agents_list,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
