"""FastMCP server bootstrap for agentdeck."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .agents import AgentRegistry
from .config import AgentDeckSettings, get_settings
from .events import EventChannel
from .orchestrator import SessionOrchestrator
from .storage import SessionStore
from .terminal import ProcessSupervisor
from .terminal.supervisor import Spawner
from .tools import register_tools
from .vcs import WorktreeService


def configure_logging(level: str) -> None:
    """Configure root logging for the agentdeck server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[AgentDeckSettings] = None,
    *,
    spawner: Spawner | None = None,
) -> FastMCP:
    """Wire the session services together and expose them as MCP tools."""

    settings = settings or get_settings()

    agents = AgentRegistry(settings.agent_paths)
    events = EventChannel(maxsize=settings.event_queue_size)
    store = SessionStore(settings.data_path)
    worktrees = WorktreeService()
    supervisor = ProcessSupervisor(
        agents,
        on_output=events.output,
        on_state=events.state,
        on_exit=events.exit,
        shell=settings.shell,
        cols=settings.terminal_cols,
        rows=settings.terminal_rows,
        settle_delay=settings.settle_delay,
        spawner=spawner,
    )
    orchestrator = SessionOrchestrator(
        worktrees=worktrees,
        supervisor=supervisor,
        store=store,
        agents=agents,
        rollback_worktree_on_spawn_failure=settings.rollback_worktree_on_spawn_failure,
    )

    server = FastMCP(
        name="agentdeck",
        version=__version__,
        instructions=(
            "agentdeck runs coding agents side by side, each in its own git worktree and "
            "terminal. Create and close sessions, send terminal input, and poll "
            "terminal_events for output and activity states."
        ),
    )

    handles = register_tools(
        server,
        orchestrator=orchestrator,
        worktrees=worktrees,
        store=store,
        agents=agents,
        events=events,
    )

    def status_payload(request_id: str | None = None) -> dict[str, Any]:
        """Summarize sessions, agents and storage."""

        sessions = orchestrator.list()
        state_counts: dict[str, int] = {}
        for session in sessions:
            state = orchestrator.state(session.id)
            key = state.type.value if state is not None else "stopped"
            state_counts[key] = state_counts.get(key, 0) + 1

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "sessions": {
                "count": len(sessions),
                "running": len(supervisor.session_ids()),
                "states": state_counts,
            },
            "agents": {
                kind.value: {"name": config.name, "available": config.available}
                for kind, config in agents.all().items()
            },
            "storage": {
                "path": str(store.path),
                "error": store.last_error,
            },
            "events": {"dropped": events.dropped},
            "request_id": request_id,
        }
        return payload

    @server.resource(
        "resource://agentdeck/status",
        name="agentdeck_status",
        title="agentdeck Status",
        description="Provides the current runtime status for the agentdeck server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        return json.dumps(status_payload(getattr(context, "request_id", None)))

    setattr(server, "orchestrator", orchestrator)
    setattr(server, "supervisor", supervisor)
    setattr(server, "session_store", store)
    setattr(server, "event_channel", events)
    setattr(server, "agent_registry", agents)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_payload", status_payload)
    return server


def main() -> None:
    """Entry point for running the agentdeck MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching agentdeck MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "data_path": str(settings.data_path),
            "sessions": len(server.orchestrator.list()),
        },
    )
    try:
        server.run()
    finally:
        server.orchestrator.shutdown()


if __name__ == "__main__":
    main()
