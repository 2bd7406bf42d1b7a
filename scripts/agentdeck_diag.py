"""agentdeck diagnostics CLI."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from agentdeck.config import AgentDeckSettings
from agentdeck.storage import SessionStore
from agentdeck.terminal import OutputClassifier
from agentdeck.vcs import RepositoryError, WorktreeService


def load_store(settings: AgentDeckSettings) -> SessionStore:
    store = SessionStore(settings.data_path.expanduser())
    if store.last_error:
        print(f"Session store unreadable: {store.last_error}")
        raise SystemExit(1)
    return store


def cmd_sessions(args: argparse.Namespace) -> None:
    settings = AgentDeckSettings()
    store = load_store(settings)
    sessions = store.sessions()
    if args.json:
        print(json.dumps([session.model_dump(mode="json") for session in sessions], indent=2))
    else:
        for session in sessions:
            print(f"{session.id} [{session.agent.value}] {session.name} -> {session.working_directory}")


def cmd_reviewed(args: argparse.Namespace) -> None:
    settings = AgentDeckSettings()
    store = load_store(settings)
    print(json.dumps(store.reviewed_files(args.session_id), indent=2))


def cmd_worktrees(args: argparse.Namespace) -> None:
    service = WorktreeService()
    try:
        records = service.list_worktrees(args.repo_path)
    except RepositoryError as exc:
        print(f"Not a repository: {exc}")
        raise SystemExit(1)
    payload = [
        {"path": record.path, "branch": record.branch, "is_main": record.is_main}
        for record in records
    ]
    print(json.dumps(payload, indent=2))


def cmd_classify(args: argparse.Namespace) -> None:
    """Replay a captured terminal transcript and print each state transition."""

    data = Path(args.transcript).read_bytes()
    classifier = OutputClassifier()
    size = args.chunk_size if args.chunk_size and args.chunk_size > 0 else len(data) or 1
    transitions = []
    for offset in range(0, len(data), size):
        state = classifier.feed(data[offset : offset + size])
        if state is not None:
            transitions.append({"offset": offset, **state.to_dict()})
    print(json.dumps(transitions, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="agentdeck diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_sessions = sub.add_parser("sessions", help="List persisted sessions")
    p_sessions.add_argument("--json", action="store_true", help="Output JSON")
    p_sessions.set_defaults(func=cmd_sessions)

    p_reviewed = sub.add_parser("reviewed", help="List reviewed files of a session")
    p_reviewed.add_argument("session_id")
    p_reviewed.set_defaults(func=cmd_reviewed)

    p_worktrees = sub.add_parser("worktrees", help="List worktrees of a repository")
    p_worktrees.add_argument("repo_path")
    p_worktrees.set_defaults(func=cmd_worktrees)

    p_classify = sub.add_parser("classify", help="Replay a transcript through the output classifier")
    p_classify.add_argument("transcript")
    p_classify.add_argument(
        "--chunk-size",
        type=int,
        default=256,
        help="Bytes per simulated output chunk (0 feeds the whole file at once)",
    )
    p_classify.set_defaults(func=cmd_classify)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
