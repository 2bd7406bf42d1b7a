from __future__ import annotations

import argparse
import importlib.util
import json
from pathlib import Path

import git
import pytest

from agentdeck.storage import Session, SessionStore


def _load_diag():
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "agentdeck_diag.py"
    spec = importlib.util.spec_from_file_location("agentdeck_diag_module", module_path)
    assert spec and spec.loader
    diag = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(diag)
    return diag


def test_sessions_json(monkeypatch, capsys, tmp_path: Path) -> None:
    data_path = tmp_path / "sessions.json"
    store = SessionStore(data_path)
    store.add_session(Session(id="abc12345", name="Scratch", repo_path=str(tmp_path)))
    monkeypatch.setenv("AGENTDECK_DATA_PATH", str(data_path))
    diag = _load_diag()

    diag.main(["sessions", "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert [entry["id"] for entry in payload] == ["abc12345"]
    assert payload[0]["agent"] == "claude-code"


def test_sessions_plain_listing(monkeypatch, capsys, tmp_path: Path) -> None:
    data_path = tmp_path / "sessions.json"
    SessionStore(data_path).add_session(
        Session(id="abc12345", name="Scratch", repo_path=str(tmp_path))
    )
    monkeypatch.setenv("AGENTDECK_DATA_PATH", str(data_path))
    diag = _load_diag()

    diag.cmd_sessions(argparse.Namespace(json=False))

    assert capsys.readouterr().out.strip() == f"abc12345 [claude-code] Scratch -> {tmp_path}"


def test_unreadable_store_exits(monkeypatch, capsys, tmp_path: Path) -> None:
    data_path = tmp_path / "sessions.json"
    data_path.write_text("[broken", encoding="utf-8")
    monkeypatch.setenv("AGENTDECK_DATA_PATH", str(data_path))
    diag = _load_diag()

    with pytest.raises(SystemExit) as excinfo:
        diag.main(["reviewed", "abc12345"])

    assert excinfo.value.code == 1
    assert "Session store unreadable" in capsys.readouterr().out


def test_reviewed_files(monkeypatch, capsys, tmp_path: Path) -> None:
    data_path = tmp_path / "sessions.json"
    SessionStore(data_path).set_reviewed_files("abc12345", ["src/app.py"])
    monkeypatch.setenv("AGENTDECK_DATA_PATH", str(data_path))
    diag = _load_diag()

    diag.main(["reviewed", "abc12345"])

    assert json.loads(capsys.readouterr().out) == ["src/app.py"]


def test_worktrees(capsys, git_repo: Path, tmp_path: Path) -> None:
    with git.Repo(git_repo) as repo:
        repo.git.worktree("add", "-b", "agent/s1", str(git_repo / ".worktrees" / "s1"), "main")
    diag = _load_diag()

    diag.main(["worktrees", str(git_repo)])

    payload = json.loads(capsys.readouterr().out)
    assert [(entry["branch"], entry["is_main"]) for entry in payload] == [
        ("main", True),
        ("agent/s1", False),
    ]

    with pytest.raises(SystemExit):
        diag.main(["worktrees", str(tmp_path / "nowhere")])
    assert "Not a repository" in capsys.readouterr().out


def test_classify_transcript(capsys, tmp_path: Path) -> None:
    transcript = tmp_path / "session.log"
    transcript.write_bytes(b"Thinking...\nReading file app.py\n> ")
    diag = _load_diag()

    diag.main(["classify", str(transcript), "--chunk-size", "12"])

    transitions = json.loads(capsys.readouterr().out)
    assert [(t["type"], t["tool"]) for t in transitions] == [
        ("thinking", None),
        ("tool_use", "read"),
        ("waiting_input", None),
    ]
    assert transitions[0]["offset"] == 0
