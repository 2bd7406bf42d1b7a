from __future__ import annotations

import shutil
import sys
import threading
from pathlib import Path

import pytest

from agentdeck.agents import AgentConfig, AgentKind, AgentRegistry, AgentUnavailableError
from agentdeck.terminal import (
    ProcessSupervisor,
    StateType,
    TerminalSpawnError,
    default_shell,
    terminal_environment,
)

from conftest import FakePty, FakeSpawner, wait_for


class Recorder:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.log: list[tuple[str, str, object]] = []

    def output(self, session_id: str, data: bytes) -> None:
        with self.lock:
            self.log.append(("output", session_id, data))

    def state(self, session_id: str, state) -> None:
        with self.lock:
            self.log.append(("state", session_id, state.type))

    def exit(self, session_id: str, code: int) -> None:
        with self.lock:
            self.log.append(("exit", session_id, code))

    def of(self, kind: str) -> list[tuple[str, str, object]]:
        with self.lock:
            return [entry for entry in self.log if entry[0] == kind]


def _supervisor(spawner: FakeSpawner, recorder: Recorder, **kwargs) -> ProcessSupervisor:
    return ProcessSupervisor(
        AgentRegistry(),
        on_output=recorder.output,
        on_state=recorder.state,
        on_exit=recorder.exit,
        shell="/bin/sh",
        settle_delay=0,
        spawner=spawner,
        **kwargs,
    )


def test_spawn_types_launch_line_after_settle(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    recorder = Recorder()
    supervisor = _supervisor(fake_spawner, recorder, cols=100, rows=40)

    supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)

    child = fake_spawner.children[0]
    assert wait_for(lambda: child.sent)
    assert child.sent == [b"claude\r"]
    call = fake_spawner.calls[0]
    assert call["cwd"] == tmp_path
    assert call["dimensions"] == (40, 100)
    assert call["env"]["TERM"] == "xterm-256color"
    assert supervisor.geometry("s1") == (100, 40)
    supervisor.kill_all()


def test_spawn_unavailable_agent(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    supervisor = _supervisor(fake_spawner, Recorder())

    with pytest.raises(AgentUnavailableError, match="Codex is not yet available"):
        supervisor.spawn("s1", tmp_path, AgentKind.CODEX)

    assert fake_spawner.calls == []
    assert "s1" not in supervisor


def test_spawn_failure_is_wrapped(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    fake_spawner.error = OSError("no such shell")
    supervisor = _supervisor(fake_spawner, Recorder())

    with pytest.raises(TerminalSpawnError):
        supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)

    assert supervisor.session_ids() == []


def test_output_is_delivered_before_classification(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    recorder = Recorder()
    fake_spawner.pending.append(FakePty([b"Thinking...\n", b"> "]))
    supervisor = _supervisor(fake_spawner, recorder)

    supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)

    assert wait_for(lambda: len(recorder.of("state")) == 2)
    assert recorder.log[:4] == [
        ("output", "s1", b"Thinking...\n"),
        ("state", "s1", StateType.THINKING),
        ("output", "s1", b"> "),
        ("state", "s1", StateType.WAITING_INPUT),
    ]
    assert supervisor.state("s1").type is StateType.WAITING_INPUT
    supervisor.kill_all()


def test_natural_exit_clears_registry(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    recorder = Recorder()
    child = FakePty(exitstatus=3)
    fake_spawner.pending.append(child)
    supervisor = _supervisor(fake_spawner, recorder)
    supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)
    assert wait_for(lambda: child.sent)

    child.finish()

    assert wait_for(lambda: recorder.of("exit"))
    assert recorder.of("exit") == [("exit", "s1", 3)]
    assert "s1" not in supervisor
    assert supervisor.state("s1") is None

    supervisor.write("s1", "ignored")
    supervisor.resize("s1", 80, 24)
    assert child.sent == [b"claude\r"]


def test_kill_is_idempotent(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    recorder = Recorder()
    supervisor = _supervisor(fake_spawner, recorder)
    supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)
    child = fake_spawner.children[0]

    supervisor.kill("s1")
    supervisor.kill("s1")
    supervisor.kill("unknown")

    assert child.terminated
    assert wait_for(lambda: recorder.of("exit"))
    assert recorder.of("exit") == [("exit", "s1", -15)]
    assert supervisor.session_ids() == []


def test_write_and_resize(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    supervisor = _supervisor(fake_spawner, Recorder())
    supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)
    child = fake_spawner.children[0]
    assert wait_for(lambda: child.sent)

    supervisor.write("s1", "ls\r")
    supervisor.write("s1", b"\x03")
    supervisor.resize("s1", 80, 24)

    assert child.sent[1:] == [b"ls\r", b"\x03"]
    assert child.winsize == (24, 80)
    assert supervisor.geometry("s1") == (80, 24)
    supervisor.kill_all()


def test_unknown_session_operations_are_noops(fake_spawner: FakeSpawner) -> None:
    supervisor = _supervisor(fake_spawner, Recorder())

    supervisor.write("nope", "data")
    supervisor.resize("nope", 10, 10)

    assert supervisor.state("nope") is None
    assert supervisor.geometry("nope") is None


def test_respawn_replaces_live_process(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    recorder = Recorder()
    supervisor = _supervisor(fake_spawner, recorder)

    supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)
    supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)

    first, second = fake_spawner.children
    assert first.terminated
    assert first.closed
    assert not second.terminated
    assert recorder.of("exit") == []
    assert supervisor.session_ids() == ["s1"]

    supervisor.write("s1", "hi")
    assert b"hi" in second.sent
    assert b"hi" not in first.sent

    supervisor.kill("s1")
    assert wait_for(lambda: recorder.of("exit"))
    assert recorder.of("exit") == [("exit", "s1", -15)]


def test_failing_sink_does_not_stop_reader(tmp_path: Path, fake_spawner: FakeSpawner) -> None:
    seen: list[bytes] = []

    def flaky_output(session_id: str, data: bytes) -> None:
        seen.append(data)
        if len(seen) == 1:
            raise RuntimeError("transport gone")

    fake_spawner.pending.append(FakePty([b"one", b"two"]))
    supervisor = ProcessSupervisor(
        AgentRegistry(), on_output=flaky_output, settle_delay=0, spawner=fake_spawner
    )

    supervisor.spawn("s1", tmp_path, AgentKind.CLAUDE_CODE)

    assert wait_for(lambda: len(seen) == 2)
    supervisor.kill_all()


def test_terminal_environment_sanitizes_python_vars(monkeypatch) -> None:
    monkeypatch.setenv("VIRTUAL_ENV", "/tmp/venv")
    monkeypatch.setenv("PYTHONPATH", "/tmp/lib")
    monkeypatch.setenv("AGENTDECK_MARKER", "kept")

    env = terminal_environment({"EXTRA": "1"})

    assert "VIRTUAL_ENV" not in env
    assert "PYTHONPATH" not in env
    assert env["AGENTDECK_MARKER"] == "kept"
    assert env["EXTRA"] == "1"
    assert env["COLORTERM"] == "truecolor"


def test_default_shell(monkeypatch) -> None:
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.setenv("SHELL", "/bin/bash")
    assert default_shell() == "/bin/bash"
    assert default_shell("/usr/bin/fish") == "/usr/bin/fish"

    monkeypatch.delenv("SHELL")
    assert default_shell() == "/bin/zsh"

    monkeypatch.setattr(sys, "platform", "win32")
    assert default_shell() == "powershell.exe"


@pytest.mark.skipif(
    sys.platform == "win32" or shutil.which("sh") is None, reason="requires a POSIX shell"
)
def test_real_pty_round_trip(tmp_path: Path) -> None:
    lock = threading.Lock()
    output = bytearray()
    exits: list[int] = []

    def on_output(session_id: str, data: bytes) -> None:
        with lock:
            output.extend(data)

    def captured() -> bytes:
        with lock:
            return bytes(output)

    agents = AgentRegistry(
        overrides={
            AgentKind.CLAUDE_CODE: AgentConfig(
                name="Echo", command="echo", args=["agentdeck-ready"]
            )
        }
    )
    supervisor = ProcessSupervisor(
        agents,
        on_output=on_output,
        on_exit=lambda _sid, code: exits.append(code),
        shell=shutil.which("sh"),
        settle_delay=0.1,
    )

    supervisor.spawn("real", tmp_path, AgentKind.CLAUDE_CODE)
    assert wait_for(lambda: b"agentdeck-ready" in captured(), timeout=10)

    supervisor.write("real", "echo second-line\r")
    assert wait_for(lambda: b"second-line" in captured(), timeout=10)

    supervisor.kill("real")
    assert wait_for(lambda: exits, timeout=10)
    assert "real" not in supervisor
