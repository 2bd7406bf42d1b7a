from __future__ import annotations

import queue
import threading
import time
from pathlib import Path
from typing import Callable

import git
import pexpect
import pytest


def wait_for(predicate: Callable[[], object], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return bool(predicate())


class FakePty:
    """In-memory stand-in for a pexpect child driven by the test."""

    def __init__(self, chunks: list[bytes] | None = None, *, exitstatus: int = 0) -> None:
        self._chunks: queue.Queue[bytes] = queue.Queue()
        for chunk in chunks or []:
            self._chunks.put(chunk)
        self._eof = threading.Event()
        self._final_exit = exitstatus
        self.sent: list[bytes] = []
        self.winsize: tuple[int, int] | None = None
        self.terminated = False
        self.closed = False
        self.exitstatus: int | None = None
        self.signalstatus: int | None = None

    def push(self, chunk: bytes) -> None:
        self._chunks.put(chunk)

    def finish(self) -> None:
        self._eof.set()

    def read_nonblocking(self, size: int = 1, timeout: float | None = -1) -> bytes:
        try:
            return self._chunks.get(timeout=0.01)
        except queue.Empty:
            pass
        if self._eof.is_set():
            raise pexpect.EOF("child exited")
        raise pexpect.TIMEOUT("no output")

    def send(self, s: bytes) -> int:
        if self.closed:
            raise OSError("pty closed")
        self.sent.append(s)
        return len(s)

    def setwinsize(self, rows: int, cols: int) -> None:
        if self.closed:
            raise OSError("pty closed")
        self.winsize = (rows, cols)

    def terminate(self, force: bool = False) -> bool:
        self.terminated = True
        self.signalstatus = 15
        self._eof.set()
        return True

    def close(self, force: bool = False) -> None:
        self.closed = True
        if self.exitstatus is None and self.signalstatus is None:
            self.exitstatus = self._final_exit


class FakeSpawner:
    """Records spawn calls and hands out queued (or fresh) FakePty objects."""

    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []
        self.children: list[FakePty] = []
        self.pending: list[FakePty] = []
        self.error: Exception | None = None

    def __call__(self, shell: str, cwd: Path, env: dict[str, str], dimensions: tuple[int, int]) -> FakePty:
        if self.error is not None:
            raise self.error
        self.calls.append({"shell": shell, "cwd": Path(cwd), "env": env, "dimensions": dimensions})
        child = self.pending.pop(0) if self.pending else FakePty()
        self.children.append(child)
        return child


@pytest.fixture
def fake_spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    repo_path = tmp_path / "repo"
    repo = git.Repo.init(repo_path, initial_branch="main")
    with repo.config_writer() as config:
        config.set_value("user", "name", "agentdeck tests")
        config.set_value("user", "email", "tests@agentdeck.invalid")
        config.set_value("commit", "gpgsign", "false")
    (repo_path / "README.md").write_text("hello\n", encoding="utf-8")
    repo.git.add("README.md")
    repo.git.commit("-m", "initial")
    repo.close()
    return repo_path
