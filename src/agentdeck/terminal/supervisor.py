"""Pseudo-terminal supervision for agent sessions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Protocol

import pexpect

from ..agents import AgentKind, AgentRegistry
from .classifier import OutputClassifier, TerminalState
from .utils import default_shell, terminal_environment

logger = logging.getLogger(__name__)

DEFAULT_COLS = 120
DEFAULT_ROWS = 30
DEFAULT_SETTLE_DELAY = 0.5
READ_SIZE = 4096
READ_TIMEOUT = 0.2
JOIN_TIMEOUT = 5.0

OutputSink = Callable[[str, bytes], None]
StateSink = Callable[[str, TerminalState], None]
ExitSink = Callable[[str, int], None]


class PtyProcess(Protocol):
    """Subset of ``pexpect.spawn`` used by the supervisor."""

    def read_nonblocking(self, size: int = ..., timeout: float | None = ...) -> bytes:
        ...

    def send(self, s: bytes) -> int:
        ...

    def setwinsize(self, rows: int, cols: int) -> None:
        ...

    def terminate(self, force: bool = ...) -> bool:
        ...

    def close(self, force: bool = ...) -> None:
        ...


Spawner = Callable[[str, Path, dict[str, str], tuple[int, int]], PtyProcess]


class TerminalSpawnError(RuntimeError):
    """Raised when the session shell cannot be started."""


def _pexpect_spawner(
    shell: str, cwd: Path, env: dict[str, str], dimensions: tuple[int, int]
) -> PtyProcess:
    return pexpect.spawn(shell, [], cwd=str(cwd), env=env, dimensions=dimensions)


def _exit_code(process: Any) -> int:
    signal_status = getattr(process, "signalstatus", None)
    if signal_status:
        return -int(signal_status)
    exit_status = getattr(process, "exitstatus", None)
    return int(exit_status) if exit_status is not None else -1


@dataclass(eq=False)
class TerminalProcess:
    """One live shell bound to a session. Owned by the supervisor registry."""

    session_id: str
    process: PtyProcess
    cols: int
    rows: int
    stopping: threading.Event = field(default_factory=threading.Event)
    reader: threading.Thread | None = None
    launch_timer: threading.Timer | None = None
    displaced: bool = False
    _classifier: OutputClassifier | None = None

    @property
    def classifier(self) -> OutputClassifier:
        if self._classifier is None:
            self._classifier = OutputClassifier()
        return self._classifier

    @property
    def state(self) -> TerminalState:
        return self.classifier.current

    @property
    def is_open(self) -> bool:
        return not self.stopping.is_set()

    def release_classifier(self) -> None:
        if self._classifier is not None:
            self._classifier.reset()
            self._classifier = None

    def stop(self) -> None:
        self.stopping.set()
        if self.launch_timer is not None:
            self.launch_timer.cancel()


class ProcessSupervisor:
    """Own exactly one interactive shell per session id.

    Every output chunk is handed to ``on_output`` and then to the session's
    classifier (``on_state`` fires on transitions) before the next chunk is
    read. ``on_exit`` fires once per process after its registry entry has been
    removed. Spawning over a live session replaces the old process; the
    replaced process exits silently so ``on_exit`` only ever reports the end of
    the session.
    """

    def __init__(
        self,
        agents: AgentRegistry,
        *,
        on_output: OutputSink | None = None,
        on_state: StateSink | None = None,
        on_exit: ExitSink | None = None,
        shell: str | None = None,
        cols: int = DEFAULT_COLS,
        rows: int = DEFAULT_ROWS,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        spawner: Spawner | None = None,
    ) -> None:
        self._agents = agents
        self._on_output = on_output or (lambda _sid, _data: None)
        self._on_state = on_state or (lambda _sid, _state: None)
        self._on_exit = on_exit or (lambda _sid, _code: None)
        self._shell = shell
        self._cols = cols
        self._rows = rows
        self._settle_delay = settle_delay
        self._spawner = spawner or _pexpect_spawner
        self._terminals: dict[str, TerminalProcess] = {}
        self._lock = threading.Lock()

    def spawn(self, session_id: str, working_dir: str | Path, agent: AgentKind | str) -> None:
        config = self._agents.require_available(agent)
        shell = default_shell(self._shell)

        try:
            process = self._spawner(
                shell, Path(working_dir), terminal_environment(), (self._rows, self._cols)
            )
        except (pexpect.ExceptionPexpect, OSError) as exc:
            raise TerminalSpawnError(f"Could not start {shell} in {working_dir}: {exc}") from exc

        terminal = TerminalProcess(
            session_id=session_id,
            process=process,
            cols=self._cols,
            rows=self._rows,
            _classifier=OutputClassifier(),
        )
        with self._lock:
            displaced = self._terminals.get(session_id)
            if displaced is not None:
                displaced.displaced = True
            self._terminals[session_id] = terminal
        if displaced is not None:
            logger.warning("Replacing live terminal", extra={"session_id": session_id})
            self._terminate(displaced)

        terminal.reader = threading.Thread(
            target=self._read_loop,
            args=(terminal,),
            name=f"agentdeck-pty-{session_id}",
            daemon=True,
        )
        terminal.reader.start()

        terminal.launch_timer = threading.Timer(
            self._settle_delay, self._launch_agent, args=(terminal, config.launch_line())
        )
        terminal.launch_timer.daemon = True
        terminal.launch_timer.start()

        logger.info(
            "Spawned terminal",
            extra={
                "session_id": session_id,
                "shell": shell,
                "cwd": str(working_dir),
                "agent": config.name,
            },
        )

    def write(self, session_id: str, data: bytes | str) -> None:
        terminal = self._lookup(session_id)
        if terminal is None:
            return
        payload = data.encode("utf-8") if isinstance(data, str) else data
        try:
            terminal.process.send(payload)
        except OSError as exc:
            logger.debug(
                "Write to exited terminal ignored",
                extra={"session_id": session_id, "error": str(exc)},
            )

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        terminal = self._lookup(session_id)
        if terminal is None:
            return
        try:
            terminal.process.setwinsize(rows, cols)
        except OSError as exc:
            logger.debug(
                "Resize of exited terminal ignored",
                extra={"session_id": session_id, "error": str(exc)},
            )
            return
        terminal.cols, terminal.rows = cols, rows

    def kill(self, session_id: str) -> None:
        with self._lock:
            terminal = self._terminals.pop(session_id, None)
        if terminal is not None:
            self._terminate(terminal)

    def kill_all(self) -> None:
        for session_id in self.session_ids():
            self.kill(session_id)

    def state(self, session_id: str) -> TerminalState | None:
        terminal = self._lookup(session_id)
        return terminal.state if terminal is not None else None

    def geometry(self, session_id: str) -> tuple[int, int] | None:
        terminal = self._lookup(session_id)
        return (terminal.cols, terminal.rows) if terminal is not None else None

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._terminals)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._terminals

    def _lookup(self, session_id: str) -> TerminalProcess | None:
        with self._lock:
            terminal = self._terminals.get(session_id)
        if terminal is None or not terminal.is_open:
            return None
        return terminal

    def _terminate(self, terminal: TerminalProcess) -> None:
        terminal.stop()
        try:
            terminal.process.terminate(force=True)
        except (pexpect.ExceptionPexpect, OSError) as exc:
            logger.debug(
                "Terminate failed", extra={"session_id": terminal.session_id, "error": str(exc)}
            )
        reader = terminal.reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(JOIN_TIMEOUT)

    def _launch_agent(self, terminal: TerminalProcess, line: str) -> None:
        if not terminal.is_open:
            return
        try:
            terminal.process.send(line.encode("utf-8"))
        except OSError as exc:
            logger.debug(
                "Agent launch skipped", extra={"session_id": terminal.session_id, "error": str(exc)}
            )

    def _read_loop(self, terminal: TerminalProcess) -> None:
        while not terminal.stopping.is_set():
            try:
                chunk = terminal.process.read_nonblocking(READ_SIZE, timeout=READ_TIMEOUT)
            except pexpect.TIMEOUT:
                continue
            except (pexpect.EOF, OSError):
                break
            if chunk:
                self._deliver(terminal, chunk)
        self._finish(terminal)

    def _deliver(self, terminal: TerminalProcess, chunk: bytes) -> None:
        session_id = terminal.session_id
        try:
            self._on_output(session_id, chunk)
            state = terminal.classifier.feed(chunk)
            if state is not None:
                self._on_state(session_id, state)
        except Exception:
            logger.exception("Output delivery failed", extra={"session_id": session_id})

    def _finish(self, terminal: TerminalProcess) -> None:
        session_id = terminal.session_id
        terminal.stop()
        try:
            terminal.process.close(force=True)
        except (pexpect.ExceptionPexpect, OSError) as exc:
            logger.debug("Close failed", extra={"session_id": session_id, "error": str(exc)})
        exit_code = _exit_code(terminal.process)

        with self._lock:
            if self._terminals.get(session_id) is terminal:
                del self._terminals[session_id]
        terminal.release_classifier()

        if terminal.displaced:
            logger.debug(
                "Replaced terminal exited",
                extra={"session_id": session_id, "exit_code": exit_code},
            )
            return

        logger.info("Terminal exited", extra={"session_id": session_id, "exit_code": exit_code})
        try:
            self._on_exit(session_id, exit_code)
        except Exception:
            logger.exception("Exit delivery failed", extra={"session_id": session_id})


__all__ = [
    "ProcessSupervisor",
    "PtyProcess",
    "TerminalProcess",
    "TerminalSpawnError",
]
