"""Outbound terminal events for the operator-facing transport."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Union

from .terminal import TerminalState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TerminalOutput:
    session_id: str
    data: bytes

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": "terminal.output",
            "session_id": self.session_id,
            "data": self.data.decode("utf-8", errors="replace"),
        }


@dataclass(frozen=True, slots=True)
class TerminalExit:
    session_id: str
    exit_code: int

    def to_dict(self) -> dict[str, Any]:
        return {"event": "terminal.exit", "session_id": self.session_id, "exit_code": self.exit_code}


@dataclass(frozen=True, slots=True)
class TerminalStateChange:
    session_id: str
    state: TerminalState

    def to_dict(self) -> dict[str, Any]:
        return {"event": "terminal.state", "session_id": self.session_id, **self.state.to_dict()}


TerminalEvent = Union[TerminalOutput, TerminalExit, TerminalStateChange]


class EventChannel:
    """Fire-and-forget queue between terminal reader threads and the transport.

    Publishing never blocks; when the queue is full the event is dropped.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[TerminalEvent] = queue.Queue(maxsize=maxsize)
        self._dropped = 0
        self._lock = threading.Lock()

    @property
    def dropped(self) -> int:
        return self._dropped

    def publish(self, event: TerminalEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.debug("Event dropped", extra={"session_id": event.session_id})
            return False
        return True

    def output(self, session_id: str, data: bytes) -> None:
        self.publish(TerminalOutput(session_id, data))

    def state(self, session_id: str, state: TerminalState) -> None:
        self.publish(TerminalStateChange(session_id, state))

    def exit(self, session_id: str, exit_code: int) -> None:
        self.publish(TerminalExit(session_id, exit_code))

    def drain(self, limit: int | None = None) -> list[TerminalEvent]:
        events: list[TerminalEvent] = []
        while limit is None or len(events) < limit:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return events

    def get(self, timeout: float | None = None) -> TerminalEvent | None:
        """Block for the next event; None on timeout."""

        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None


__all__ = [
    "EventChannel",
    "TerminalEvent",
    "TerminalExit",
    "TerminalOutput",
    "TerminalStateChange",
]
