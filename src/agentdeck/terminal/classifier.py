"""Classify agent terminal output into coarse activity states.

The classifier is a heuristic over free-form terminal text, not a protocol
parser. It strips escape sequences, keeps a bounded tail of recent output and
evaluates an ordered rule table against each chunk. Only changes of
``(type, subtype, tool)`` are reported.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

# CSI (cursor, colour, private modes), OSC terminated by BEL, charset select, keypad modes.
ANSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07]*\x07|\x1b[()][AB012]|\x1b[=>]")

INPUT_PROMPT_RE = re.compile(r"^>\s*$", re.MULTILINE)
USER_PROMPT_RE = re.compile(r"^You:\s*$", re.MULTILINE)
PROMPT_MARKER = ">"

CONFIRMATION_PATTERNS = (
    re.compile(r"\(y/n\)", re.IGNORECASE),
    re.compile(r"Allow\?", re.IGNORECASE),
    re.compile(r"Press Enter to continue", re.IGNORECASE),
)

THINKING_PATTERNS = (
    re.compile(r"Thinking\.\.\.", re.IGNORECASE),
    re.compile(r"Reasoning\.\.\.", re.IGNORECASE),
)

# First match wins.
TOOL_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"Reading\s+(?:file\s+)?[\"']?([^\"'\n]+)[\"']?", re.IGNORECASE), "read"),
    (re.compile(r"Writing\s+(?:to\s+)?[\"']?([^\"'\n]+)[\"']?", re.IGNORECASE), "write"),
    (re.compile(r"Editing\s+[\"']?([^\"'\n]+)[\"']?", re.IGNORECASE), "edit"),
    (re.compile(r"Running\s+(?:command\s+)?[`\"']?([^`\"'\n]+)[`\"']?", re.IGNORECASE), "bash"),
    (re.compile(r"Bash\s*\(", re.IGNORECASE), "bash"),
    (re.compile(r"Searching|Grep|Glob", re.IGNORECASE), "search"),
)

DEFAULT_BUFFER_LIMIT = 2000


class StateType(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    WAITING_INPUT = "waiting_input"


class WaitingSubtype(str, Enum):
    PROMPT = "prompt"
    CONFIRMATION = "confirmation"


Candidate = tuple[StateType, WaitingSubtype | None, str | None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TerminalState:
    """A classified activity state; equality ignores the timestamp."""

    type: StateType
    subtype: WaitingSubtype | None = None
    tool: str | None = None
    timestamp: datetime = field(default_factory=_utcnow, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "subtype": self.subtype.value if self.subtype else None,
            "tool": self.tool,
            "timestamp": self.timestamp.isoformat(),
        }


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def _has_prompt_marker(chunk: str, buffer: str) -> bool:
    return bool(
        INPUT_PROMPT_RE.search(chunk)
        or USER_PROMPT_RE.search(chunk)
        or buffer.rstrip().endswith(PROMPT_MARKER)
    )


def _confirmation_rule(chunk: str, buffer: str) -> Candidate | None:
    if _has_prompt_marker(chunk, buffer) and any(
        pattern.search(buffer) for pattern in CONFIRMATION_PATTERNS
    ):
        return StateType.WAITING_INPUT, WaitingSubtype.CONFIRMATION, None
    return None


def _prompt_rule(chunk: str, buffer: str) -> Candidate | None:
    if _has_prompt_marker(chunk, buffer):
        return StateType.WAITING_INPUT, WaitingSubtype.PROMPT, None
    return None


def _thinking_rule(chunk: str, buffer: str) -> Candidate | None:
    if any(pattern.search(chunk) for pattern in THINKING_PATTERNS):
        return StateType.THINKING, None, None
    return None


def _tool_rule(chunk: str, buffer: str) -> Candidate | None:
    for pattern, label in TOOL_PATTERNS:
        if pattern.search(chunk):
            return StateType.TOOL_USE, None, label
    return None


Rule = Callable[[str, str], Candidate | None]

# Evaluated in order; later rules only apply when earlier ones do not match.
# Idle is never entered by a rule, only by reset().
RULES: tuple[tuple[str, Rule], ...] = (
    ("confirmation", _confirmation_rule),
    ("prompt", _prompt_rule),
    ("thinking", _thinking_rule),
    ("tool_use", _tool_rule),
)


class OutputClassifier:
    """Stateful classifier for one session's terminal output stream."""

    def __init__(
        self,
        *,
        buffer_limit: int = DEFAULT_BUFFER_LIMIT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._buffer_limit = buffer_limit
        self._clock = clock or _utcnow
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._last_tool: str | None = None
        self._current = TerminalState(StateType.IDLE, timestamp=self._clock())

    @property
    def current(self) -> TerminalState:
        return self._current

    @property
    def last_tool(self) -> str | None:
        return self._last_tool

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes | str) -> TerminalState | None:
        """Consume one output chunk; return the new state if it changed."""

        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text
        if len(self._buffer) > self._buffer_limit:
            self._buffer = self._buffer[-self._buffer_limit :]

        clean_chunk = strip_ansi(text)
        clean_buffer = strip_ansi(self._buffer)

        candidate = None
        for _name, rule in RULES:
            candidate = rule(clean_chunk, clean_buffer)
            if candidate is not None:
                break
        if candidate is None:
            return None

        state_type, subtype, tool = candidate
        if tool is not None:
            self._last_tool = tool
        new_state = TerminalState(state_type, subtype, tool, timestamp=self._clock())
        if new_state == self._current:
            return None
        self._current = new_state
        return new_state

    def reset(self) -> None:
        self._decoder.reset()
        self._buffer = ""
        self._last_tool = None
        self._current = TerminalState(StateType.IDLE, timestamp=self._clock())


__all__ = [
    "ANSI_RE",
    "DEFAULT_BUFFER_LIMIT",
    "OutputClassifier",
    "RULES",
    "StateType",
    "TerminalState",
    "WaitingSubtype",
    "strip_ansi",
]
