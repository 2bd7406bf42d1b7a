"""Terminal supervision and output classification."""

from .classifier import (
    OutputClassifier,
    StateType,
    TerminalState,
    WaitingSubtype,
    strip_ansi,
)
from .supervisor import ProcessSupervisor, PtyProcess, TerminalProcess, TerminalSpawnError
from .utils import default_shell, terminal_environment

__all__ = [
    "OutputClassifier",
    "ProcessSupervisor",
    "PtyProcess",
    "StateType",
    "TerminalProcess",
    "TerminalSpawnError",
    "TerminalState",
    "WaitingSubtype",
    "default_shell",
    "strip_ansi",
    "terminal_environment",
]
