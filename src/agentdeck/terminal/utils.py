"""Utility helpers for spawning agent terminals."""

from __future__ import annotations

import os
import sys
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}

_TERMINAL_VARS = {
    "TERM": "xterm-256color",
    "COLORTERM": "truecolor",
}


def terminal_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment for an interactive agent shell."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env.update(_TERMINAL_VARS)
    if additional:
        env.update(additional)
    return env


def default_shell(explicit: str | None = None) -> str:
    """Pick the interactive shell for the host OS."""

    if explicit:
        return explicit
    if sys.platform == "win32":
        return "powershell.exe"
    return os.environ.get("SHELL") or "/bin/zsh"
