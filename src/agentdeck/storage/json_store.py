"""JSON file persistence for sessions and reviewed files."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from .models import Session, StoredData

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised internally when the store cannot be read or written."""


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write ``content`` to a temp file next to ``path`` and rename it into place."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


class SessionStore:
    """Persist session records and per-session reviewed file paths.

    Load and save failures are logged and never raised: a broken file loads
    as an empty store, and a failed save keeps the in-memory state.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._last_error: str | None = None
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def _read(self) -> StoredData:
        if not self._path.exists():
            return StoredData()
        try:
            return StoredData.model_validate(json.loads(self._path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Failed to load {self._path}: {exc}") from exc

    def _write(self) -> None:
        try:
            atomic_write_text(self._path, self._data.model_dump_json(indent=2))
        except OSError as exc:
            raise PersistenceError(f"Failed to save {self._path}: {exc}") from exc

    def _load(self) -> StoredData:
        try:
            data = self._read()
        except PersistenceError as exc:
            self._last_error = str(exc)
            logger.warning("Session store unreadable; starting empty", extra={"error": str(exc)})
            return StoredData()
        self._last_error = None
        return data

    def _save(self) -> None:
        try:
            self._write()
        except PersistenceError as exc:
            self._last_error = str(exc)
            logger.warning("Session store not saved", extra={"error": str(exc)})
            return
        self._last_error = None

    def sessions(self) -> list[Session]:
        with self._lock:
            return [session.model_copy() for session in self._data.sessions]

    def add_session(self, session: Session) -> None:
        with self._lock:
            self._data.sessions = [s for s in self._data.sessions if s.id != session.id]
            self._data.sessions.append(session.model_copy())
            self._save()

    def remove_session(self, session_id: str) -> None:
        with self._lock:
            self._data.sessions = [s for s in self._data.sessions if s.id != session_id]
            self._data.reviewed_files.pop(session_id, None)
            self._save()

    def update_session(self, session_id: str, **updates: Any) -> Session | None:
        with self._lock:
            for index, session in enumerate(self._data.sessions):
                if session.id == session_id:
                    merged = Session.model_validate({**session.model_dump(), **updates})
                    self._data.sessions[index] = merged
                    self._save()
                    return merged.model_copy()
        return None

    def reviewed_files(self, session_id: str) -> list[str]:
        with self._lock:
            return list(self._data.reviewed_files.get(session_id, []))

    def set_reviewed_files(self, session_id: str, files: list[str]) -> None:
        with self._lock:
            self._data.reviewed_files[session_id] = list(dict.fromkeys(files))
            self._save()

    def add_reviewed_file(self, session_id: str, file_path: str) -> None:
        with self._lock:
            reviewed = self._data.reviewed_files.setdefault(session_id, [])
            if file_path not in reviewed:
                reviewed.append(file_path)
                self._save()

    def remove_reviewed_file(self, session_id: str, file_path: str) -> None:
        with self._lock:
            reviewed = self._data.reviewed_files.get(session_id)
            if reviewed is not None and file_path in reviewed:
                reviewed.remove(file_path)
                self._save()

    def clear_reviewed_files(self, session_id: str) -> None:
        with self._lock:
            if self._data.reviewed_files.pop(session_id, None) is not None:
                self._save()


__all__ = ["PersistenceError", "SessionStore", "atomic_write_text"]
