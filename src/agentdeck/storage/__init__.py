"""Session persistence exports."""

from .json_store import PersistenceError, SessionStore, atomic_write_text
from .models import Session, StoredData

__all__ = ["PersistenceError", "Session", "SessionStore", "StoredData", "atomic_write_text"]
