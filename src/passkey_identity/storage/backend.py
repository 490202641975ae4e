"""Session storage — abstract key/value interface and its implementations.

SessionStorage defines the minimal read/write primitive the persistence
adapter needs. MemorySessionStorage keeps records in a dictionary;
FilesystemSessionStorage persists each record as a text file under a
configurable base directory.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class SessionStorage(ABC):
    """Abstract base class for session storage backends."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the value stored under *key*, or None if absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove *key*. Removing an absent key is a no-op."""


class MemorySessionStorage(SessionStorage):
    """In-process storage. Records do not survive a restart."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class FilesystemSessionStorage(SessionStorage):
    """Filesystem-backed storage.

    Each key is stored as ``<base_dir>/<key>.json``. Writes go to a
    temporary sibling file first and are moved into place, so a reader
    never sees a half-written record.

    Parameters
    ----------
    base_dir:
        Root directory for stored records. Created if missing.
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _path(self, key: str) -> Path:
        """Return the file path for a given key."""
        safe_name = key.replace("/", "_").replace("\\", "_")
        return self._base_dir / f"{safe_name}.json"


__all__ = ["FilesystemSessionStorage", "MemorySessionStorage", "SessionStorage"]
