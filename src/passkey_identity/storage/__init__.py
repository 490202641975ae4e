"""Session persistence.

Quick start
-----------
::

    from pathlib import Path
    from passkey_identity.storage import FilesystemSessionStorage, SessionStore

    store = SessionStore(FilesystemSessionStorage(Path("~/.passkey-identity").expanduser()))
    store.save("alice", session_key, chain)
    restored = store.load()
"""
from __future__ import annotations

from passkey_identity.storage.backend import (
    FilesystemSessionStorage,
    MemorySessionStorage,
    SessionStorage,
)
from passkey_identity.storage.session_store import (
    SESSION_STORAGE_KEY,
    SessionStore,
    StoredSession,
)

__all__ = [
    "FilesystemSessionStorage",
    "MemorySessionStorage",
    "SESSION_STORAGE_KEY",
    "SessionStorage",
    "SessionStore",
    "StoredSession",
]
