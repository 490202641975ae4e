"""SessionStore — persists the (identifier, session key, chain) triple.

The whole session is written as one JSON record under a well-known key::

    {"identifier": "...", "sessionKey": [...], "delegationChain": {...}}

Loading does not check expiration. An expired but well-formed session is
returned as-is and rejected when it is first used to sign a request.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from passkey_identity.delegation.chain import DelegationChain
from passkey_identity.delegation.identity import DelegatedIdentity, compose_identity
from passkey_identity.errors import CorruptStoredSession, MalformedDelegation, NoStoredSession
from passkey_identity.keys.session_key import SessionKeyPair
from passkey_identity.storage.backend import MemorySessionStorage, SessionStorage

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY: str = "siwp-identity"

_REQUIRED_FIELDS: tuple[str, ...] = ("identifier", "sessionKey", "delegationChain")


@dataclass(frozen=True)
class StoredSession:
    """A session restored from storage.

    Parameters
    ----------
    identifier:
        The identifier the session was issued for.
    session_key:
        The persisted session keypair.
    chain:
        The persisted delegation chain.
    """

    identifier: str
    session_key: SessionKeyPair
    chain: DelegationChain

    @property
    def identity(self) -> DelegatedIdentity:
        """The delegated identity composed from the stored key and chain."""
        return compose_identity(self.session_key, self.chain)


class SessionStore:
    """Reads and writes the single persisted session record.

    Parameters
    ----------
    storage:
        Backend used for the raw read/write. Defaults to in-memory storage.
    key:
        Storage key the record is kept under.
    """

    def __init__(
        self,
        storage: SessionStorage | None = None,
        key: str = SESSION_STORAGE_KEY,
    ) -> None:
        self._storage = storage if storage is not None else MemorySessionStorage()
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def save(self, identifier: str, session_key: SessionKeyPair, chain: DelegationChain) -> None:
        """Write the session record, overwriting any previous one."""
        record = {
            "identifier": identifier,
            "sessionKey": session_key.to_json(),
            "delegationChain": chain.to_json(),
        }
        self._storage.set_item(self._key, json.dumps(record))
        logger.debug("Saved session for identifier=%r under key %r", identifier, self._key)

    def load(self) -> StoredSession:
        """Read and deserialize the session record.

        Raises
        ------
        NoStoredSession
            If no record is stored.
        CorruptStoredSession
            If the record cannot be read, is not valid JSON, is missing a
            field, holds key or chain material that cannot be deserialized,
            or pairs a session key with a chain issued to another key.
        """
        try:
            raw = self._storage.get_item(self._key)
        except (OSError, UnicodeDecodeError) as exc:
            raise CorruptStoredSession("Stored state is invalid.", detail=str(exc)) from exc
        if not raw:
            raise NoStoredSession("No stored identity found.")

        try:
            record = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptStoredSession("Stored state is invalid.", detail=str(exc)) from exc

        if not isinstance(record, dict):
            raise CorruptStoredSession("Stored state is invalid.", detail="record is not an object")
        missing = [name for name in _REQUIRED_FIELDS if not record.get(name)]
        if missing:
            raise CorruptStoredSession(
                "Stored state is invalid.", detail=f"missing fields: {', '.join(missing)}"
            )
        if not isinstance(record["identifier"], str):
            raise CorruptStoredSession("Stored state is invalid.", detail="identifier is not a string")

        try:
            session_key = SessionKeyPair.from_json(record["sessionKey"])
            chain = DelegationChain.from_json(record["delegationChain"])
        except (KeyError, TypeError, ValueError, MalformedDelegation) as exc:
            raise CorruptStoredSession("Stored state is invalid.", detail=str(exc)) from exc

        if chain.session_public_key != session_key.public_key_der:
            raise CorruptStoredSession(
                "Stored state is invalid.", detail="session key does not match delegation chain"
            )

        return StoredSession(identifier=record["identifier"], session_key=session_key, chain=chain)

    def clear(self) -> None:
        """Remove the session record. Safe to call when none exists."""
        self._storage.remove_item(self._key)


__all__ = ["SESSION_STORAGE_KEY", "SessionStore", "StoredSession"]
