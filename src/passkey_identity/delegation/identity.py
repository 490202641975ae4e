"""DelegatedIdentity — a session keypair vouched for by a delegation chain."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from passkey_identity.delegation.chain import DelegationChain
from passkey_identity.errors import DelegationExpired
from passkey_identity.keys.session_key import SessionKeyPair


@dataclass(frozen=True)
class DelegatedIdentity:
    """Composition of a session keypair and the chain that authorizes it.

    The session key is the only key able to sign requests; the chain is
    the authority's proof that the key may act for ``public_key`` until
    ``expiration``.

    Parameters
    ----------
    session_key:
        The ephemeral keypair generated for the login attempt.
    chain:
        The validated delegation chain issued for that keypair.
    """

    session_key: SessionKeyPair
    chain: DelegationChain

    @property
    def public_key(self) -> bytes:
        """The root public key this identity acts on behalf of."""
        return self.chain.public_key

    @property
    def expiration(self) -> int:
        """Effective expiry in nanoseconds since the Unix epoch."""
        return self.chain.expiration

    def is_expired(self, now_ns: Optional[int] = None) -> bool:
        """Return True if the delegation has expired at *now_ns* (default: now)."""
        reference = time.time_ns() if now_ns is None else now_ns
        return reference >= self.expiration

    def ensure_valid(self, now_ns: Optional[int] = None) -> None:
        """Raise :class:`DelegationExpired` if the delegation has expired.

        Stored sessions are not checked when loaded; this is called at the
        first authenticated use instead.
        """
        if self.is_expired(now_ns):
            raise DelegationExpired(
                "Delegated identity has expired. Log in again.",
                detail=f"expired at {self.expiration}",
            )

    def sign(self, data: bytes) -> bytes:
        """Sign *data* with the session key."""
        return self.session_key.sign(data)


def compose_identity(session_key: SessionKeyPair, chain: DelegationChain) -> DelegatedIdentity:
    """Compose a :class:`DelegatedIdentity` from a keypair and a validated chain."""
    return DelegatedIdentity(session_key=session_key, chain=chain)


__all__ = ["DelegatedIdentity", "compose_identity"]
