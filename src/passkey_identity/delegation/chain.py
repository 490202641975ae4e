"""DelegationChain — signed delegations linking a session key to a root key.

A chain is an ordered, non-empty sequence of signed delegations. The first
link delegates from the authority root key (``public_key``) to the session
public key requested by the client. Signatures are produced by the remote
authority and are carried opaquely; the client checks only the structural
and key-binding invariants it can verify locally.

JSON layout
-----------
::

    {
      "delegations": [
        {
          "delegation": {"pubkey": "<hex>", "expiration": "<hex>", "targets": ["..."]},
          "signature": "<hex>"
        }
      ],
      "publicKey": "<hex>"
    }
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from passkey_identity.errors import MalformedDelegation


@dataclass(frozen=True)
class Delegation:
    """A statement that *pubkey* may act for the root until *expiration*.

    Parameters
    ----------
    pubkey:
        DER-encoded public key receiving the delegation.
    expiration:
        Expiry as nanoseconds since the Unix epoch.
    targets:
        Optional scoping targets. None means unrestricted.
    """

    pubkey: bytes
    expiration: int
    targets: Optional[tuple[str, ...]] = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "pubkey": self.pubkey.hex(),
            "expiration": format(self.expiration, "x"),
        }
        if self.targets is not None:
            data["targets"] = list(self.targets)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Delegation":
        targets = data.get("targets")
        return cls(
            pubkey=bytes.fromhex(str(data["pubkey"])),
            expiration=_parse_expiration(data["expiration"]),
            targets=tuple(str(t) for t in targets) if targets is not None else None,
        )


@dataclass(frozen=True)
class SignedDelegation:
    """A :class:`Delegation` together with the authority's signature."""

    delegation: Delegation
    signature: bytes

    def to_dict(self) -> dict[str, object]:
        return {
            "delegation": self.delegation.to_dict(),
            "signature": self.signature.hex(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "SignedDelegation":
        delegation = data["delegation"]
        if not isinstance(delegation, dict):
            raise ValueError("Signed delegation is missing its delegation body.")
        return cls(
            delegation=Delegation.from_dict(delegation),
            signature=bytes.fromhex(str(data["signature"])),
        )


@dataclass(frozen=True)
class DelegationChain:
    """An ordered, non-empty sequence of signed delegations.

    Use :meth:`from_delegations` or :func:`build_chain` rather than the
    constructor so the chain invariants are checked.

    Parameters
    ----------
    delegations:
        Signed delegations ordered from the root outward.
    public_key:
        DER-encoded root public key the chain is anchored to.
    """

    delegations: tuple[SignedDelegation, ...]
    public_key: bytes

    @classmethod
    def from_delegations(
        cls, delegations: Iterable[SignedDelegation], public_key: bytes
    ) -> "DelegationChain":
        """Build a chain, rejecting empty sequences and empty root keys.

        Raises
        ------
        MalformedDelegation
            If *delegations* is empty or *public_key* is empty.
        """
        links = tuple(delegations)
        if not links:
            raise MalformedDelegation("Delegation chain must contain at least one delegation.")
        if not public_key:
            raise MalformedDelegation("Delegation chain has no root public key.")
        return cls(delegations=links, public_key=bytes(public_key))

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    @property
    def expiration(self) -> int:
        """Effective expiry: the earliest expiration along the chain."""
        return min(link.delegation.expiration for link in self.delegations)

    @property
    def session_public_key(self) -> bytes:
        """The public key the outermost delegation is issued to."""
        return self.delegations[-1].delegation.pubkey

    def __len__(self) -> int:
        return len(self.delegations)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_json(self) -> dict[str, object]:
        """Serialize to the JSON-compatible layout described in the module docstring."""
        return {
            "delegations": [link.to_dict() for link in self.delegations],
            "publicKey": self.public_key.hex(),
        }

    @classmethod
    def from_json(cls, data: object) -> "DelegationChain":
        """Reconstruct a chain from :meth:`to_json` output.

        Raises
        ------
        ValueError
            If the structure or hex encoding is invalid.
        KeyError
            If a delegation is missing a required field.
        MalformedDelegation
            If the chain is empty or has no root key.
        """
        if not isinstance(data, dict):
            raise ValueError("Delegation chain must be a JSON object.")
        raw_links = data.get("delegations")
        if not isinstance(raw_links, list):
            raise ValueError("Delegation chain is missing its delegations list.")
        links = []
        for raw in raw_links:
            if not isinstance(raw, dict):
                raise ValueError("Each delegation must be a JSON object.")
            links.append(SignedDelegation.from_dict(raw))
        return cls.from_delegations(links, bytes.fromhex(str(data.get("publicKey", ""))))


def build_chain(
    signed_delegation: SignedDelegation,
    root_public_key: bytes,
    session_public_key: bytes,
) -> DelegationChain:
    """Wrap a single signed delegation into a chain rooted at *root_public_key*.

    Parameters
    ----------
    signed_delegation:
        The delegation returned by the remote authority.
    root_public_key:
        The authority-side root key from the binding details.
    session_public_key:
        The DER-encoded session key that requested the delegation.

    Raises
    ------
    MalformedDelegation
        If the delegation targets a different key than *session_public_key*,
        carries no signature, or *root_public_key* is empty.
    """
    if signed_delegation.delegation.pubkey != session_public_key:
        raise MalformedDelegation(
            "Delegation public key does not match the requesting session key.",
            detail=(
                f"expected {session_public_key.hex()}, "
                f"got {signed_delegation.delegation.pubkey.hex()}"
            ),
        )
    if not signed_delegation.signature:
        raise MalformedDelegation("Delegation carries no signature.")
    return DelegationChain.from_delegations([signed_delegation], root_public_key)


def _parse_expiration(value: object) -> int:
    if isinstance(value, bool):
        raise ValueError("Delegation expiration must be a hex string or integer.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16)
    raise ValueError("Delegation expiration must be a hex string or integer.")


__all__ = [
    "Delegation",
    "DelegationChain",
    "SignedDelegation",
    "build_chain",
]
