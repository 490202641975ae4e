"""Delegation chains and delegated identities.

A remote authority issues a signed delegation from its root key to a
client's session key. :func:`build_chain` checks that the delegation was
issued to the key that asked for it, and :func:`compose_identity` pairs the
resulting chain with the session keypair.

Quick start
-----------
::

    from passkey_identity.delegation import build_chain, compose_identity

    chain = build_chain(signed_delegation, root_public_key, key.public_key_der)
    identity = compose_identity(key, chain)
    signature = identity.sign(b"request-body")
"""
from __future__ import annotations

from passkey_identity.delegation.chain import (
    Delegation,
    DelegationChain,
    SignedDelegation,
    build_chain,
)
from passkey_identity.delegation.identity import DelegatedIdentity, compose_identity

__all__ = [
    "DelegatedIdentity",
    "Delegation",
    "DelegationChain",
    "SignedDelegation",
    "build_chain",
    "compose_identity",
]
