"""Ephemeral session keys.

A new :class:`SessionKeyPair` is generated for every login attempt. The
pair is the only key able to sign requests on behalf of the delegated
identity.
"""
from __future__ import annotations

from passkey_identity.keys.session_key import SessionKeyPair, SessionKeyProvider

__all__ = ["SessionKeyPair", "SessionKeyProvider"]
