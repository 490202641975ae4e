"""Remote authority client, transports, and wire models.

Quick start
-----------
::

    from passkey_identity.authority import HttpAuthorityTransport, RemoteAuthorityClient

    client = RemoteAuthorityClient(HttpAuthorityTransport("https://authority.example"))
    challenge = await client.prepare_challenge("alice")
"""
from __future__ import annotations

from passkey_identity.authority.client import RemoteAuthorityClient, create_channel
from passkey_identity.authority.models import (
    BindingDetails,
    Challenge,
    DiscoverableChallenge,
    IdentifiedChallenge,
)
from passkey_identity.authority.transport import AuthorityTransport, HttpAuthorityTransport

__all__ = [
    "AuthorityTransport",
    "BindingDetails",
    "Challenge",
    "DiscoverableChallenge",
    "HttpAuthorityTransport",
    "IdentifiedChallenge",
    "RemoteAuthorityClient",
    "create_channel",
]
