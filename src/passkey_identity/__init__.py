"""passkey-identity — passkey login with short-lived delegated session identities.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import passkey_identity
>>> passkey_identity.__version__
'0.1.0'

Quick start
-----------
::

    from passkey_identity import AuthenticationEngine, CallableAuthenticator, EngineConfig

    config = EngineConfig(authority_url="https://authority.example")
    engine = await AuthenticationEngine.create(
        config, authenticator=CallableAuthenticator(run_passkey_ceremony)
    )
    result = await engine.login("alice")
    signature = result.identity.sign(b"request-body")
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------
from passkey_identity.errors import (
    AuthenticatorDeclined,
    AuthorityUnavailable,
    ChannelNotReady,
    ConcurrentLoginRejected,
    CorruptStoredSession,
    DelegationExpired,
    DelegationUnavailable,
    InvalidChallengeShape,
    LoginRejected,
    MalformedDelegation,
    NoStoredSession,
    PasskeyIdentityError,
)

# ------------------------------------------------------------------
# Keys and delegation
# ------------------------------------------------------------------
from passkey_identity.keys.session_key import SessionKeyPair, SessionKeyProvider
from passkey_identity.delegation.chain import (
    Delegation,
    DelegationChain,
    SignedDelegation,
    build_chain,
)
from passkey_identity.delegation.identity import DelegatedIdentity, compose_identity

# ------------------------------------------------------------------
# Persistence
# ------------------------------------------------------------------
from passkey_identity.storage.backend import (
    FilesystemSessionStorage,
    MemorySessionStorage,
    SessionStorage,
)
from passkey_identity.storage.session_store import SESSION_STORAGE_KEY, SessionStore, StoredSession

# ------------------------------------------------------------------
# Remote authority and authenticator
# ------------------------------------------------------------------
from passkey_identity.authority.client import RemoteAuthorityClient, create_channel
from passkey_identity.authority.models import (
    BindingDetails,
    Challenge,
    DiscoverableChallenge,
    IdentifiedChallenge,
)
from passkey_identity.authority.transport import AuthorityTransport, HttpAuthorityTransport
from passkey_identity.authenticator import Authenticator, CallableAuthenticator

# ------------------------------------------------------------------
# Engine and configuration
# ------------------------------------------------------------------
from passkey_identity.config import EngineConfig, load_config
from passkey_identity.engine.machine import AuthenticationEngine, LoginResult
from passkey_identity.engine.state import EngineState, LoginStatus, PrepareStatus

__all__ = [
    # version
    "__version__",
    # errors
    "AuthenticatorDeclined",
    "AuthorityUnavailable",
    "ChannelNotReady",
    "ConcurrentLoginRejected",
    "CorruptStoredSession",
    "DelegationExpired",
    "DelegationUnavailable",
    "InvalidChallengeShape",
    "LoginRejected",
    "MalformedDelegation",
    "NoStoredSession",
    "PasskeyIdentityError",
    # keys and delegation
    "DelegatedIdentity",
    "Delegation",
    "DelegationChain",
    "SessionKeyPair",
    "SessionKeyProvider",
    "SignedDelegation",
    "build_chain",
    "compose_identity",
    # persistence
    "FilesystemSessionStorage",
    "MemorySessionStorage",
    "SESSION_STORAGE_KEY",
    "SessionStorage",
    "SessionStore",
    "StoredSession",
    # authority and authenticator
    "Authenticator",
    "AuthorityTransport",
    "BindingDetails",
    "CallableAuthenticator",
    "Challenge",
    "DiscoverableChallenge",
    "HttpAuthorityTransport",
    "IdentifiedChallenge",
    "RemoteAuthorityClient",
    "create_channel",
    # engine and configuration
    "AuthenticationEngine",
    "EngineConfig",
    "EngineState",
    "LoginResult",
    "LoginStatus",
    "PrepareStatus",
    "load_config",
]
