"""Authentication state machine.

Quick start
-----------
::

    from passkey_identity.engine import AuthenticationEngine

    engine = await AuthenticationEngine.create(config, authenticator=authenticator)
    result = await engine.login()          # discoverable login
    assert engine.state.is_login_success
"""
from __future__ import annotations

from passkey_identity.engine.machine import AttemptKind, AuthenticationEngine, LoginResult
from passkey_identity.engine.state import (
    INITIAL_STATE,
    EngineState,
    LoginStatus,
    PrepareStatus,
    merge_state,
)

__all__ = [
    "AttemptKind",
    "AuthenticationEngine",
    "EngineState",
    "INITIAL_STATE",
    "LoginResult",
    "LoginStatus",
    "PrepareStatus",
    "merge_state",
]
