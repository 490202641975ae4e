"""EngineState — immutable snapshot of the authentication engine.

The engine never mutates a snapshot in place. Every change goes through
:func:`merge_state`, which returns a new snapshot with the named fields
replaced and every other field carried over.
"""
from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from passkey_identity.delegation.chain import DelegationChain
from passkey_identity.delegation.identity import DelegatedIdentity
from passkey_identity.errors import PasskeyIdentityError


class PrepareStatus(str, Enum):
    """Status of the challenge-preparation step."""

    IDLE = "idle"
    PREPARING = "preparing"
    SUCCESS = "success"
    ERROR = "error"


class LoginStatus(str, Enum):
    """Status of the overall login attempt."""

    IDLE = "idle"
    LOGGING_IN = "logging-in"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class EngineState:
    """Read-only view of the engine.

    Parameters
    ----------
    is_initializing:
        True until the stored session has been restored or found missing.
    prepare_status:
        Status of the most recent challenge preparation.
    prepare_error:
        Error from the most recent failed preparation, if any.
    login_status:
        Status of the most recent login attempt.
    last_error:
        Error that ended the most recent failed login attempt, if any.
    current_identifier:
        Identifier of the active session.
    current_identity:
        The active delegated identity.
    current_chain:
        The delegation chain backing ``current_identity``.
    """

    is_initializing: bool = True
    prepare_status: PrepareStatus = PrepareStatus.IDLE
    prepare_error: Optional[PasskeyIdentityError] = None
    login_status: LoginStatus = LoginStatus.IDLE
    last_error: Optional[PasskeyIdentityError] = None
    current_identifier: Optional[str] = None
    current_identity: Optional[DelegatedIdentity] = None
    current_chain: Optional[DelegationChain] = None

    # ------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------

    @property
    def is_preparing_login(self) -> bool:
        return self.prepare_status is PrepareStatus.PREPARING

    @property
    def is_prepare_login_error(self) -> bool:
        return self.prepare_status is PrepareStatus.ERROR

    @property
    def is_prepare_login_success(self) -> bool:
        return self.prepare_status is PrepareStatus.SUCCESS

    @property
    def is_prepare_login_idle(self) -> bool:
        return self.prepare_status is PrepareStatus.IDLE

    @property
    def is_logging_in(self) -> bool:
        return self.login_status is LoginStatus.LOGGING_IN

    @property
    def is_login_error(self) -> bool:
        return self.login_status is LoginStatus.ERROR

    @property
    def is_login_success(self) -> bool:
        return self.login_status is LoginStatus.SUCCESS

    @property
    def is_login_idle(self) -> bool:
        return self.login_status is LoginStatus.IDLE

    def is_authenticated(self, now_ns: Optional[int] = None) -> bool:
        """Return True if an identity is held and its delegation has not expired."""
        if self.current_identity is None:
            return False
        return not self.current_identity.is_expired(
            time.time_ns() if now_ns is None else now_ns
        )


def merge_state(state: EngineState, **changes: Any) -> EngineState:
    """Return a copy of *state* with *changes* applied.

    Fields not named in *changes* are retained.

    Raises
    ------
    TypeError
        If *changes* names a field :class:`EngineState` does not have.
    """
    return dataclasses.replace(state, **changes)


INITIAL_STATE = EngineState()

__all__ = ["EngineState", "INITIAL_STATE", "LoginStatus", "PrepareStatus", "merge_state"]
