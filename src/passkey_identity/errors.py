"""Exception hierarchy for passkey-identity.

Every error raised by the engine and its collaborators derives from
:class:`PasskeyIdentityError`. Errors carry a short user-facing ``message``
and an optional ``detail`` holding the verbatim text reported by the remote
authority or the root cause.
"""
from __future__ import annotations


class PasskeyIdentityError(Exception):
    """Base class for all passkey-identity errors.

    Parameters
    ----------
    message:
        Short human-readable description.
    detail:
        Verbatim root-cause text (e.g. an authority ``Err`` string).
    """

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def with_message(self, message: str) -> "PasskeyIdentityError":
        """Return a copy of this error with *message*, chained to ``self``.

        The copy keeps this error's class so callers can still branch on the
        failure kind, and keeps the original message as ``detail`` when no
        detail was recorded.
        """
        error = type(self)(message, detail=self.detail or self.message)
        error.__cause__ = self
        return error

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, detail={self.detail!r})"


class ChannelNotReady(PasskeyIdentityError):
    """Raised when the channel to the remote authority is not configured."""


class ConcurrentLoginRejected(PasskeyIdentityError):
    """Raised when a login is requested while another of the same kind is in flight."""


class AuthorityUnavailable(PasskeyIdentityError):
    """Raised on transport failure talking to the remote authority."""


class InvalidChallengeShape(PasskeyIdentityError):
    """Raised when a prepare response matches neither challenge shape."""


class LoginRejected(PasskeyIdentityError):
    """Raised when the authority refuses a submitted assertion."""


class DelegationUnavailable(PasskeyIdentityError):
    """Raised when the authority refuses to issue a delegation."""


class MalformedDelegation(PasskeyIdentityError):
    """Raised when a delegation fails the client-side integrity checks."""


class NoStoredSession(PasskeyIdentityError):
    """Raised when no persisted session exists."""


class CorruptStoredSession(PasskeyIdentityError):
    """Raised when a persisted session exists but cannot be deserialized."""


class AuthenticatorDeclined(PasskeyIdentityError):
    """Raised when the authenticator ceremony is cancelled or fails."""


class DelegationExpired(PasskeyIdentityError):
    """Raised when an expired delegated identity is used to sign a request."""


__all__ = [
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
]
