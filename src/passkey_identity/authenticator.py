"""Authenticator boundary — turns a challenge payload into a signed assertion.

The engine hands the authority's challenge payload (a JSON-encoded
public-key credential request) to an :class:`Authenticator` and forwards
whatever assertion string comes back. The ceremony itself lives outside
this package.
"""
from __future__ import annotations

import abc
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Union

from passkey_identity.errors import AuthenticatorDeclined

logger = logging.getLogger(__name__)

AssertionCallback = Callable[[str], Union[str, Awaitable[str]]]


class Authenticator(metaclass=abc.ABCMeta):
    """Abstract passkey authenticator."""

    @abc.abstractmethod
    async def get_assertion(self, challenge_payload: str) -> str:
        """Run the ceremony for *challenge_payload* and return the assertion.

        Raises
        ------
        AuthenticatorDeclined
            If the ceremony is cancelled or fails.
        """
        raise NotImplementedError


class CallableAuthenticator(Authenticator):
    """Adapts a plain or async callable to the :class:`Authenticator` contract.

    Any exception raised by the callable other than
    :class:`AuthenticatorDeclined` is wrapped into one, as is an empty
    result.
    """

    def __init__(self, callback: AssertionCallback) -> None:
        self._callback = callback

    async def get_assertion(self, challenge_payload: str) -> str:
        try:
            result = self._callback(challenge_payload)
            if inspect.isawaitable(result):
                result = await result
        except AuthenticatorDeclined:
            raise
        except Exception as exc:
            logger.warning("Authenticator ceremony failed: %s", exc)
            raise AuthenticatorDeclined("Webauthn fail", detail=str(exc)) from exc
        if not isinstance(result, str) or not result:
            raise AuthenticatorDeclined("Webauthn fail", detail="authenticator returned no assertion")
        return result


def request_options(challenge_payload: str) -> dict[str, Any]:
    """Extract the ``publicKey`` request options from a challenge payload.

    Payloads that are not a JSON object, or have no ``publicKey`` member,
    yield the decoded object itself (or an empty dict).
    """
    try:
        decoded = json.loads(challenge_payload)
    except json.JSONDecodeError:
        return {}
    if not isinstance(decoded, dict):
        return {}
    options = decoded.get("publicKey", decoded)
    return options if isinstance(options, dict) else {}


__all__ = ["AssertionCallback", "Authenticator", "CallableAuthenticator", "request_options"]
