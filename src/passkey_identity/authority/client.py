"""RemoteAuthorityClient — the three protocol round trips against the authority.

Each operation is a single call on an :class:`AuthorityTransport`. Results
come back as ``{"Ok": T} | {"Err": str}`` envelopes and are translated into
the local error taxonomy here; no local state is mutated.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from passkey_identity.authority.models import (
    BindingDetails,
    Challenge,
    DiscoverableChallenge,
    IdentifiedChallenge,
    LoginOkResponse,
    ResultEnvelope,
    WireSignedDelegation,
)
from passkey_identity.authority.transport import AuthorityTransport, HttpAuthorityTransport
from passkey_identity.config import EngineConfig
from passkey_identity.delegation.chain import SignedDelegation
from passkey_identity.delegation.identity import DelegatedIdentity
from passkey_identity.errors import (
    DelegationUnavailable,
    InvalidChallengeShape,
    LoginRejected,
    PasskeyIdentityError,
)

logger = logging.getLogger(__name__)

_NANOS_PER_MILLI: int = 1_000_000


class RemoteAuthorityClient:
    """Client for the remote authority's login protocol.

    Parameters
    ----------
    transport:
        Transport used for every call. Bind it to a delegated identity to
        obtain an authenticated channel.
    """

    def __init__(self, transport: AuthorityTransport) -> None:
        self._transport = transport

    @property
    def transport(self) -> AuthorityTransport:
        return self._transport

    # ------------------------------------------------------------------
    # Protocol operations
    # ------------------------------------------------------------------

    async def prepare_challenge(self, identifier: Optional[str] = None) -> Challenge:
        """Request a challenge for the authenticator.

        With an *identifier* the authority returns a bare payload
        (identified mode). Without one it returns ``[payload, auth_state]``
        (discoverable mode).

        Raises
        ------
        InvalidChallengeShape
            If the response matches neither expected shape.
        LoginRejected
            If the authority answers with an ``Err`` envelope.
        AuthorityUnavailable
            On transport failure.
        """
        if identifier is not None:
            raw = await self._transport.call("siwp_prepare_login_username", [identifier])
        else:
            raw = await self._transport.call("siwp_prepare_login", [])

        if isinstance(raw, dict):
            raw = self._unwrap(raw, LoginRejected, "Unable to prepare login.")

        if isinstance(raw, list):
            if len(raw) == 2 and all(isinstance(part, str) and part for part in raw):
                return DiscoverableChallenge(payload=raw[0], auth_state=raw[1])
        elif isinstance(raw, str) and raw and identifier is not None:
            return IdentifiedChallenge(payload=raw)

        raise InvalidChallengeShape(
            "Invalid prepare response.", detail=f"unexpected response {raw!r}"
        )

    async def submit_assertion(
        self,
        assertion: str,
        session_public_key: bytes,
        auth_state: Optional[str] = None,
        identifier: Optional[str] = None,
        expiration_hint_ms: Optional[int] = None,
    ) -> BindingDetails:
        """Submit an authenticator assertion bound to *session_public_key*.

        An *identifier* selects ``siwp_login_username``; otherwise
        *auth_state* selects the discoverable ``siwp_login`` variant.

        Raises
        ------
        ValueError
            If neither *identifier* nor *auth_state* is given.
        LoginRejected
            If the authority refuses the assertion.
        AuthorityUnavailable
            On transport failure.
        """
        expiration = (
            expiration_hint_ms * _NANOS_PER_MILLI if expiration_hint_ms else None
        )
        if identifier is not None:
            raw = await self._transport.call(
                "siwp_login_username",
                [assertion, identifier, session_public_key.hex(), expiration],
            )
        elif auth_state:
            raw = await self._transport.call(
                "siwp_login",
                [assertion, auth_state, session_public_key.hex(), expiration],
            )
        else:
            raise ValueError("submit_assertion requires an identifier or an auth_state.")

        body = self._unwrap(raw, LoginRejected, "Unable to login.")
        try:
            return LoginOkResponse.model_validate(body).to_binding()
        except ValidationError as exc:
            raise LoginRejected("Unable to login.", detail=str(exc)) from exc

    async def fetch_delegation(
        self, identifier: str, session_public_key: bytes, expiration: int
    ) -> SignedDelegation:
        """Fetch the signed delegation for *session_public_key*.

        Raises
        ------
        DelegationUnavailable
            If the authority refuses or returns a malformed delegation.
        AuthorityUnavailable
            On transport failure.
        """
        raw = await self._transport.call(
            "siwp_get_delegation", [identifier, session_public_key.hex(), expiration]
        )
        body = self._unwrap(raw, DelegationUnavailable, "Unable to get delegation.")
        try:
            return WireSignedDelegation.model_validate(body).to_signed_delegation()
        except ValidationError as exc:
            raise DelegationUnavailable("Unable to get delegation.", detail=str(exc)) from exc

    async def call(self, method: str, *args: Any) -> Any:
        """Invoke an application *method* and return its ``Ok`` value.

        Raises
        ------
        PasskeyIdentityError
            With the verbatim ``Err`` string as detail.
        """
        raw = await self._transport.call(method, list(args))
        return self._unwrap(raw, PasskeyIdentityError, f"Call to {method} failed.")

    async def aclose(self) -> None:
        await self._transport.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _unwrap(raw: Any, error_cls: type[PasskeyIdentityError], message: str) -> Any:
        try:
            envelope = ResultEnvelope.model_validate(raw)
        except ValidationError as exc:
            raise error_cls(message, detail=str(exc)) from exc
        if envelope.is_err:
            raise error_cls(message, detail=envelope.err or "")
        if not envelope.is_ok:
            raise error_cls(message, detail=f"response is not an Ok/Err envelope: {raw!r}")
        return envelope.ok


def create_channel(
    config: EngineConfig, identity: Optional[DelegatedIdentity] = None
) -> Optional[RemoteAuthorityClient]:
    """Build a client for the configured authority.

    Returns None when no ``authority_url`` is configured; callers treat that
    as a disabled channel. Passing *identity* yields a channel whose
    requests are signed by that identity.
    """
    if not config.authority_url:
        logger.info("No authority_url configured; remote authority channel disabled.")
        return None
    transport = HttpAuthorityTransport(
        config.authority_url,
        timeout=config.timeout,
        retry_times=config.retry_times,
        identity=identity,
    )
    return RemoteAuthorityClient(transport)


__all__ = ["RemoteAuthorityClient", "create_channel"]
