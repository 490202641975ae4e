"""Transports carrying calls to the remote authority.

AuthorityTransport defines the contract the client relies on.
HttpAuthorityTransport implements it over HTTP with ``httpx``:

* ``POST {base_url}/rpc/{method}`` with body ``{"args": [...]}``
* ``GET {base_url}/status`` returning ``{"root_key": "<hex>"}``

When bound to a delegated identity, each call is signed with the session
key and carries the delegation chain in request headers.
"""
from __future__ import annotations

import abc
import asyncio
import json
import logging
import random
from typing import Any, Optional, Sequence

import httpx

from passkey_identity.delegation.identity import DelegatedIdentity
from passkey_identity.errors import AuthorityUnavailable

logger = logging.getLogger(__name__)

SENDER_PUBKEY_HEADER: str = "X-Sender-Pubkey"
SENDER_DELEGATION_HEADER: str = "X-Sender-Delegation"
SENDER_SIGNATURE_HEADER: str = "X-Sender-Sig"


def compute_backoff(attempt: int, base: float = 0.5, jitter: float = 0.25) -> float:
    """Compute exponential backoff with jitter."""
    delay = base * (2**attempt)
    return delay + random.uniform(0, jitter)


class AuthorityTransport(metaclass=abc.ABCMeta):
    """Abstract request/response transport to the remote authority."""

    @abc.abstractmethod
    async def call(self, method: str, args: Sequence[Any]) -> Any:
        """Invoke *method* with positional *args* and return the decoded body.

        Raises
        ------
        AuthorityUnavailable
            If the authority cannot be reached or returns garbage.
        """
        raise NotImplementedError

    async def fetch_root_key(self) -> bytes:
        """Fetch the authority's root key (local development networks only).

        Raises
        ------
        AuthorityUnavailable
            If the transport cannot provide a root key.
        """
        raise AuthorityUnavailable(
            "Transport cannot fetch a root key.", detail=type(self).__name__
        )

    async def aclose(self) -> None:
        """Release transport resources (no-op by default)."""
        pass


class HttpAuthorityTransport(AuthorityTransport):
    """HTTP transport backed by :class:`httpx.AsyncClient`.

    Parameters
    ----------
    base_url:
        Base URL of the remote authority.
    timeout:
        Per-request timeout in seconds.
    retry_times:
        Extra attempts after a transport error or 5xx response.
    identity:
        Optional delegated identity used to sign every request.
    client:
        Pre-built ``httpx.AsyncClient`` (tests pass one with a mock transport).
    backoff_base:
        Base delay for exponential backoff between retries.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        retry_times: int = 2,
        identity: Optional[DelegatedIdentity] = None,
        client: Optional[httpx.AsyncClient] = None,
        backoff_base: float = 0.5,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._retry_times = retry_times
        self._identity = identity
        self._backoff_base = backoff_base
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self.root_key: Optional[bytes] = None

    @property
    def identity(self) -> Optional[DelegatedIdentity]:
        return self._identity

    async def call(self, method: str, args: Sequence[Any]) -> Any:
        body = json.dumps({"args": list(args)}, separators=(",", ":")).encode("utf-8")
        headers = self._sign(body)
        url = f"{self._base_url}/rpc/{method}"
        response = await self._send("POST", url, content=body, headers=headers)
        return self._decode(response, method)

    async def fetch_root_key(self) -> bytes:
        response = await self._send("GET", f"{self._base_url}/status")
        data = self._decode(response, "status")
        try:
            self.root_key = bytes.fromhex(str(data["root_key"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthorityUnavailable(
                "Authority status response has no usable root key.", detail=str(exc)
            ) from exc
        return self.root_key

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _sign(self, body: bytes) -> dict[str, str]:
        if self._identity is None:
            return {}
        self._identity.ensure_valid()
        return {
            SENDER_PUBKEY_HEADER: self._identity.public_key.hex(),
            SENDER_DELEGATION_HEADER: json.dumps(
                self._identity.chain.to_json(), separators=(",", ":")
            ),
            SENDER_SIGNATURE_HEADER: self._identity.sign(body).hex(),
        }

    async def _send(self, http_method: str, url: str, **kwargs: Any) -> httpx.Response:
        last_error = ""
        for attempt in range(self._retry_times + 1):
            if attempt:
                await asyncio.sleep(compute_backoff(attempt - 1, base=self._backoff_base))
            try:
                response = await self._client.request(http_method, url, **kwargs)
            except httpx.TransportError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Authority request %s %s failed (attempt %d/%d): %s",
                    http_method, url, attempt + 1, self._retry_times + 1, last_error,
                )
                continue
            if response.status_code >= 500:
                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "Authority request %s %s returned %d (attempt %d/%d)",
                    http_method, url, response.status_code, attempt + 1, self._retry_times + 1,
                )
                continue
            return response
        raise AuthorityUnavailable("Remote authority is unavailable.", detail=last_error)

    @staticmethod
    def _decode(response: httpx.Response, method: str) -> Any:
        if response.is_error:
            raise AuthorityUnavailable(
                f"Authority rejected {method} request.",
                detail=f"HTTP {response.status_code}: {response.text}",
            )
        try:
            return response.json()
        except ValueError as exc:
            raise AuthorityUnavailable(
                f"Authority returned a non-JSON body for {method}.", detail=str(exc)
            ) from exc


__all__ = [
    "AuthorityTransport",
    "HttpAuthorityTransport",
    "SENDER_DELEGATION_HEADER",
    "SENDER_PUBKEY_HEADER",
    "SENDER_SIGNATURE_HEADER",
    "compute_backoff",
]
