"""Tests for passkey_identity.authority.transport — HttpAuthorityTransport."""
from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from passkey_identity.authority import transport as transport_module
from passkey_identity.authority.transport import (
    SENDER_DELEGATION_HEADER,
    SENDER_PUBKEY_HEADER,
    SENDER_SIGNATURE_HEADER,
    HttpAuthorityTransport,
    compute_backoff,
)
from passkey_identity.delegation.chain import (
    Delegation,
    DelegationChain,
    SignedDelegation,
    build_chain,
)
from passkey_identity.delegation.identity import DelegatedIdentity, compose_identity
from passkey_identity.errors import AuthorityUnavailable, DelegationExpired
from passkey_identity.keys.session_key import SessionKeyPair

from conftest import ROOT_KEY

BASE_URL = "http://authority.test"

RequestHandler = Callable[[httpx.Request], httpx.Response]


def make_transport(handler: RequestHandler, **kwargs) -> HttpAuthorityTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpAuthorityTransport(BASE_URL, client=client, **kwargs)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(transport_module, "compute_backoff", lambda *args, **kwargs: 0.0)


@pytest.fixture()
def identity(session_key: SessionKeyPair, chain: DelegationChain) -> DelegatedIdentity:
    return compose_identity(session_key, chain)


class TestComputeBackoff:
    def test_grows_exponentially(self) -> None:
        assert compute_backoff(0, base=1.0, jitter=0.0) == 1.0
        assert compute_backoff(3, base=1.0, jitter=0.0) == 8.0

    def test_jitter_is_bounded(self) -> None:
        for _ in range(20):
            assert 0.5 <= compute_backoff(0, base=0.5, jitter=0.25) <= 0.75


class TestCall:
    @pytest.mark.asyncio
    async def test_posts_args_to_method_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Ok": "done"})

        transport = make_transport(handler)
        result = await transport.call("siwp_login", ["asrt1", "st1", "abcd", None])
        await transport.aclose()

        assert result == {"Ok": "done"}
        assert seen[0].method == "POST"
        assert str(seen[0].url) == f"{BASE_URL}/rpc/siwp_login"
        assert json.loads(seen[0].content) == {"args": ["asrt1", "st1", "abcd", None]}

    @pytest.mark.asyncio
    async def test_trailing_slash_in_base_url(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=[])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpAuthorityTransport(BASE_URL + "/", client=client)
        await transport.call("siwp_prepare_login", [])
        assert seen == [f"{BASE_URL}/rpc/siwp_prepare_login"]

    @pytest.mark.asyncio
    async def test_anonymous_requests_are_unsigned(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        await make_transport(handler).call("siwp_prepare_login", [])
        assert SENDER_SIGNATURE_HEADER not in seen[0].headers
        assert SENDER_PUBKEY_HEADER not in seen[0].headers


class TestRetries:
    @pytest.mark.asyncio
    async def test_recovers_after_server_error(self) -> None:
        responses = iter([httpx.Response(503), httpx.Response(200, json={"Ok": 1})])
        transport = make_transport(lambda request: next(responses), retry_times=2)
        assert await transport.call("m", []) == {"Ok": 1}

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_unavailable(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler, retry_times=2)
        with pytest.raises(AuthorityUnavailable) as exc_info:
            await transport.call("m", [])
        assert len(attempts) == 3
        assert "ConnectError" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_zero_retries_makes_one_attempt(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(500)

        with pytest.raises(AuthorityUnavailable, match="unavailable"):
            await make_transport(handler, retry_times=0).call("m", [])
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(404, text="no such method")

        with pytest.raises(AuthorityUnavailable) as exc_info:
            await make_transport(handler, retry_times=2).call("m", [])
        assert len(attempts) == 1
        assert "404" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_non_json_body_raises_unavailable(self) -> None:
        transport = make_transport(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(AuthorityUnavailable, match="non-JSON"):
            await transport.call("m", [])


class TestSigning:
    @pytest.mark.asyncio
    async def test_bound_identity_signs_body(self, identity: DelegatedIdentity) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Ok": None})

        await make_transport(handler, identity=identity).call("whoami", [])

        request = seen[0]
        assert request.headers[SENDER_PUBKEY_HEADER] == identity.public_key.hex()
        signature = bytes.fromhex(request.headers[SENDER_SIGNATURE_HEADER])
        assert identity.session_key.verify(signature, request.content)
        chain = DelegationChain.from_json(json.loads(request.headers[SENDER_DELEGATION_HEADER]))
        assert chain == identity.chain

    @pytest.mark.asyncio
    async def test_expired_identity_raises_before_sending(
        self, session_key: SessionKeyPair
    ) -> None:
        der = session_key.public_key_der
        expired = compose_identity(
            session_key,
            build_chain(
                SignedDelegation(Delegation(pubkey=der, expiration=1), signature=b"\x01"),
                ROOT_KEY,
                der,
            ),
        )
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Ok": None})

        with pytest.raises(DelegationExpired):
            await make_transport(handler, identity=expired).call("whoami", [])
        assert seen == []


class TestFetchRootKey:
    @pytest.mark.asyncio
    async def test_reads_status_endpoint(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"root_key": ROOT_KEY.hex()})

        transport = make_transport(handler)
        assert await transport.fetch_root_key() == ROOT_KEY
        assert transport.root_key == ROOT_KEY
        assert seen[0].method == "GET"
        assert str(seen[0].url) == f"{BASE_URL}/status"

    @pytest.mark.asyncio
    async def test_missing_root_key_raises(self) -> None:
        transport = make_transport(lambda request: httpx.Response(200, json={}))
        with pytest.raises(AuthorityUnavailable, match="root key"):
            await transport.fetch_root_key()
        assert transport.root_key is None
