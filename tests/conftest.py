"""Shared fixtures: an in-process fake authority and engine builders."""
from __future__ import annotations

import json
import time
from typing import Any, Callable, Optional, Sequence

import pytest

from passkey_identity.authenticator import CallableAuthenticator
from passkey_identity.authority.client import RemoteAuthorityClient
from passkey_identity.authority.transport import AuthorityTransport
from passkey_identity.config import EngineConfig
from passkey_identity.delegation.chain import Delegation, DelegationChain, SignedDelegation
from passkey_identity.delegation.identity import DelegatedIdentity
from passkey_identity.engine.machine import AuthenticationEngine
from passkey_identity.keys.session_key import SessionKeyPair, SessionKeyProvider
from passkey_identity.storage.backend import MemorySessionStorage
from passkey_identity.storage.session_store import SessionStore

ROOT_KEY: bytes = bytes.fromhex("302a300506032b6570032100") + b"\x07" * 32
SIGNATURE: bytes = b"\xab" * 64
ONE_HOUR_NS: int = 3600 * 1_000_000_000

Handler = Callable[[list[Any]], Any]


def future_expiration() -> int:
    return time.time_ns() + ONE_HOUR_NS


class FakeAuthority(AuthorityTransport):
    """Scriptable authority transport recording every call.

    Handlers map a wire method to a callable receiving the positional args.
    A handler returning an exception instance makes the call raise it.
    """

    def __init__(self, username: str = "alice", expiration: Optional[int] = None) -> None:
        self.username = username
        self.expiration = expiration if expiration is not None else future_expiration()
        self.calls: list[tuple[str, list[Any]]] = []
        self.closed = False
        self.root_key_fetches = 0
        self.handlers: dict[str, Handler] = {
            "siwp_prepare_login": lambda args: ["{}", "st1"],
            "siwp_prepare_login_username": lambda args: json.dumps(
                {"publicKey": {"challenge": "Y2hhbGxlbmdl", "rpId": "example.org"}}
            ),
            "siwp_login": self._login_ok,
            "siwp_login_username": self._login_ok,
            "siwp_get_delegation": self._delegation_ok,
        }

    async def call(self, method: str, args: Sequence[Any]) -> Any:
        self.calls.append((method, list(args)))
        result = self.handlers[method](list(args))
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_root_key(self) -> bytes:
        self.root_key_fetches += 1
        return ROOT_KEY

    async def aclose(self) -> None:
        self.closed = True

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def _login_ok(self, args: list[Any]) -> dict[str, Any]:
        return {
            "Ok": {
                "username": self.username,
                "login_details": {
                    "expiration": self.expiration,
                    "user_canister_pubkey": ROOT_KEY.hex(),
                },
            }
        }

    def _delegation_ok(self, args: list[Any]) -> dict[str, Any]:
        _, session_pubkey_hex, expiration = args
        return {
            "Ok": {
                "delegation": {
                    "pubkey": session_pubkey_hex,
                    "expiration": expiration,
                    "targets": None,
                },
                "signature": SIGNATURE.hex(),
            }
        }


class ChannelRecorder:
    """Channel factory that wires every channel to one :class:`FakeAuthority`."""

    def __init__(self, authority: FakeAuthority) -> None:
        self.authority = authority
        self.identities: list[Optional[DelegatedIdentity]] = []

    def __call__(
        self, config: EngineConfig, identity: Optional[DelegatedIdentity] = None
    ) -> RemoteAuthorityClient:
        self.identities.append(identity)
        return RemoteAuthorityClient(self.authority)


@pytest.fixture()
def authority() -> FakeAuthority:
    return FakeAuthority()


@pytest.fixture()
def channels(authority: FakeAuthority) -> ChannelRecorder:
    return ChannelRecorder(authority)


@pytest.fixture()
def storage() -> MemorySessionStorage:
    return MemorySessionStorage()


@pytest.fixture()
def store(storage: MemorySessionStorage) -> SessionStore:
    return SessionStore(storage)


@pytest.fixture()
def authenticator() -> CallableAuthenticator:
    return CallableAuthenticator(lambda payload: "asrt1")


@pytest.fixture()
def make_engine(
    channels: ChannelRecorder,
    store: SessionStore,
    authenticator: CallableAuthenticator,
) -> Callable[..., AuthenticationEngine]:
    """Build an uninitialized engine wired to the fake authority."""

    def _make(**overrides: Any) -> AuthenticationEngine:
        kwargs: dict[str, Any] = {
            "config": EngineConfig(),
            "authenticator": authenticator,
            "store": store,
            "channel_factory": channels,
        }
        kwargs.update(overrides)
        return AuthenticationEngine(**kwargs)

    return _make


@pytest.fixture()
def session_key() -> SessionKeyPair:
    return SessionKeyProvider().generate()


@pytest.fixture()
def chain(session_key: SessionKeyPair) -> DelegationChain:
    signed = SignedDelegation(
        delegation=Delegation(
            pubkey=session_key.public_key_der,
            expiration=future_expiration(),
            targets=("aaaaa-aa",),
        ),
        signature=SIGNATURE,
    )
    return DelegationChain.from_delegations([signed], ROOT_KEY)
