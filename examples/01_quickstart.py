#!/usr/bin/env python3
"""Example: Quickstart

Runs a complete passkey login against an in-process authority and signs
a request with the resulting delegated identity.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install passkey-identity
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Sequence

import passkey_identity
from passkey_identity import (
    AuthenticationEngine,
    AuthorityTransport,
    CallableAuthenticator,
    EngineConfig,
    RemoteAuthorityClient,
    SessionKeyProvider,
)

ONE_HOUR_NS = 3600 * 1_000_000_000


class LocalAuthority(AuthorityTransport):
    """Toy authority that accepts any assertion and signs delegations with its own key."""

    def __init__(self) -> None:
        self._root = SessionKeyProvider().generate()

    async def call(self, method: str, args: Sequence[Any]) -> Any:
        if method == "siwp_prepare_login_username":
            return json.dumps({"publicKey": {"challenge": "ZGVtbw", "rpId": "localhost"}})
        if method == "siwp_login_username":
            _, identifier, _, _ = args
            return {
                "Ok": {
                    "username": identifier,
                    "login_details": {
                        "expiration": time.time_ns() + ONE_HOUR_NS,
                        "user_canister_pubkey": self._root.public_key_der.hex(),
                    },
                }
            }
        if method == "siwp_get_delegation":
            _, pubkey_hex, expiration = args
            message = bytes.fromhex(pubkey_hex) + expiration.to_bytes(8, "big")
            return {
                "Ok": {
                    "delegation": {"pubkey": pubkey_hex, "expiration": expiration},
                    "signature": self._root.sign(message).hex(),
                }
            }
        return {"Err": f"unknown method {method}"}


async def run() -> None:
    authority = LocalAuthority()

    # Step 1: Create the engine with a channel to the authority
    engine = await AuthenticationEngine.create(
        EngineConfig(),
        authenticator=CallableAuthenticator(lambda payload: "demo-assertion"),
        channel_factory=lambda config, identity=None: RemoteAuthorityClient(authority),
    )

    # Step 2: Log in
    result = await engine.login("alice")
    print(f"Logged in as: {result.identifier}")
    print(f"Delegations in chain: {len(result.identity.chain)}")

    # Step 3: Sign a request with the session key
    signature = result.identity.sign(b"GET /profile")
    print(f"Signature: {signature.hex()[:32]}...")
    print(f"Authenticated: {engine.state.is_authenticated()}")

    await engine.aclose()


def main() -> None:
    print(f"passkey-identity version: {passkey_identity.__version__}")
    asyncio.run(run())
    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
