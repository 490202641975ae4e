"""Tests for passkey_identity.delegation — chain building and identity composition."""
from __future__ import annotations

import pytest

from passkey_identity.delegation.chain import (
    Delegation,
    DelegationChain,
    SignedDelegation,
    build_chain,
)
from passkey_identity.delegation.identity import DelegatedIdentity, compose_identity
from passkey_identity.errors import DelegationExpired, MalformedDelegation
from passkey_identity.keys.session_key import SessionKeyPair

ROOT: bytes = b"\x30\x2a" + b"\x11" * 42
SIG: bytes = b"\xcd" * 64


def signed_for(pubkey: bytes, expiration: int = 10**19, signature: bytes = SIG) -> SignedDelegation:
    return SignedDelegation(
        delegation=Delegation(pubkey=pubkey, expiration=expiration),
        signature=signature,
    )


# ---------------------------------------------------------------------------
# build_chain
# ---------------------------------------------------------------------------


class TestBuildChain:
    def test_wraps_single_delegation(self, session_key: SessionKeyPair) -> None:
        der = session_key.public_key_der
        chain = build_chain(signed_for(der), ROOT, der)
        assert len(chain) == 1
        assert chain.public_key == ROOT
        assert chain.session_public_key == der

    def test_mismatched_key_rejected(self, session_key: SessionKeyPair) -> None:
        der = session_key.public_key_der
        tampered = der[:-1] + bytes([der[-1] ^ 0x01])
        with pytest.raises(MalformedDelegation, match="does not match"):
            build_chain(signed_for(tampered), ROOT, der)

    @pytest.mark.parametrize("position", [0, 12, 43])
    def test_any_single_byte_difference_rejected(
        self, session_key: SessionKeyPair, position: int
    ) -> None:
        der = bytearray(session_key.public_key_der)
        der[position] ^= 0xFF
        with pytest.raises(MalformedDelegation):
            build_chain(signed_for(bytes(der)), ROOT, session_key.public_key_der)

    def test_empty_signature_rejected(self, session_key: SessionKeyPair) -> None:
        der = session_key.public_key_der
        with pytest.raises(MalformedDelegation, match="signature"):
            build_chain(signed_for(der, signature=b""), ROOT, der)

    def test_empty_root_rejected(self, session_key: SessionKeyPair) -> None:
        der = session_key.public_key_der
        with pytest.raises(MalformedDelegation, match="root"):
            build_chain(signed_for(der), b"", der)


# ---------------------------------------------------------------------------
# DelegationChain
# ---------------------------------------------------------------------------


class TestDelegationChain:
    def test_empty_chain_rejected(self) -> None:
        with pytest.raises(MalformedDelegation, match="at least one"):
            DelegationChain.from_delegations([], ROOT)

    def test_expiration_is_minimum_over_links(self) -> None:
        chain = DelegationChain.from_delegations(
            [signed_for(b"a", expiration=500), signed_for(b"b", expiration=300)], ROOT
        )
        assert chain.expiration == 300

    def test_json_round_trip_preserves_bytes(self, chain: DelegationChain) -> None:
        restored = DelegationChain.from_json(chain.to_json())
        assert restored == chain
        assert restored.delegations[0].signature == chain.delegations[0].signature
        assert restored.delegations[0].delegation.pubkey == chain.delegations[0].delegation.pubkey

    def test_json_layout(self, chain: DelegationChain) -> None:
        data = chain.to_json()
        assert data["publicKey"] == chain.public_key.hex()
        link = data["delegations"][0]  # type: ignore[index]
        assert set(link) == {"delegation", "signature"}
        assert isinstance(link["delegation"]["expiration"], str)

    def test_from_json_accepts_integer_expiration(self, chain: DelegationChain) -> None:
        data = chain.to_json()
        data["delegations"][0]["delegation"]["expiration"] = 1234  # type: ignore[index]
        assert DelegationChain.from_json(data).expiration == 1234

    def test_targets_survive_round_trip(self, chain: DelegationChain) -> None:
        restored = DelegationChain.from_json(chain.to_json())
        assert restored.delegations[0].delegation.targets == ("aaaaa-aa",)

    @pytest.mark.parametrize(
        "data",
        [[], {"publicKey": "00"}, {"delegations": "x", "publicKey": "00"}, {"delegations": [1]}],
    )
    def test_from_json_rejects_bad_structure(self, data: object) -> None:
        with pytest.raises(ValueError):
            DelegationChain.from_json(data)

    def test_from_json_rejects_empty_delegations(self) -> None:
        with pytest.raises(MalformedDelegation):
            DelegationChain.from_json({"delegations": [], "publicKey": ROOT.hex()})


# ---------------------------------------------------------------------------
# DelegatedIdentity
# ---------------------------------------------------------------------------


class TestDelegatedIdentity:
    def test_compose_keeps_both_parts(
        self, session_key: SessionKeyPair, chain: DelegationChain
    ) -> None:
        identity = compose_identity(session_key, chain)
        assert isinstance(identity, DelegatedIdentity)
        assert identity.session_key is session_key
        assert identity.chain is chain
        assert identity.public_key == chain.public_key

    def test_signs_with_session_key(
        self, session_key: SessionKeyPair, chain: DelegationChain
    ) -> None:
        identity = compose_identity(session_key, chain)
        assert session_key.verify(identity.sign(b"body"), b"body")

    def test_expiry_checks(self, session_key: SessionKeyPair) -> None:
        der = session_key.public_key_der
        identity = compose_identity(
            session_key, build_chain(signed_for(der, expiration=1_000), ROOT, der)
        )
        assert not identity.is_expired(now_ns=999)
        assert identity.is_expired(now_ns=1_000)
        identity.ensure_valid(now_ns=999)
        with pytest.raises(DelegationExpired):
            identity.ensure_valid(now_ns=1_001)
