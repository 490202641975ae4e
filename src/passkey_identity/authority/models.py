"""Wire and domain models for the remote authority protocol.

Wire models are pydantic; they parse the JSON bodies returned by the
authority (hex-encoded bytes, ``{"Ok": ...} | {"Err": ...}`` envelopes).
Domain models are plain frozen dataclasses handed to the engine.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from passkey_identity.delegation.chain import Delegation, SignedDelegation


# ---------------------------------------------------------------------------
# Domain models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IdentifiedChallenge:
    """Challenge issued for a caller-supplied identifier."""

    payload: str


@dataclass(frozen=True)
class DiscoverableChallenge:
    """Challenge issued without an identifier.

    ``auth_state`` must be echoed back when the assertion is submitted,
    since the identifier is only known once the authenticator resolves it.
    """

    payload: str
    auth_state: str


Challenge = Union[IdentifiedChallenge, DiscoverableChallenge]


@dataclass(frozen=True)
class BindingDetails:
    """Parameters for fetching a delegation after a successful assertion.

    Parameters
    ----------
    identifier:
        Identifier resolved by the authority. May differ from the one the
        caller supplied.
    root_public_key:
        DER-encoded authority-side key the delegation will be rooted at.
    expiration:
        Delegation expiry in nanoseconds since the Unix epoch.
    """

    identifier: str
    root_public_key: bytes
    expiration: int


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


def _hex_to_bytes(value: Any) -> Any:
    if isinstance(value, str):
        return bytes.fromhex(value)
    if isinstance(value, list):
        if not all(isinstance(item, int) and not isinstance(item, bool) for item in value):
            raise ValueError("byte list must contain only integers")
        return bytes(value)
    return value


class ResultEnvelope(BaseModel):
    """``{"Ok": T}`` or ``{"Err": str}`` as returned by every authority call."""

    model_config = ConfigDict(populate_by_name=True)

    ok: Any = Field(default=None, alias="Ok")
    err: Optional[str] = Field(default=None, alias="Err")

    @property
    def is_ok(self) -> bool:
        return "ok" in self.model_fields_set and "err" not in self.model_fields_set

    @property
    def is_err(self) -> bool:
        return "err" in self.model_fields_set


class LoginDetails(BaseModel):
    """Login details nested in a successful submit response."""

    expiration: int
    user_canister_pubkey: bytes

    @field_validator("user_canister_pubkey", mode="before")
    @classmethod
    def decode_pubkey(cls, value: Any) -> Any:
        return _hex_to_bytes(value)


class LoginOkResponse(BaseModel):
    """Ok body of ``siwp_login`` / ``siwp_login_username``."""

    username: str
    login_details: LoginDetails

    def to_binding(self) -> BindingDetails:
        return BindingDetails(
            identifier=self.username,
            root_public_key=self.login_details.user_canister_pubkey,
            expiration=self.login_details.expiration,
        )


class WireDelegation(BaseModel):
    pubkey: bytes
    expiration: int
    targets: Optional[list[str]] = None

    @field_validator("pubkey", mode="before")
    @classmethod
    def decode_pubkey(cls, value: Any) -> Any:
        return _hex_to_bytes(value)


class WireSignedDelegation(BaseModel):
    """Ok body of ``siwp_get_delegation``."""

    delegation: WireDelegation
    signature: bytes

    @field_validator("signature", mode="before")
    @classmethod
    def decode_signature(cls, value: Any) -> Any:
        return _hex_to_bytes(value)

    def to_signed_delegation(self) -> SignedDelegation:
        targets = self.delegation.targets
        return SignedDelegation(
            delegation=Delegation(
                pubkey=self.delegation.pubkey,
                expiration=self.delegation.expiration,
                targets=tuple(targets) if targets is not None else None,
            ),
            signature=self.signature,
        )


__all__ = [
    "BindingDetails",
    "Challenge",
    "DiscoverableChallenge",
    "IdentifiedChallenge",
    "LoginDetails",
    "LoginOkResponse",
    "ResultEnvelope",
    "WireDelegation",
    "WireSignedDelegation",
]
