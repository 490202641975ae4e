"""SessionKeyPair — ephemeral Ed25519 keys bound to one login attempt.

A thin wrapper around the ``cryptography`` package's Ed25519 primitives.
Key material is held as raw bytes so a pair can be persisted next to its
delegation chain without depending on ``cryptography`` types. The public
key travels on the wire in DER SubjectPublicKeyInfo form.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

_RAW_KEY_LENGTH: int = 32


@dataclass(frozen=True)
class SessionKeyPair:
    """An Ed25519 keypair generated for a single login attempt.

    Parameters
    ----------
    public_key:
        32-byte raw public key.
    private_key:
        32-byte raw private key. Excluded from ``repr``.
    """

    public_key: bytes
    private_key: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if len(self.public_key) != _RAW_KEY_LENGTH:
            raise ValueError(
                f"Ed25519 public key must be {_RAW_KEY_LENGTH} bytes, "
                f"got {len(self.public_key)}."
            )
        if len(self.private_key) != _RAW_KEY_LENGTH:
            raise ValueError(
                f"Ed25519 private key must be {_RAW_KEY_LENGTH} bytes, "
                f"got {len(self.private_key)}."
            )

    # ------------------------------------------------------------------
    # Encodings
    # ------------------------------------------------------------------

    @property
    def public_key_der(self) -> bytes:
        """DER SubjectPublicKeyInfo encoding of the public key."""
        return Ed25519PublicKey.from_public_bytes(self.public_key).public_bytes(
            Encoding.DER, PublicFormat.SubjectPublicKeyInfo
        )

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign(self, data: bytes) -> bytes:
        """Return the 64-byte Ed25519 signature of *data*."""
        return Ed25519PrivateKey.from_private_bytes(self.private_key).sign(data)

    def verify(self, signature: bytes, data: bytes) -> bool:
        """Return True if *signature* is a valid signature of *data*."""
        public_key = Ed25519PublicKey.from_public_bytes(self.public_key)
        try:
            public_key.verify(signature, data)
            return True
        except InvalidSignature:
            return False

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_json(self) -> list[str]:
        """Serialize as ``[public_hex, private_hex]``."""
        return [self.public_key.hex(), self.private_key.hex()]

    @classmethod
    def from_json(cls, data: object) -> "SessionKeyPair":
        """Rebuild a keypair from the output of :meth:`to_json`.

        The public half is re-derived from the private key and must match
        the stored value.

        Raises
        ------
        ValueError
            If *data* is not a two-element list of hex strings, or the
            halves do not belong together.
        """
        if not isinstance(data, (list, tuple)) or len(data) != 2:
            raise ValueError("Session key must be a [public, private] pair.")
        public_hex, private_hex = data
        if not isinstance(public_hex, str) or not isinstance(private_hex, str):
            raise ValueError("Session key halves must be hex strings.")
        private_key = bytes.fromhex(private_hex)
        if len(private_key) != _RAW_KEY_LENGTH:
            raise ValueError("Session private key has the wrong length.")
        derived = _raw_public_key(Ed25519PrivateKey.from_private_bytes(private_key))
        if derived != bytes.fromhex(public_hex):
            raise ValueError("Session public key does not match its private key.")
        return cls(public_key=derived, private_key=private_key)


class SessionKeyProvider:
    """Generates a fresh :class:`SessionKeyPair` on every call.

    Keys are never cached; each login attempt must call :meth:`generate`.

    Example
    -------
    ::

        provider = SessionKeyProvider()
        key = provider.generate()
        signature = key.sign(b"hello")
        assert key.verify(signature, b"hello")
    """

    def generate(self) -> SessionKeyPair:
        """Return a new random Ed25519 keypair."""
        private_key = Ed25519PrivateKey.generate()
        return SessionKeyPair(
            public_key=_raw_public_key(private_key),
            private_key=private_key.private_bytes(
                Encoding.Raw, PrivateFormat.Raw, NoEncryption()
            ),
        )


def _raw_public_key(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


__all__ = ["SessionKeyPair", "SessionKeyProvider"]
