"""Signing capability used for announcements and per-digit attestations.

Digit signatures follow the oracle scheme ``s = k + e * x (mod n)`` with
``e = sha256(R || P || "{event_id}/{index}/{outcome}")``; a verifier checks
``s * G == R + e * P`` against the nonce point ``R`` committed at announcement
time. Announcements are BIP-340 Schnorr signatures over ``sha256(payload)``.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Protocol

from coincurve import PrivateKey, PublicKey, PublicKeyXOnly
from loguru import logger

from .core.config import Settings, get_settings

CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class Signer(Protocol):
    """Interface implemented by oracle signing backends."""

    @property
    def public_key(self) -> bytes:
        """Return the compressed oracle public key."""

    @property
    def public_key_xonly(self) -> bytes:
        """Return the 32-byte BIP-340 key that verifies announcements."""

    def nonce_point(self, event_id: str, index: int, salt: bytes = b"") -> bytes:
        """Return the public nonce committed for ``(event_id, index)`` under ``salt``."""

    def sign_announcement(self, payload: bytes) -> bytes:
        """Sign a serialized announcement."""

    def sign_digit(
        self, event_id: str, index: int, outcome: str, nonce_point: bytes, salt: bytes = b""
    ) -> bytes:
        """Sign one outcome digit with the secret behind ``nonce_point``."""


def _digit_message(event_id: str, index: int, outcome: str) -> bytes:
    return f"{event_id}/{index}/{outcome}".encode("utf-8")


def _challenge(nonce_point: bytes, public_key: bytes, message: bytes) -> int:
    digest = hashlib.sha256(nonce_point + public_key + message).digest()
    return int.from_bytes(digest, "big") % CURVE_ORDER


def _scalar_bytes(value: int) -> bytes:
    return value.to_bytes(32, "big")


class CoincurveSigner:
    """secp256k1 signer backed by ``coincurve``.

    Nonce secrets are derived deterministically from the oracle key, the
    ``(event_id, index)`` pair and a random per-event salt stored with the
    event. Nothing secret is persisted besides the oracle key itself, and an
    event id that is deleted and recreated never reuses a nonce.
    """

    def __init__(self, secret: bytes) -> None:
        if len(secret) != 32:
            raise ValueError("oracle secret must be 32 bytes")
        self._key = PrivateKey(secret)
        self._public_key = self._key.public_key.format(compressed=True)

    @classmethod
    def from_hex(cls, secret_hex: str) -> CoincurveSigner:
        return cls(bytes.fromhex(secret_hex))

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CoincurveSigner:
        settings = settings or get_settings()
        if settings.oracle_secret_key:
            return cls.from_hex(settings.oracle_secret_key)
        if settings.is_production:
            raise RuntimeError("ORACLE_SECRET_KEY must be set when ENVIRONMENT=production")
        logger.warning(
            "ORACLE_SECRET_KEY is not configured; generated an ephemeral oracle key "
            "(announcements will not survive a restart)"
        )
        return cls(PrivateKey().secret)

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def public_key_xonly(self) -> bytes:
        return self._key.public_key_xonly.format()

    def _nonce_secret(self, event_id: str, index: int, salt: bytes = b"") -> int:
        tag = f"nonce/{event_id}/{index}/".encode("utf-8") + salt
        digest = hmac.new(self._key.secret, tag, hashlib.sha256).digest()
        scalar = int.from_bytes(digest, "big") % CURVE_ORDER
        if scalar == 0:
            raise ValueError(f"degenerate nonce for event {event_id} index {index}")
        return scalar

    def nonce_point(self, event_id: str, index: int, salt: bytes = b"") -> bytes:
        secret = self._nonce_secret(event_id, index, salt)
        return PrivateKey(_scalar_bytes(secret)).public_key.format(compressed=True)

    def sign_announcement(self, payload: bytes) -> bytes:
        return self._key.sign_schnorr(hashlib.sha256(payload).digest())

    def sign_digit(
        self, event_id: str, index: int, outcome: str, nonce_point: bytes, salt: bytes = b""
    ) -> bytes:
        nonce = self._nonce_secret(event_id, index, salt)
        expected_point = PrivateKey(_scalar_bytes(nonce)).public_key.format(compressed=True)
        if expected_point != nonce_point:
            raise ValueError(
                f"nonce for event {event_id} index {index} was not committed by this oracle key"
            )
        challenge = _challenge(nonce_point, self._public_key, _digit_message(event_id, index, outcome))
        secret = int.from_bytes(self._key.secret, "big")
        signature = (nonce + challenge * secret) % CURVE_ORDER
        return _scalar_bytes(signature)


def verify_digit(
    public_key: bytes,
    event_id: str,
    index: int,
    outcome: str,
    nonce_point: bytes,
    signature: bytes,
) -> bool:
    """Check ``s * G == R + e * P`` for one attested digit."""

    s_value = int.from_bytes(signature, "big")
    if not 0 < s_value < CURVE_ORDER:
        return False
    challenge = _challenge(nonce_point, public_key, _digit_message(event_id, index, outcome))
    s_point = PrivateKey(_scalar_bytes(s_value)).public_key
    e_point = PublicKey(public_key).multiply(_scalar_bytes(challenge))
    expected = PublicKey.combine_keys([PublicKey(nonce_point), e_point])
    return s_point.format() == expected.format()


def verify_announcement(public_key: bytes, payload: bytes, signature: bytes) -> bool:
    xonly = PublicKeyXOnly(PublicKey(public_key).format(compressed=True)[1:])
    return xonly.verify(signature, hashlib.sha256(payload).digest())


__all__ = [
    "CURVE_ORDER",
    "CoincurveSigner",
    "Signer",
    "verify_announcement",
    "verify_digit",
]
