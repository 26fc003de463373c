"""
Executor key handling and Sui transaction signing.

The executor key is an Ed25519 seed supplied as a ``suiprivkey1...`` bech32
string, ``0x``-prefixed hex or base64 (optionally carrying the scheme flag
byte). Signatures use Sui's intent scheme: blake2b-256 over
``[0, 0, 0] + tx_bytes``, serialized as ``flag || signature || public_key``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib

import bech32
from nacl.signing import SigningKey

from ..recovery.errors import ConfigurationError

ED25519_FLAG = 0x00
SUI_PRIVATE_KEY_PREFIX = "suiprivkey"
TRANSACTION_INTENT = bytes([0, 0, 0])


def _blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def _decode_bech32_key(value: str) -> bytes:
    hrp, words = bech32.bech32_decode(value)
    if hrp != SUI_PRIVATE_KEY_PREFIX or words is None:
        raise ConfigurationError("Invalid suiprivkey encoding")
    decoded = bech32.convertbits(words, 5, 8, False)
    if decoded is None:
        raise ConfigurationError("Invalid suiprivkey encoding")
    payload = bytes(decoded)
    if len(payload) != 33 or payload[0] != ED25519_FLAG:
        raise ConfigurationError("Only Ed25519 executor keys are supported")
    return payload[1:]


def decode_private_key(value: str) -> bytes:
    """Return the 32-byte Ed25519 seed encoded in ``value``."""
    text = (value or "").strip()
    if not text:
        raise ConfigurationError("EXECUTOR_PRIVATE_KEY is not set")

    if text.startswith(SUI_PRIVATE_KEY_PREFIX):
        return _decode_bech32_key(text)

    try:
        if text.startswith("0x"):
            raw = bytes.fromhex(text[2:])
        else:
            raw = base64.b64decode(text, validate=True)
    except (ValueError, binascii.Error) as exc:
        raise ConfigurationError("EXECUTOR_PRIVATE_KEY is not valid hex or base64") from exc

    if len(raw) == 33 and raw[0] == ED25519_FLAG:
        raw = raw[1:]
    if len(raw) != 32:
        raise ConfigurationError(f"Executor key must be 32 bytes, got {len(raw)}")
    return raw


class Signer:
    """Ed25519 keypair used to sign and pay for execution transactions."""

    def __init__(self, seed: bytes):
        self._key = SigningKey(seed)
        self.public_key = bytes(self._key.verify_key)
        self.address = "0x" + _blake2b_256(bytes([ED25519_FLAG]) + self.public_key).hex()

    @classmethod
    def from_secret(cls, value: str) -> Signer:
        return cls(decode_private_key(value))

    def sign_transaction(self, tx_bytes: bytes) -> str:
        """Base64 serialized signature for ``sui_executeTransactionBlock``."""
        digest = _blake2b_256(TRANSACTION_INTENT + tx_bytes)
        signature = self._key.sign(digest).signature
        return base64.b64encode(bytes([ED25519_FLAG]) + signature + self.public_key).decode("ascii")

    def __repr__(self) -> str:
        return f"Signer(address={self.address!r})"
