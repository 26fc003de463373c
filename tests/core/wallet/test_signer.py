"""
Tests for executor key decoding and transaction signing.
"""

import base64
import hashlib

import bech32
import pytest
from nacl.signing import VerifyKey

from dca_keeper.core.recovery.errors import ConfigurationError
from dca_keeper.core.wallet.signer import Signer, decode_private_key

SEED = bytes(range(32))


def blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


class TestDecodePrivateKey:
    """Tests for the accepted key encodings."""

    def test_hex(self):
        assert decode_private_key("0x" + SEED.hex()) == SEED

    def test_base64(self):
        assert decode_private_key(base64.b64encode(SEED).decode()) == SEED

    def test_base64_with_scheme_flag(self):
        assert decode_private_key(base64.b64encode(b"\x00" + SEED).decode()) == SEED

    def test_bech32(self):
        words = bech32.convertbits(list(b"\x00" + SEED), 8, 5)
        encoded = bech32.bech32_encode("suiprivkey", words)
        assert decode_private_key(encoded) == SEED

    def test_bech32_non_ed25519(self):
        words = bech32.convertbits(list(b"\x01" + SEED), 8, 5)
        with pytest.raises(ConfigurationError):
            decode_private_key(bech32.bech32_encode("suiprivkey", words))

    @pytest.mark.parametrize("value", ["", "   ", "0xzz", "0x" + "ab" * 16, "not base64!"])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            decode_private_key(value)


class TestSigner:
    """Tests for address derivation and the signature layout."""

    def test_address(self):
        signer = Signer(SEED)
        assert signer.address == "0x" + blake2b_256(b"\x00" + signer.public_key).hex()
        assert len(signer.address) == 66

    def test_same_key_any_encoding(self):
        assert Signer.from_secret("0x" + SEED.hex()).address == Signer(SEED).address

    def test_signature_layout_and_intent(self):
        signer = Signer(SEED)
        tx_bytes = b"\x00\x01transaction-bytes"

        serialized = base64.b64decode(signer.sign_transaction(tx_bytes))

        assert len(serialized) == 1 + 64 + 32
        assert serialized[0] == 0
        assert serialized[65:] == signer.public_key
        VerifyKey(signer.public_key).verify(blake2b_256(b"\x00\x00\x00" + tx_bytes), serialized[1:65])

    def test_repr_hides_key(self):
        signer = Signer(SEED)
        assert SEED.hex() not in repr(signer)
        assert signer.address in repr(signer)
