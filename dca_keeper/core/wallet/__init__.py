"""
Executor wallet: key decoding, Sui address derivation and transaction signing.
"""

from .signer import Signer, decode_private_key

__all__ = [
    "Signer",
    "decode_private_key",
]
