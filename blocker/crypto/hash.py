"""
Blocker Hash Functions

BLAKE2b-256 for content hashes, SHA3-512 for proof signing digests and
KangarooTwelve for proof-of-work.
"""

from __future__ import annotations
import hashlib
from typing import Union

from Crypto.Hash import KangarooTwelve

from blocker.constants import HASH_SIZE

BytesLike = Union[bytes, bytearray, memoryview]


def blake2b_256(data: BytesLike) -> bytes:
    """
    BLAKE2b with a 256-bit digest.

    Args:
        data: Input data to hash

    Returns:
        bytes: 32-byte digest
    """
    return hashlib.blake2b(data, digest_size=HASH_SIZE).digest()


def sha3_512(data: BytesLike) -> bytes:
    """SHA3-512 per NIST FIPS 202."""
    return hashlib.sha3_512(data).digest()


def kangaroo_twelve(
    data: BytesLike,
    custom: bytes = b"",
    output_length: int = HASH_SIZE
) -> bytes:
    """
    KangarooTwelve extendable output function.

    Args:
        data: Input message
        custom: Customization string
        output_length: Bytes to squeeze out (default: 32)

    Returns:
        bytes: Output of the requested length
    """
    hasher = KangarooTwelve.new(data=bytes(data), custom=custom)
    return hasher.read(output_length)
