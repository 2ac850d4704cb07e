"""
Blocker Proof-of-Work Admission Gate

Unauthenticated reporters pay for a report with a signed proof of work:

    canonical = version (1) || nonce (8) || identity_key (32)
    signature = Ed25519(identity, SHA3-512(SIGN_SALT || canonical))
    work      = KangarooTwelve(canonical, custom=WORK_IDENTIFIER)[:32]

A proof passes when the signature verifies and int(target) > int(work),
both read big-endian. Lower targets are harder.
"""

from __future__ import annotations
import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from Crypto.PublicKey import ECC
from Crypto.Signature import eddsa

from blocker.constants import (
    POW_VERSION_V1_NAME,
    POW_IDENTITY_FIELD,
    POW_NONCE_SIZE,
    POW_IDENTITY_SIZE,
    POW_TARGET_SIZE,
    POW_SIGN_SALT,
    POW_WORK_IDENTIFIER,
    POW_TARGET_STANDARD,
)
from blocker.crypto.hash import sha3_512, kangaroo_twelve
from blocker.errors import (
    InvalidParameterError,
    InvalidProofError,
    InvalidProofVersionError,
    InvalidIdentityLengthError,
    InvalidSignatureError,
    InsufficientWorkError,
)

logger = logging.getLogger(__name__)

_MAX_NONCE = (1 << 64) - 1


class ProofVersion(IntEnum):
    """Proof format versions. The byte value is part of the signed data."""
    V1 = 1

    @property
    def wire_name(self) -> str:
        return _VERSION_NAMES[self]

    @classmethod
    def from_wire(cls, name: str) -> ProofVersion:
        for version, wire in _VERSION_NAMES.items():
            if wire == name:
                return version
        raise InvalidProofVersionError(name)


_VERSION_NAMES = {
    ProofVersion.V1: POW_VERSION_V1_NAME,
}


def _nonce_bytes(nonce: int) -> bytes:
    if not 0 <= nonce <= _MAX_NONCE:
        raise InvalidProofError(f"nonce {nonce} out of uint64 range")
    return struct.pack("<Q", nonce)


@dataclass(frozen=True)
class BlockProof:
    """
    Proof of work attached to an unauthenticated block report.

    SIZE: 41 bytes canonical + signature
    WIRE: JSON object, nonce as decimal uint64 (little-endian in bytes),
          identity and signature as hex
    """
    version: int
    nonce: bytes
    identity_key: bytes
    signature: bytes = b""

    def __post_init__(self):
        if len(self.nonce) != POW_NONCE_SIZE:
            raise InvalidProofError(
                f"nonce must be {POW_NONCE_SIZE} bytes, got {len(self.nonce)}"
            )
        if len(self.identity_key) != POW_IDENTITY_SIZE:
            raise InvalidIdentityLengthError(len(self.identity_key), POW_IDENTITY_SIZE)

    @property
    def nonce_int(self) -> int:
        return struct.unpack("<Q", self.nonce)[0]

    def proof_bytes(self) -> bytes:
        """Canonical bytes covered by both the signature and the work hash."""
        return bytes([self.version]) + self.nonce + self.identity_key

    def signing_digest(self) -> bytes:
        return sha3_512(POW_SIGN_SALT + self.proof_bytes())

    def with_nonce(self, nonce: int) -> BlockProof:
        return BlockProof(self.version, _nonce_bytes(nonce), self.identity_key, self.signature)

    def to_dict(self) -> dict:
        try:
            version = ProofVersion(self.version).wire_name
        except ValueError:
            raise InvalidProofVersionError(self.version) from None
        return {
            "version": version,
            "nonce": str(self.nonce_int),
            POW_IDENTITY_FIELD: self.identity_key.hex(),
            "signature": self.signature.hex(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> BlockProof:
        """
        Decode the JSON wire form.

        Raises:
            InvalidProofVersionError: unknown version name
            InvalidIdentityLengthError: identity is not 32 bytes
            InvalidProofError: any other malformed field
        """
        if not isinstance(data, dict):
            raise InvalidProofError("proof must be an object")

        version = ProofVersion.from_wire(data.get("version", ""))

        nonce_raw = data.get("nonce")
        try:
            nonce = int(str(nonce_raw), 10)
        except ValueError:
            raise InvalidProofError(f"malformed nonce {nonce_raw!r}") from None

        try:
            identity = bytes.fromhex(data.get(POW_IDENTITY_FIELD, ""))
            signature = bytes.fromhex(data.get("signature", ""))
        except (TypeError, ValueError) as e:
            raise InvalidProofError(f"malformed hex field: {e}") from None

        return cls(
            version=version,
            nonce=_nonce_bytes(nonce),
            identity_key=identity,
            signature=signature,
        )


def proof_work(proof: BlockProof) -> bytes:
    """32-byte work hash of a proof's canonical bytes."""
    return kangaroo_twelve(proof.proof_bytes(), custom=POW_WORK_IDENTIFIER)


def meets_target(work: bytes, target: bytes) -> bool:
    return int.from_bytes(target, "big") > int.from_bytes(work, "big")


class ProofVerifier:
    """
    Stateless proof checker bound to one difficulty target.

    Safe to share between tasks.
    """

    def __init__(self, target: bytes = POW_TARGET_STANDARD):
        if len(target) != POW_TARGET_SIZE:
            raise InvalidParameterError(
                "target", f"must be {POW_TARGET_SIZE} bytes, got {len(target)}"
            )
        self._target = bytes(target)

    def target(self) -> bytes:
        return self._target

    def target_hex(self) -> str:
        return self._target.hex()

    def verify(self, proof: BlockProof) -> None:
        """
        Check signature first, then work.

        Raises:
            InvalidProofVersionError: proof version is not supported
            InvalidSignatureError: signature does not verify
            InsufficientWorkError: work hash does not meet the target
        """
        if proof.version not in _VERSION_NAMES:
            raise InvalidProofVersionError(proof.version)

        try:
            key = eddsa.import_public_key(proof.identity_key)
            eddsa.new(key, "rfc8032").verify(proof.signing_digest(), proof.signature)
        except ValueError:
            raise InvalidSignatureError() from None

        work = proof_work(proof)
        if not meets_target(work, self._target):
            raise InsufficientWorkError(work.hex(), self._target.hex())


# ==============================================================================
# Client-side helpers
# ==============================================================================

def identity_from_seed(seed: bytes) -> bytes:
    """Raw 32-byte Ed25519 public key for a 32-byte private seed."""
    key = eddsa.import_private_key(seed)
    return key.public_key().export_key(format="raw")


def sign_proof(seed: bytes, proof: BlockProof) -> BlockProof:
    """Return a copy of proof signed with the private seed."""
    key: ECC.EccKey = eddsa.import_private_key(seed)
    signature = eddsa.new(key, "rfc8032").sign(proof.signing_digest())
    return BlockProof(proof.version, proof.nonce, proof.identity_key, signature)


def solve(
    proof: BlockProof,
    target: bytes,
    max_attempts: Optional[int] = None
) -> Optional[BlockProof]:
    """
    Search nonces upward from proof.nonce until the work meets target.

    The signature is not part of the work hash, so callers solve first and
    sign afterwards.

    Returns:
        The solved proof, or None if max_attempts ran out.
    """
    nonce = proof.nonce_int
    attempts = 0
    while max_attempts is None or attempts < max_attempts:
        candidate = proof.with_nonce(nonce)
        if meets_target(proof_work(candidate), target):
            logger.debug(f"Proof solved after {attempts + 1} attempts")
            return candidate
        attempts += 1
        nonce = (nonce + 1) & _MAX_NONCE
    return None


def create_proof(
    seed: bytes,
    target: bytes = POW_TARGET_STANDARD,
    start_nonce: int = 0,
    max_attempts: Optional[int] = None
) -> Optional[BlockProof]:
    """Solve and sign a V1 proof for the identity derived from seed."""
    unsigned = BlockProof(
        version=ProofVersion.V1,
        nonce=_nonce_bytes(start_nonce),
        identity_key=identity_from_seed(seed),
    )
    solved = solve(unsigned, target, max_attempts)
    if solved is None:
        return None
    return sign_proof(seed, solved)
