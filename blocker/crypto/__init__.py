"""
Blocker Cryptographic Primitives

Hashing helpers and the proof-of-work admission gate.
"""

from blocker.crypto.hash import blake2b_256, sha3_512, kangaroo_twelve
from blocker.crypto.pow import (
    ProofVersion,
    BlockProof,
    ProofVerifier,
    proof_work,
    sign_proof,
    solve,
    create_proof,
)

__all__ = [
    "blake2b_256",
    "sha3_512",
    "kangaroo_twelve",
    "ProofVersion",
    "BlockProof",
    "ProofVerifier",
    "proof_work",
    "sign_proof",
    "solve",
    "create_proof",
]
