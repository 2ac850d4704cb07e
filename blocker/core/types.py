"""
Blocker Content Types

Content links and the hashes derived from them.

A content link is 34 bytes: a 2-byte little-endian bitfield followed by a
32-byte Merkle root. Its hash is BLAKE2b-256 of the Merkle root, so two
links pointing at the same root block each other.
"""

from __future__ import annotations
import base64
import binascii
import re
import struct
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from blocker.constants import (
    HASH_SIZE,
    MERKLE_ROOT_SIZE,
    LINK_RAW_SIZE,
    LINK_BASE64_SIZE,
    LINK_BASE32_SIZE,
)
from blocker.crypto.hash import blake2b_256
from blocker.errors import InvalidHashError, InvalidLinkError

_HEX_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_BASE64_RE = re.compile(r"^[a-zA-Z0-9_-]{46}$")
_BASE32_RE = re.compile(r"^[a-v0-9]{55}$")
_TOKEN_SPLIT_RE = re.compile(r"[/?#.:&=\s]+")


@dataclass(frozen=True, slots=True)
class ContentHash:
    """
    BLAKE2b-256 digest of a content link's Merkle root.

    SIZE: 32 bytes
    TEXT: 64 lowercase hex characters
    """
    data: bytes = field(default_factory=lambda: bytes(HASH_SIZE))

    def __post_init__(self):
        if len(self.data) != HASH_SIZE:
            raise ValueError(f"ContentHash must be {HASH_SIZE} bytes, got {len(self.data)}")

    def __bytes__(self) -> bytes:
        return self.data

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ContentHash):
            return self.data == other.data
        return False

    def __lt__(self, other: ContentHash) -> bool:
        return self.data < other.data

    def __hash__(self) -> int:
        return hash(self.data)

    def __repr__(self) -> str:
        return f"ContentHash({self.data.hex()[:16]}...)"

    def __str__(self) -> str:
        return self.data.hex()

    def hex(self) -> str:
        return self.data.hex()

    def is_zero(self) -> bool:
        return self.data == bytes(HASH_SIZE)

    @classmethod
    def from_hex(cls, hex_string: str) -> ContentHash:
        """Parse 64 hex characters, raising InvalidHashError otherwise."""
        value = hex_string.strip()
        if not _HEX_RE.match(value):
            raise InvalidHashError(hex_string, "expected 64 hex characters")
        return cls(bytes.fromhex(value))

    @classmethod
    def zero(cls) -> ContentHash:
        return cls(bytes(HASH_SIZE))

    @classmethod
    def from_link(cls, link: ContentLink) -> ContentHash:
        return cls(blake2b_256(link.merkle_root))


@dataclass(frozen=True, slots=True)
class ContentLink:
    """
    Content link (bitfield + Merkle root).

    SIZE: 34 bytes
    TEXT: 46-char unpadded base64url, or 55-char base32hex (lowercase)
    """
    bitfield: int
    merkle_root: bytes

    def __post_init__(self):
        if not 0 <= self.bitfield <= 0xFFFF:
            raise InvalidLinkError(str(self.bitfield), "bitfield out of range")
        if len(self.merkle_root) != MERKLE_ROOT_SIZE:
            raise InvalidLinkError(
                self.merkle_root.hex(),
                f"merkle root must be {MERKLE_ROOT_SIZE} bytes, got {len(self.merkle_root)}"
            )
        if self.version > 2:
            raise InvalidLinkError(self.to_base64(), f"unsupported version {self.version}")

    def __str__(self) -> str:
        return self.to_base64()

    def __repr__(self) -> str:
        return f"ContentLink(v{self.version}, {self.to_base64()})"

    @property
    def version(self) -> int:
        return (self.bitfield & 0b11) + 1

    def to_bytes(self) -> bytes:
        return struct.pack("<H", self.bitfield) + self.merkle_root

    def to_base64(self) -> str:
        return base64.urlsafe_b64encode(self.to_bytes()).decode("ascii").rstrip("=")

    def to_base32(self) -> str:
        return base64.b32hexencode(self.to_bytes()).decode("ascii").rstrip("=").lower()

    def hash(self) -> ContentHash:
        return ContentHash.from_link(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> ContentLink:
        if len(data) != LINK_RAW_SIZE:
            raise InvalidLinkError(data.hex(), f"expected {LINK_RAW_SIZE} bytes, got {len(data)}")
        (bitfield,) = struct.unpack("<H", data[:2])
        return cls(bitfield=bitfield, merkle_root=bytes(data[2:]))

    @classmethod
    def from_string(cls, value: str) -> ContentLink:
        """
        Decode a bare link in either textual encoding.

        Raises:
            InvalidLinkError: if the string is not a well-formed link
        """
        if len(value) == LINK_BASE64_SIZE and _BASE64_RE.match(value):
            padded, decode = value + "==", base64.urlsafe_b64decode
        elif len(value) == LINK_BASE32_SIZE and _BASE32_RE.match(value):
            padded, decode = value.upper() + "=", base64.b32hexdecode
        else:
            raise InvalidLinkError(value, "not a base64 or base32 content link")

        try:
            raw = decode(padded)
        except binascii.Error as e:
            raise InvalidLinkError(value, str(e)) from e
        return cls.from_bytes(raw)

    @classmethod
    def parse(cls, text: str) -> ContentLink:
        """
        Extract a link from free text such as a portal URL or a sia:// URI.

        Base32 subdomain links take precedence over path links, matching the
        way portals route requests.

        Raises:
            InvalidLinkError: if no token in the text decodes to a link
        """
        tokens = [t for t in _TOKEN_SPLIT_RE.split(text.strip()) if t]
        for size in (LINK_BASE32_SIZE, LINK_BASE64_SIZE):
            for token in tokens:
                if len(token) != size:
                    continue
                try:
                    return cls.from_string(token)
                except InvalidLinkError:
                    continue
        raise InvalidLinkError(text, "no content link found")


def diff_hashes(base: Iterable[ContentHash], *others: Iterable[ContentHash]) -> List[ContentHash]:
    """
    Hashes present in base but in none of the others.

    Order of first appearance in base is kept; duplicates are dropped.
    """
    exclude = set()
    for other in others:
        exclude.update(other)

    result = []
    seen = set()
    for h in base:
        if h in exclude or h in seen:
            continue
        seen.add(h)
        result.append(h)
    return result


def build_lookup_table(hashes: Iterable[ContentHash]) -> Dict[ContentHash, bool]:
    """Index a hash list for O(1) membership checks."""
    return {h: True for h in hashes}
