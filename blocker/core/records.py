"""
Blocker Records

Block records, allowlist entries and peer blocklist entries.
All timestamps are integer nanoseconds since the Unix epoch (UTC).
"""

from __future__ import annotations
import time
from dataclasses import dataclass, field, asdict
from typing import List, Optional

from blocker.core.types import ContentHash
from blocker.errors import InvalidRecordError


def now_ns() -> int:
    """Current wall-clock time in nanoseconds."""
    return time.time_ns()


@dataclass
class Reporter:
    """Who asked for a hash to be blocked."""
    name: str = ""
    email: str = ""
    other_contact: str = ""
    sub: str = ""
    unauthenticated: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Reporter:
        data = data or {}
        return cls(
            name=data.get("name", ""),
            email=data.get("email", ""),
            other_contact=data.get("other_contact", ""),
            sub=data.get("sub", ""),
            unauthenticated=bool(data.get("unauthenticated", False)),
        )


@dataclass
class BlockRecord:
    """
    A request to block one content hash.

    State per hash:
        pending  -> failed=False, never submitted yet (or awaiting retry scan)
        enforced -> failed=False after a successful submission
        failed   -> failed=True, picked up by the retry loop
        invalid  -> invalid=True, terminal; skipped by scan and retry
    """
    hash: ContentHash
    reporter: Reporter = field(default_factory=Reporter)
    tags: List[str] = field(default_factory=list)
    timestamp_added: int = 0
    failed: bool = False
    invalid: bool = False

    reverted: bool = False
    reverted_tags: List[str] = field(default_factory=list)
    timestamp_reverted: int = 0

    def validate(self) -> None:
        """
        Check the invariants required before insertion.

        Raises:
            InvalidRecordError: on a zero hash or missing timestamp
        """
        if self.hash is None or self.hash.is_zero():
            raise InvalidRecordError("hash is required")
        if self.timestamp_added <= 0:
            raise InvalidRecordError("timestamp_added is required")

    def to_dict(self) -> dict:
        return {
            "hash": self.hash.hex(),
            "reporter": self.reporter.to_dict(),
            "tags": list(self.tags),
            "timestamp_added": self.timestamp_added,
            "failed": self.failed,
            "invalid": self.invalid,
            "reverted": self.reverted,
            "reverted_tags": list(self.reverted_tags),
            "timestamp_reverted": self.timestamp_reverted,
        }

    @classmethod
    def new(
        cls,
        hash: ContentHash,
        reporter: Optional[Reporter] = None,
        tags: Optional[List[str]] = None,
    ) -> BlockRecord:
        """Create a pending record stamped with the current time."""
        return cls(
            hash=hash,
            reporter=reporter or Reporter(),
            tags=list(tags or []),
            timestamp_added=now_ns(),
        )


@dataclass
class AllowlistRecord:
    """A hash that must never be blocked."""
    hash: ContentHash
    description: str = ""
    timestamp_added: int = 0

    def validate(self) -> None:
        if self.hash is None or self.hash.is_zero():
            raise InvalidRecordError("hash is required")
        if self.timestamp_added <= 0:
            raise InvalidRecordError("timestamp_added is required")


@dataclass
class BlockedHash:
    """One entry of a peer portal's blocklist."""
    hash: ContentHash
    tags: List[str] = field(default_factory=list)
