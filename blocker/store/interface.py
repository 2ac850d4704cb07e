"""
Blocker Store Interface

Capability the blocker, syncer and report intake depend on. Tests pass
in-memory fakes built against this protocol.
"""

from __future__ import annotations
from typing import List, Protocol, Sequence, Tuple, runtime_checkable

from blocker.core.records import AllowlistRecord, BlockRecord
from blocker.core.types import ContentHash


@runtime_checkable
class PersistentStore(Protocol):
    """Shared record store. All timestamps are integer nanoseconds."""

    async def create_record(self, record: BlockRecord) -> None: ...

    async def create_records(self, records: Sequence[BlockRecord]) -> int: ...

    async def find_by_hash(self, hash: ContentHash) -> BlockRecord | None: ...

    async def mark_failed(self, hashes: Sequence[ContentHash]) -> None: ...

    async def mark_succeeded(self, hashes: Sequence[ContentHash]) -> None: ...

    async def mark_invalid(self, hashes: Sequence[ContentHash]) -> None: ...

    async def pending_since(self, timestamp: int) -> List[ContentHash]: ...

    async def failed_records(self) -> List[ContentHash]: ...

    async def is_allowlisted(self, hash: ContentHash) -> bool: ...

    async def create_allowlist_record(self, record: AllowlistRecord) -> None: ...

    async def blocked_hashes(
        self,
        sort: str = "desc",
        offset: int = 0,
        limit: int = 1000,
    ) -> Tuple[List[BlockRecord], bool]: ...

    async def get_checkpoint(self) -> int: ...

    async def set_checkpoint(self, timestamp: int) -> None: ...

    async def ping(self) -> None: ...
