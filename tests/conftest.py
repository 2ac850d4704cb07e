"""
Blocker Test Fixtures
"""

from typing import Dict, List, Optional, Sequence

import pytest
import pytest_asyncio

from blocker.core.records import AllowlistRecord, BlockedHash, BlockRecord
from blocker.core.types import ContentHash, ContentLink
from blocker.errors import DaemonRejectedError, RecordExistsError
from blocker.network.peer import BlocklistPage
from blocker.node.config import ScannerConfig
from blocker.store.sqlite import SQLiteStore


def make_hash(i: int) -> ContentHash:
    """Deterministic non-zero hash for index i."""
    return ContentHash((i + 1).to_bytes(32, "big"))


# ==============================================================================
# Fakes
# ==============================================================================

class MemoryStore:
    """In-memory PersistentStore that logs every status write."""

    def __init__(self):
        self.records: Dict[ContentHash, BlockRecord] = {}
        self.allowlist: Dict[ContentHash, AllowlistRecord] = {}
        self.checkpoint = 0
        self.writes: List[tuple] = []
        self.fail_writes: Optional[Exception] = None

    async def create_record(self, record: BlockRecord) -> None:
        record.validate()
        if record.hash in self.records:
            raise RecordExistsError(record.hash.hex())
        self.records[record.hash] = record

    async def create_records(self, records: Sequence[BlockRecord]) -> int:
        inserted = 0
        for record in records:
            record.validate()
            if record.hash not in self.records:
                self.records[record.hash] = record
                inserted += 1
        return inserted

    async def find_by_hash(self, hash: ContentHash) -> Optional[BlockRecord]:
        return self.records.get(hash)

    def _write(self, op: str, hashes: Sequence[ContentHash]) -> None:
        self.writes.append((op, list(hashes)))
        if self.fail_writes is not None:
            raise self.fail_writes

    async def mark_failed(self, hashes: Sequence[ContentHash]) -> None:
        self._write("failed", hashes)
        for h in hashes:
            rec = self.records.get(h)
            if rec is not None and not rec.invalid:
                rec.failed = True

    async def mark_succeeded(self, hashes: Sequence[ContentHash]) -> None:
        self._write("succeeded", hashes)
        for h in hashes:
            rec = self.records.get(h)
            if rec is not None and not rec.invalid:
                rec.failed = False

    async def mark_invalid(self, hashes: Sequence[ContentHash]) -> None:
        self._write("invalid", hashes)
        for h in hashes:
            rec = self.records.get(h)
            if rec is not None:
                rec.invalid = True
                rec.failed = False

    async def pending_since(self, timestamp: int) -> List[ContentHash]:
        recs = [
            r for r in self.records.values()
            if r.timestamp_added >= timestamp and not r.failed and not r.invalid
        ]
        return [r.hash for r in sorted(recs, key=lambda r: r.timestamp_added)]

    async def failed_records(self) -> List[ContentHash]:
        recs = [r for r in self.records.values() if r.failed and not r.invalid]
        return [r.hash for r in sorted(recs, key=lambda r: r.timestamp_added)]

    async def is_allowlisted(self, hash: ContentHash) -> bool:
        return hash in self.allowlist

    async def create_allowlist_record(self, record: AllowlistRecord) -> None:
        self.allowlist[record.hash] = record

    async def blocked_hashes(self, sort="desc", offset=0, limit=1000):
        recs = sorted(
            (r for r in self.records.values() if not r.invalid),
            key=lambda r: r.timestamp_added,
            reverse=(sort == "desc"),
        )
        page = recs[offset:offset + limit + 1]
        return page[:limit], len(page) > limit

    async def get_checkpoint(self) -> int:
        return self.checkpoint

    async def set_checkpoint(self, timestamp: int) -> None:
        self.checkpoint = timestamp

    async def ping(self) -> None:
        return None

    def ops(self, op: str) -> List[List[ContentHash]]:
        return [hashes for name, hashes in self.writes if name == op]


class FakeDaemon:
    """
    EnforcementDaemon double.

    Batches containing a hash from `bad` are rejected as a whole; hashes in
    `invalid` are reported back as invalid. `errors` maps a 1-based call
    number to the exception that call raises.
    """

    def __init__(self, bad=(), invalid=(), blocklist=(), up: bool = True):
        self.bad = set(bad)
        self.invalid = set(invalid)
        self.blocked: List[ContentHash] = list(blocklist)
        self.up = up
        self.calls: List[List[ContentHash]] = []
        self.errors: Dict[int, Exception] = {}
        self.always_fail: Optional[Exception] = None
        self.resolutions: Dict[ContentLink, ContentLink] = {}

    async def submit_block_batch(self, hashes: Sequence[ContentHash]) -> List[ContentHash]:
        self.calls.append(list(hashes))
        if self.always_fail is not None:
            raise self.always_fail
        if len(self.calls) in self.errors:
            raise self.errors[len(self.calls)]
        if any(h in self.bad for h in hashes):
            raise DaemonRejectedError("invalid hash in batch", len(hashes))

        rejected = [h for h in hashes if h in self.invalid]
        for h in hashes:
            if h not in self.invalid and h not in self.blocked:
                self.blocked.append(h)
        return rejected

    async def fetch_blocklist(self) -> List[ContentHash]:
        return list(self.blocked)

    async def is_up(self) -> bool:
        return self.up

    async def resolve(self, link: ContentLink) -> ContentLink:
        return self.resolutions.get(link, link)


class FakePeer:
    """PeerClient serving a fixed, newest-first blocklist."""

    def __init__(self, url: str, hashes: Sequence[ContentHash] = (), error: Optional[Exception] = None):
        self.url = url
        self.entries = [BlockedHash(hash=h, tags=["abusive"]) for h in hashes]
        self.error = error
        self.requests: List[tuple] = []

    async def fetch_blocklist(self, offset: int = 0, limit: int = 1000) -> BlocklistPage:
        self.requests.append((offset, limit))
        if self.error is not None:
            raise self.error
        page = self.entries[offset:offset + limit]
        return BlocklistPage(entries=page, has_more=offset + limit < len(self.entries))


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def hashes() -> List[ContentHash]:
    """Sixteen distinct hashes."""
    return [make_hash(i) for i in range(16)]


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def daemon() -> FakeDaemon:
    return FakeDaemon()


@pytest.fixture
def fast_scanner() -> ScannerConfig:
    """Scanner config with millisecond sleeps."""
    return ScannerConfig(
        sleep_between_scans=0.01,
        sleep_on_err_step=0.01,
        sleep_on_err_steps=3,
        retry_interval=0.01,
    )


@pytest.fixture
def seed() -> bytes:
    """Deterministic Ed25519 private seed."""
    return bytes(range(32))


@pytest.fixture
def link() -> ContentLink:
    """A version-1 content link."""
    return ContentLink(bitfield=0, merkle_root=bytes(range(100, 132)))


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    store = SQLiteStore(str(tmp_path / "blocker.db"), server_uid="node-a")
    await store.connect()
    yield store
    await store.close()
