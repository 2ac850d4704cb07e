"""
Blocker Portal Synchronization

Periodically mirrors the blocklists of peer portals into the local daemon.
Each cycle fetches the local blocklist once, then for every portal computes
the hashes it blocks that we do not, records them and blocks them.

Peers are processed one at a time and independently: one unreachable portal
does not stop the others from syncing.
"""

from __future__ import annotations
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from blocker.core.records import BlockedHash, BlockRecord, Reporter, now_ns
from blocker.core.types import ContentHash, build_lookup_table
from blocker.errors import SyncerAlreadyStartedError, compose_errors
from blocker.network.daemon import EnforcementDaemon
from blocker.network.peer import BlocklistPage, PeerClient
from blocker.node.blocker import Blocker, sleep_or_stop
from blocker.node.config import SyncConfig
from blocker.store.interface import PersistentStore

logger = logging.getLogger(__name__)


@dataclass
class Syncer:
    """
    Cross-portal blocklist reconciliation.

    Every cycle diffs a portal's full blocklist against the local one. When
    max_pages cuts a long list short, the next cycle resumes at the offset
    where the previous one stopped, wrapping back to the newest entries once
    the end is reached.
    """
    peers: List[PeerClient]
    daemon: EnforcementDaemon
    store: PersistentStore
    blocker: Blocker
    config: SyncConfig = field(default_factory=SyncConfig)
    stop_event: Optional[asyncio.Event] = None

    # State
    _resume_offset: Dict[str, int] = field(default_factory=dict)
    _task: Optional[asyncio.Task] = None
    _started: bool = False
    _start_lock: threading.Lock = field(default_factory=threading.Lock)

    def __post_init__(self):
        if self.stop_event is None:
            self.stop_event = asyncio.Event()
        self._resume_offset = {}
        self._task = None
        self._started = False
        self._start_lock = threading.Lock()

    # =========================================================================
    # Sync Cycle
    # =========================================================================

    async def sync_portals(self) -> Dict[str, int]:
        """
        Run one sync cycle over every configured portal.

        Returns:
            Number of hashes blocked per portal URL

        Raises:
            The local blocklist fetch error, or the composed per-portal errors
            once every portal has been attempted.
        """
        existing = build_lookup_table(await self.daemon.fetch_blocklist())

        added: Dict[str, int] = {}
        errors = []
        for peer in self.peers:
            if self.stop_event.is_set():
                break
            logger.info(f"Syncing blocklist for portal {peer.url}")
            try:
                added[peer.url] = await self._sync_portal(peer, existing)
            except Exception as e:
                logger.warning(f"Sync with portal {peer.url} failed: {e}")
                errors.append(e)
                continue
            logger.info(f"Added {added[peer.url]} hashes from portal {peer.url}")

        err = compose_errors(*errors)
        if err is not None:
            raise err
        return added

    async def fetch_portal_blocklist(self, peer: PeerClient, offset: int = 0) -> BlocklistPage:
        """
        Page through a portal's blocklist, newest first, starting at offset.

        Reads at most max_pages pages. The returned page has has_more set
        when that bound cut the list short.
        """
        entries: List[BlockedHash] = []

        for _ in range(self.config.max_pages):
            page = await peer.fetch_blocklist(offset=offset, limit=self.config.page_limit)
            entries.extend(page.entries)

            if not page.has_more or not page.entries:
                return BlocklistPage(entries=entries, has_more=False)
            offset += len(page.entries)

        logger.warning(
            f"Portal {peer.url} blocklist truncated at {self.config.max_pages} pages, "
            f"resuming at offset {offset} next cycle"
        )
        return BlocklistPage(entries=entries, has_more=True)

    async def _sync_portal(self, peer: PeerClient, existing: Dict[ContentHash, bool]) -> int:
        offset = self._resume_offset.get(peer.url, 0)
        fetched = await self.fetch_portal_blocklist(peer, offset)
        entries = fetched.entries

        tags: Dict[ContentHash, List[str]] = {}
        delta: List[ContentHash] = []
        for entry in entries:
            if entry.hash in existing or entry.hash in tags:
                continue
            if await self.store.is_allowlisted(entry.hash):
                logger.debug(f"Skipping allowlisted hash {entry.hash.hex()} from {peer.url}")
                continue
            tags[entry.hash] = list(entry.tags)
            delta.append(entry.hash)

        if delta:
            timestamp = now_ns()
            await self.store.create_records([
                BlockRecord(
                    hash=h,
                    reporter=Reporter(name=peer.url),
                    tags=tags[h],
                    timestamp_added=timestamp,
                )
                for h in delta
            ])

        blocked, _ = await self.blocker.block_hashes(delta)

        for h in delta:
            existing[h] = True
        self._resume_offset[peer.url] = offset + len(entries) if fetched.has_more else 0
        return blocked

    async def _sync_loop(self) -> None:
        while not self.stop_event.is_set():
            try:
                await self.sync_portals()
            except Exception as e:
                logger.error(f"Failed to sync portals: {e}")

            if await sleep_or_stop(self.stop_event, self.config.interval):
                break

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Launch the sync loop.

        Does nothing when no portals are configured.

        Raises:
            SyncerAlreadyStartedError: on a second call
        """
        with self._start_lock:
            if not self.peers:
                logger.info("Syncer not started, no portal URLs configured")
                return
            if self._started:
                raise SyncerAlreadyStartedError()
            self._started = True

        self._task = asyncio.create_task(self._sync_loop(), name="blocker-sync")
        logger.info(f"Syncer started for {len(self.peers)} portals")

    async def stop(self) -> None:
        self.stop_event.set()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
