"""
Blocker Node

Wires the store, daemon client, blocker, syncer and report intake together
and runs them until interrupted.
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from blocker import __version__
from blocker.crypto.pow import ProofVerifier
from blocker.errors import DaemonUnavailableError, InvalidParameterError
from blocker.network.daemon import DaemonClient, EnforcementDaemon
from blocker.network.peer import PeerClient, PortalClient
from blocker.node.blocker import Blocker
from blocker.node.config import BlockerConfig, setup_logging
from blocker.node.purge import CachePurgeList
from blocker.node.reports import ReportService
from blocker.node.syncer import Syncer
from blocker.store.interface import PersistentStore
from blocker.store.sqlite import SQLiteStore

logger = logging.getLogger(__name__)


@dataclass
class Node:
    """
    A running blocker node.

    store, daemon and peers default to the SQLite store and HTTP clients
    described by config; pass them in to run against other backends.
    """
    config: BlockerConfig

    store: Optional[PersistentStore] = None
    daemon: Optional[EnforcementDaemon] = None
    peers: Optional[List[PeerClient]] = None

    # Components, built on start
    blocker: Optional[Blocker] = None
    syncer: Optional[Syncer] = None
    reports: Optional[ReportService] = None

    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    _owned: list = field(default_factory=list)
    _running: bool = False

    async def start(self) -> None:
        """
        Start the node.

        Raises:
            InvalidParameterError: configuration does not validate
            StoreError: the store cannot be opened
            DaemonUnavailableError: the daemon is not ready
        """
        if self._running:
            return

        setup_logging(self.config.log)

        errors = self.config.validate()
        if errors:
            raise InvalidParameterError("config", "; ".join(errors))

        logger.info(f"Starting blocker node {self.config.server_uid} (v{__version__})")

        try:
            if self.store is None:
                store = SQLiteStore(self.config.storage.db_path, self.config.server_uid)
                self._owned.append(store)
                await store.connect()
                self.store = store
            await self.store.ping()
        except Exception:
            await self._close_owned()
            raise

        if self.daemon is None:
            self.daemon = DaemonClient(
                url=self.config.daemon.url,
                api_password=self.config.daemon.api_password,
                timeout=self.config.daemon.timeout_sec,
            )
            self._owned.append(self.daemon)
        if not await self.daemon.is_up():
            await self._close_owned()
            raise DaemonUnavailableError(self.config.daemon.url, "daemon is not ready")

        if self.peers is None:
            self.peers = [PortalClient(url) for url in self.config.sync.portal_urls]
            self._owned.extend(self.peers)

        purge_list = None
        if self.config.purge.enabled:
            purge_list = CachePurgeList(self.config.purge.list_path, self.config.purge.lock_path)

        self.blocker = Blocker(
            store=self.store,
            daemon=self.daemon,
            config=self.config.scanner,
            stop_event=self.stop_event,
            purge_list=purge_list,
        )
        self.syncer = Syncer(
            peers=self.peers,
            daemon=self.daemon,
            store=self.store,
            blocker=self.blocker,
            config=self.config.sync,
            stop_event=self.stop_event,
        )
        self.reports = ReportService(
            store=self.store,
            daemon=self.daemon,
            verifier=ProofVerifier(self.config.pow.target),
        )

        await self.blocker.start()
        await self.syncer.start()

        self._running = True
        logger.info("Node started successfully")

    async def stop(self) -> None:
        """Stop the node."""
        if not self._running:
            return

        logger.info("Stopping node...")
        self.stop_event.set()

        await self.blocker.stop()
        await self.syncer.stop()
        await self._close_owned()

        self._running = False
        logger.info("Node stopped")

    async def _close_owned(self) -> None:
        for resource in reversed(self._owned):
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Failed to close {resource!r}: {e}")
        self._owned = []


async def run(config: BlockerConfig) -> None:
    """Run a node until SIGINT or SIGTERM."""
    node = Node(config)
    await node.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, node.stop_event.set)

    try:
        await node.stop_event.wait()
    finally:
        await node.stop()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Blocklist propagation and portal sync node")
    parser.add_argument("--config", metavar="PATH", help="Load JSON configuration instead of the environment")
    parser.add_argument("--testing", action="store_true", help="Short intervals and an easy PoW target")
    parser.add_argument("--write-default-config", metavar="PATH", help="Write a default configuration and exit")
    args = parser.parse_args(argv)

    if args.write_default_config:
        config = BlockerConfig.default_testing() if args.testing else BlockerConfig()
        config.save(args.write_default_config)
        return 0

    if args.config:
        config = BlockerConfig.load(args.config)
    elif args.testing:
        config = BlockerConfig.default_testing()
    else:
        config = BlockerConfig.from_env()

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logging.getLogger(__name__).critical(f"Node failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
