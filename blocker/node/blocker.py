"""
Blocker Propagation Engine

Pushes pending block records to the enforcement daemon and keeps every
record in a well-defined state: enforced, failed (retried later) or invalid.

The daemon fails a whole batch when any single member is malformed, so a
rejected batch is retried at the same offset with a batch size divided by
the shrink divisor until the offending hash is isolated on its own.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from blocker.constants import NANOS_PER_SECOND
from blocker.core.records import now_ns
from blocker.core.types import ContentHash
from blocker.errors import (
    BlockerAlreadyStartedError,
    DaemonRejectedError,
    InternalError,
    compose_errors,
)
from blocker.network.daemon import EnforcementDaemon
from blocker.node.config import ScannerConfig
from blocker.node.purge import CachePurgeList
from blocker.store.interface import PersistentStore

logger = logging.getLogger(__name__)


async def sleep_or_stop(stop: asyncio.Event, seconds: float) -> bool:
    """
    Wait for seconds or until stop is set, whichever comes first.

    Returns:
        True if stop was set
    """
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=max(0.0, seconds))
        return True
    except asyncio.TimeoutError:
        return False


@dataclass
class Blocker:
    """
    Scan loop, retry loop and adaptive batch submission.

    The scan loop picks up records added since the last checkpoint (minus a
    back window), the retry loop resubmits records flagged as failed. When a
    purge list is set, every hash handed to block_hashes is appended to it
    first; a failed write is logged and never blocks enforcement.
    """
    store: PersistentStore
    daemon: EnforcementDaemon
    config: ScannerConfig = field(default_factory=ScannerConfig)
    stop_event: Optional[asyncio.Event] = None
    purge_list: Optional[CachePurgeList] = None

    # State
    _tasks: List[asyncio.Task] = field(default_factory=list)

    def __post_init__(self):
        if self.stop_event is None:
            self.stop_event = asyncio.Event()
        self._tasks = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # =========================================================================
    # Batch Propagation
    # =========================================================================

    async def block_hashes(self, hashes: Sequence[ContentHash]) -> Tuple[int, int]:
        """
        Submit hashes to the daemon and record the outcome of each one.

        Bookkeeping runs on every exit path, including transport errors and
        cancellation, so a hash is only ever marked for the call that
        actually settled it.

        Args:
            hashes: Hashes to block, in submission order

        Returns:
            (succeeded, failures) where failures counts both failed and
            invalid hashes

        Raises:
            The daemon transport error that aborted the run, composed with
            any store error hit while recording the outcome.
        """
        hashes = list(hashes)
        if not hashes:
            return 0, 0

        if self.purge_list is not None:
            try:
                await self.purge_list.append(hashes)
            except OSError as e:
                logger.warning(f"Failed to write to cache purge list: {e}")

        succeeded: List[ContentHash] = []
        failed: List[ContentHash] = []
        invalid: List[ContentHash] = []

        propagation_err = None
        try:
            await self._submit_all(hashes, succeeded, failed, invalid)
        except Exception as e:
            propagation_err = e
        finally:
            store_err = await self._record_outcome(succeeded, failed, invalid)

        err = compose_errors(propagation_err, store_err)
        if err is not None:
            raise err

        return len(succeeded), len(failed) + len(invalid)

    async def _submit_all(
        self,
        hashes: List[ContentHash],
        succeeded: List[ContentHash],
        failed: List[ContentHash],
        invalid: List[ContentHash],
    ) -> None:
        batch_size = self.config.batch_size
        start = 0

        while start < len(hashes) and not self.stop_event.is_set():
            if batch_size == 0:
                break

            end = min(start + batch_size, len(hashes))
            batch = hashes[start:end]

            try:
                rejected = await self.daemon.submit_block_batch(batch)
            except DaemonRejectedError as e:
                if batch_size > 1:
                    batch_size = max(1, batch_size // self.config.shrink_divisor)
                    logger.debug(f"Batch at offset {start} rejected, retrying with size {batch_size}")
                    continue

                if len(batch) != 1:
                    raise InternalError(
                        f"content rejection with batch size 1 but {len(batch)} hashes in batch"
                    ) from e
                logger.warning(f"Daemon refused to block {batch[0].hex()}: {e.message}")
                failed.append(batch[0])
            else:
                rejected_set = set(rejected)
                for h in batch:
                    if h in rejected_set:
                        invalid.append(h)
                    else:
                        succeeded.append(h)

            start = end

    async def _record_outcome(
        self,
        succeeded: List[ContentHash],
        failed: List[ContentHash],
        invalid: List[ContentHash],
    ) -> Optional[BaseException]:
        errors = []
        for mark, hashes in (
            (self.store.mark_succeeded, succeeded),
            (self.store.mark_failed, failed),
            (self.store.mark_invalid, invalid),
        ):
            if not hashes:
                continue
            try:
                await mark(hashes)
            except Exception as e:
                logger.error(f"Failed to record outcome for {len(hashes)} hashes: {e}")
                errors.append(e)
        return compose_errors(*errors)

    # =========================================================================
    # Scan / Retry
    # =========================================================================

    async def sweep_and_block(self) -> Tuple[int, int]:
        """
        One scan cycle.

        Reads records added since checkpoint - scan_back_window, blocks them
        and advances the checkpoint to the time the cycle started. The
        checkpoint is left untouched if blocking fails or is interrupted.
        """
        cycle_start = now_ns()
        checkpoint = await self.store.get_checkpoint()
        since = max(0, checkpoint - self.config.scan_back_window * NANOS_PER_SECOND)

        hashes = await self.store.pending_since(since)
        blocked, failures = 0, 0
        if hashes:
            blocked, failures = await self.block_hashes(hashes)
            logger.info(f"Scan blocked {blocked} hashes, {failures} failures")
            if blocked + failures < len(hashes):
                logger.info("Scan interrupted, checkpoint not advanced")
                return blocked, failures
        else:
            logger.debug("Scan found no pending hashes")

        await self.store.set_checkpoint(cycle_start)
        return blocked, failures

    async def retry_failed(self) -> Tuple[int, int]:
        """Resubmit every record flagged as failed. Never moves the checkpoint."""
        hashes = await self.store.failed_records()
        if not hashes:
            logger.debug("No failed hashes to retry")
            return 0, 0

        blocked, failures = await self.block_hashes(hashes)
        logger.info(f"Retry blocked {blocked} of {len(hashes)} failed hashes")
        return blocked, failures

    def _backoff(self, consecutive_errors: int) -> float:
        steps = min(consecutive_errors, self.config.sleep_on_err_steps)
        return self.config.sleep_on_err_step * steps

    async def _scan_loop(self) -> None:
        consecutive_errors = 0
        while not self.stop_event.is_set():
            try:
                await self.sweep_and_block()
                consecutive_errors = 0
                delay = self.config.sleep_between_scans
            except Exception as e:
                consecutive_errors += 1
                delay = self._backoff(consecutive_errors)
                logger.error(f"Scan loop error ({consecutive_errors} consecutive): {e}")

            if await sleep_or_stop(self.stop_event, delay):
                break

    async def _retry_loop(self) -> None:
        while not await sleep_or_stop(self.stop_event, self.config.retry_interval):
            try:
                await self.retry_failed()
            except Exception as e:
                logger.error(f"Retry loop error: {e}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Launch the scan and retry loops."""
        if self._tasks:
            raise BlockerAlreadyStartedError()

        self._tasks = [
            asyncio.create_task(self._scan_loop(), name="blocker-scan"),
            asyncio.create_task(self._retry_loop(), name="blocker-retry"),
        ]
        logger.info("Blocker started")

    async def stop(self) -> None:
        """Signal both loops and wait for them to exit."""
        self.stop_event.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Blocker stopped")
