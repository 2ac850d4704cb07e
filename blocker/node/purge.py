"""
Blocker Cache Purge List

Appends blocked hashes to a plain-text list that an external job reads to
purge the matching content from the reverse proxy cache. The job and the
blocker coordinate through a lock directory, since mkdir is atomic for both
a Python process and a shell script.
"""

from __future__ import annotations
import asyncio
import logging
import os
from typing import List, Sequence

from blocker.constants import PURGE_LOCK_ATTEMPTS, PURGE_LOCK_RETRY_SEC
from blocker.core.types import ContentHash

logger = logging.getLogger(__name__)


class CachePurgeList:
    """
    Lock-guarded, append-only list of hashes to purge.

    Args:
        list_path: File the hashes are appended to, one hex hash per line
        lock_path: Directory used as the lock shared with the purge job
        lock_attempts: mkdir attempts before giving up
        lock_retry_sec: Pause between attempts
    """

    def __init__(
        self,
        list_path: str,
        lock_path: str,
        lock_attempts: int = PURGE_LOCK_ATTEMPTS,
        lock_retry_sec: float = PURGE_LOCK_RETRY_SEC,
    ):
        self.list_path = list_path
        self.lock_path = lock_path
        self.lock_attempts = lock_attempts
        self.lock_retry_sec = lock_retry_sec

    def __repr__(self) -> str:
        return f"CachePurgeList({self.list_path})"

    async def append(self, hashes: Sequence[ContentHash]) -> None:
        """
        Append hashes to the list while holding the lock.

        Raises:
            OSError: the lock could not be acquired or the write failed
        """
        if not hashes:
            return

        await self._acquire()
        try:
            lines = [h.hex() + "\n" for h in hashes]
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._write, lines)
        finally:
            self._release()

    async def _acquire(self) -> None:
        for attempt in range(1, self.lock_attempts + 1):
            try:
                os.mkdir(self.lock_path, 0o700)
                return
            except OSError as e:
                if attempt == self.lock_attempts:
                    raise
                logger.warning(f"Failed to acquire purge list lock ({attempt}/{self.lock_attempts}): {e}")
                await asyncio.sleep(self.lock_retry_sec)

    def _release(self) -> None:
        try:
            os.rmdir(self.lock_path)
        except OSError as e:
            logger.error(f"Failed to release purge list lock: {e}")

    def _write(self, lines: List[str]) -> None:
        with open(self.list_path, "a") as f:
            f.writelines(lines)
            f.flush()
            os.fsync(f.fileno())
