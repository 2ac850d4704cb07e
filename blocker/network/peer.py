"""
Blocker Peer Portal Client

Reads the public blocklist of another portal, newest entries first.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, runtime_checkable

import httpx

from blocker.constants import PEER_REQUEST_TIMEOUT_SEC, SYNC_PAGE_LIMIT
from blocker.core.records import BlockedHash
from blocker.core.types import ContentHash
from blocker.errors import InvalidHashError, PeerResponseError, PeerUnreachableError

logger = logging.getLogger(__name__)


@dataclass
class BlocklistPage:
    """One page of a peer's blocklist."""
    entries: List[BlockedHash] = field(default_factory=list)
    has_more: bool = False


@runtime_checkable
class PeerClient(Protocol):
    """Read-only access to one peer's blocklist."""

    url: str

    async def fetch_blocklist(self, offset: int = 0, limit: int = SYNC_PAGE_LIMIT) -> BlocklistPage: ...


class PortalClient:
    """httpx-based PeerClient for a single portal URL."""

    def __init__(
        self,
        url: str,
        timeout: float = PEER_REQUEST_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(base_url=url, timeout=timeout, transport=transport)

    def __repr__(self) -> str:
        return f"PortalClient({self.url})"

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_blocklist(self, offset: int = 0, limit: int = SYNC_PAGE_LIMIT) -> BlocklistPage:
        """
        Fetch one page of the portal blocklist sorted newest first.

        Raises:
            PeerUnreachableError: transport failure or timeout
            PeerResponseError: non-200 status or malformed body
        """
        try:
            resp = await self._client.get(
                "/skynet/portal/blocklist",
                params={"offset": offset, "limit": limit, "sort": "desc"},
            )
        except httpx.TransportError as e:
            raise PeerUnreachableError(self.url, f"{type(e).__name__}: {e}") from e

        if resp.status_code != 200:
            raise PeerResponseError(self.url, f"status {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            raise PeerResponseError(self.url, "body is not JSON") from None
        if not isinstance(data, dict):
            raise PeerResponseError(self.url, "body is not an object")

        entries = []
        for raw in data.get("entries") or []:
            try:
                entries.append(BlockedHash(
                    hash=ContentHash.from_hex(raw["hash"]),
                    tags=list(raw.get("tags") or []),
                ))
            except (InvalidHashError, KeyError, TypeError, AttributeError) as e:
                raise PeerResponseError(self.url, f"malformed entry {raw!r}: {e}") from e

        return BlocklistPage(entries=entries, has_more=bool(data.get("hasmore", False)))
