"""
Blocker Enforcement Daemon Client

The daemon is the local process that actually refuses to serve blocked
content. Blocking is idempotent on its side, so resubmitting a hash is safe.
"""

from __future__ import annotations
import logging
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import httpx

from blocker.constants import (
    DAEMON_DEFAULT_URL,
    DAEMON_USER_AGENT,
    DAEMON_REQUEST_TIMEOUT_SEC,
    DAEMON_BLOCK_TIMEOUT_PARAM,
)
from blocker.core.types import ContentHash, ContentLink
from blocker.errors import (
    BlockerError,
    DaemonError,
    DaemonRejectedError,
    DaemonUnavailableError,
    InvalidHashError,
    InvalidLinkError,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class EnforcementDaemon(Protocol):
    """
    Capability the blocker and syncer need from the daemon.

    submit_block_batch raises DaemonRejectedError when the batch was refused
    because of its content, and any other error for transport problems.
    """

    async def submit_block_batch(self, hashes: Sequence[ContentHash]) -> List[ContentHash]: ...

    async def fetch_blocklist(self) -> List[ContentHash]: ...

    async def is_up(self) -> bool: ...

    async def resolve(self, link: ContentLink) -> ContentLink: ...


class DaemonClient:
    """
    httpx-based EnforcementDaemon.

    Args:
        url: Daemon base URL
        api_password: Basic-auth password (empty user name), if any
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        url: str = DAEMON_DEFAULT_URL,
        api_password: str = "",
        timeout: float = DAEMON_REQUEST_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.url,
            headers={"User-Agent": DAEMON_USER_AGENT},
            auth=httpx.BasicAuth("", api_password) if api_password else None,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> DaemonClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise DaemonUnavailableError(self.url, f"{type(e).__name__}: {e}") from e

    def _decode(self, resp: httpx.Response, path: str) -> dict:
        try:
            data = resp.json()
        except ValueError:
            raise DaemonError(f"undecodable response from {path}", resp.status_code) from None
        if not isinstance(data, dict):
            raise DaemonError(f"unexpected response shape from {path}", resp.status_code)
        return data

    async def submit_block_batch(self, hashes: Sequence[ContentHash]) -> List[ContentHash]:
        """
        Ask the daemon to block hashes.

        Returns:
            Hashes the daemon reported as invalid (never blockable)

        Raises:
            DaemonRejectedError: HTTP 400, the batch content was refused
            DaemonUnavailableError: transport failure or timeout
            DaemonError: any other unexpected response
        """
        if not hashes:
            return []

        path = "/skynet/blocklist"
        resp = await self._request(
            "POST",
            path,
            params={"timeout": str(DAEMON_BLOCK_TIMEOUT_PARAM)},
            json={"add": [h.hex() for h in hashes], "remove": None, "ishash": True},
        )

        if resp.status_code == 400:
            raise DaemonRejectedError(resp.text.strip(), len(hashes))
        if resp.status_code == 204:
            return []
        if resp.status_code != 200:
            raise DaemonError(
                f"block request failed with status {resp.status_code}: {resp.text.strip()}",
                resp.status_code,
            )

        if not resp.content:
            return []
        data = self._decode(resp, path)

        invalids = []
        for entry in data.get("invalids") or []:
            if not isinstance(entry, dict):
                raise DaemonError(f"unexpected invalids entry {entry!r}", resp.status_code)
            try:
                invalids.append(ContentHash.from_hex(entry.get("input", "")))
            except InvalidHashError:
                logger.warning(f"Daemon reported unparseable invalid input: {entry!r}")
                continue
            logger.debug(f"Daemon rejected {entry.get('input')}: {entry.get('error')}")
        return invalids

    async def fetch_blocklist(self) -> List[ContentHash]:
        """Every hash the daemon currently enforces."""
        path = "/skynet/blocklist"
        resp = await self._request("GET", path)
        if resp.status_code != 200:
            raise DaemonError(f"blocklist request failed with status {resp.status_code}", resp.status_code)

        data = self._decode(resp, path)
        try:
            return [ContentHash.from_hex(h) for h in data.get("blocklist") or []]
        except (InvalidHashError, AttributeError) as e:
            raise DaemonError(f"malformed blocklist: {e}", resp.status_code) from e

    async def is_up(self) -> bool:
        """True only if the daemon reports every module ready."""
        try:
            resp = await self._request("GET", "/daemon/ready")
            if resp.status_code != 200:
                return False
            data = self._decode(resp, "/daemon/ready")
        except BlockerError as e:
            logger.debug(f"Daemon readiness check failed: {e}")
            return False

        return all(bool(data.get(k)) for k in ("ready", "consensus", "gateway", "renter"))

    async def resolve(self, link: ContentLink) -> ContentLink:
        """Resolve a version-2 link to the version-1 link it points at."""
        if link.version == 1:
            return link

        path = f"/skynet/resolve/{link.to_base64()}"
        resp = await self._request("GET", path)
        if resp.status_code != 200:
            raise DaemonError(f"resolve failed with status {resp.status_code}", resp.status_code)

        data = self._decode(resp, path)
        try:
            return ContentLink.from_string(str(data.get("skylink", "")))
        except InvalidLinkError as e:
            raise DaemonError(f"unable to load the resolved link: {e}", resp.status_code) from e
