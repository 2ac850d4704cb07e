"""
Blocker HTTP Client Tests

Both clients run against httpx.MockTransport, no sockets are opened.
"""

import json

import httpx
import pytest

from blocker.constants import DAEMON_USER_AGENT
from blocker.core.types import ContentLink
from blocker.errors import (
    DaemonError,
    DaemonRejectedError,
    DaemonUnavailableError,
    PeerResponseError,
    PeerUnreachableError,
)
from blocker.network.daemon import DaemonClient, EnforcementDaemon
from blocker.network.peer import PeerClient, PortalClient

from conftest import make_hash

DAEMON_URL = "http://sia:9980"
PORTAL_URL = "https://peer.example"


def _daemon(handler, password: str = "") -> DaemonClient:
    return DaemonClient(DAEMON_URL, api_password=password, transport=httpx.MockTransport(handler))


def _portal(handler) -> PortalClient:
    return PortalClient(PORTAL_URL, transport=httpx.MockTransport(handler))


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


# ==============================================================================
# Daemon
# ==============================================================================

class TestDaemonSubmit:
    """Tests for POST /skynet/blocklist."""

    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        hashes = [make_hash(1), make_hash(2)]
        async with _daemon(handler, password="pw") as client:
            assert isinstance(client, EnforcementDaemon)
            assert await client.submit_block_batch(hashes) == []

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/skynet/blocklist"
        assert request.url.params["timeout"] == "30"
        assert request.headers["User-Agent"] == DAEMON_USER_AGENT
        assert request.headers["Authorization"] == "Basic OnB3"
        assert json.loads(request.content) == {
            "add": [h.hex() for h in hashes],
            "remove": None,
            "ishash": True,
        }

    @pytest.mark.asyncio
    async def test_no_auth_without_password(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        async with _daemon(handler) as client:
            await client.submit_block_batch([make_hash(1)])
        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_empty_batch_sends_nothing(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        async with _daemon(handler) as client:
            assert await client.submit_block_batch([]) == []
        assert seen == []

    @pytest.mark.asyncio
    async def test_invalids_parsed(self):
        def handler(request):
            return httpx.Response(200, json={
                "invalids": [
                    {"input": make_hash(2).hex(), "error": "not a valid hash"},
                    {"input": "garbage", "error": "not a valid hash"},
                ],
            })

        async with _daemon(handler) as client:
            invalids = await client.submit_block_batch([make_hash(1), make_hash(2)])
        assert invalids == [make_hash(2)]

    @pytest.mark.asyncio
    async def test_ok_without_invalids(self):
        async with _daemon(lambda r: httpx.Response(200, json={})) as client:
            assert await client.submit_block_batch([make_hash(1)]) == []

    @pytest.mark.asyncio
    async def test_bad_request_is_rejection(self):
        def handler(request):
            return httpx.Response(400, text="invalid hash in batch")

        async with _daemon(handler) as client:
            with pytest.raises(DaemonRejectedError) as exc_info:
                await client.submit_block_batch([make_hash(1), make_hash(2)])
        assert exc_info.value.details["batch_size"] == 2

    @pytest.mark.asyncio
    async def test_server_error_is_not_rejection(self):
        async with _daemon(lambda r: httpx.Response(500, text="boom")) as client:
            with pytest.raises(DaemonError) as exc_info:
                await client.submit_block_batch([make_hash(1)])
        assert not isinstance(exc_info.value, DaemonRejectedError)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        async with _daemon(_refuse) as client:
            with pytest.raises(DaemonUnavailableError):
                await client.submit_block_batch([make_hash(1)])


class TestDaemonQueries:
    """Tests for blocklist, readiness and link resolution."""

    @pytest.mark.asyncio
    async def test_fetch_blocklist(self):
        hashes = [make_hash(i) for i in range(3)]

        def handler(request):
            assert request.method == "GET"
            return httpx.Response(200, json={"blocklist": [h.hex() for h in hashes]})

        async with _daemon(handler) as client:
            assert await client.fetch_blocklist() == hashes

    @pytest.mark.asyncio
    async def test_fetch_blocklist_malformed(self):
        def handler(request):
            return httpx.Response(200, json={"blocklist": ["nope"]})

        async with _daemon(handler) as client:
            with pytest.raises(DaemonError):
                await client.fetch_blocklist()

    @pytest.mark.asyncio
    async def test_is_up(self):
        def handler(request):
            assert request.url.path == "/daemon/ready"
            return httpx.Response(200, json={"ready": True, "consensus": True, "gateway": True, "renter": True})

        async with _daemon(handler) as client:
            assert await client.is_up()

    @pytest.mark.asyncio
    async def test_is_up_module_not_ready(self):
        def handler(request):
            return httpx.Response(200, json={"ready": True, "consensus": False, "gateway": True, "renter": True})

        async with _daemon(handler) as client:
            assert not await client.is_up()

    @pytest.mark.asyncio
    async def test_is_up_unreachable(self):
        async with _daemon(_refuse) as client:
            assert not await client.is_up()

    @pytest.mark.asyncio
    async def test_resolve_v1_is_local(self, link):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(500)

        async with _daemon(handler) as client:
            assert await client.resolve(link) == link
        assert seen == []

    @pytest.mark.asyncio
    async def test_resolve_v2(self, link):
        v2 = ContentLink(bitfield=1, merkle_root=bytes(32))

        def handler(request):
            assert request.url.path == f"/skynet/resolve/{v2.to_base64()}"
            return httpx.Response(200, json={"skylink": link.to_base64()})

        async with _daemon(handler) as client:
            assert await client.resolve(v2) == link

    @pytest.mark.asyncio
    async def test_resolve_not_found(self):
        v2 = ContentLink(bitfield=1, merkle_root=bytes(32))
        async with _daemon(lambda r: httpx.Response(404)) as client:
            with pytest.raises(DaemonError):
                await client.resolve(v2)


# ==============================================================================
# Peer portal
# ==============================================================================

class TestPortalClient:
    """Tests for GET /skynet/portal/blocklist."""

    @pytest.mark.asyncio
    async def test_page_parsed(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "entries": [
                    {"hash": make_hash(1).hex(), "tags": ["phishing"]},
                    {"hash": make_hash(2).hex(), "tags": None},
                ],
                "hasmore": True,
            })

        client = _portal(handler)
        try:
            assert isinstance(client, PeerClient)
            page = await client.fetch_blocklist(offset=20, limit=10)
        finally:
            await client.close()

        assert [e.hash for e in page.entries] == [make_hash(1), make_hash(2)]
        assert page.entries[0].tags == ["phishing"]
        assert page.entries[1].tags == []
        assert page.has_more

        params = seen[0].url.params
        assert seen[0].url.path == "/skynet/portal/blocklist"
        assert (params["offset"], params["limit"], params["sort"]) == ("20", "10", "desc")

    @pytest.mark.asyncio
    async def test_empty_page(self):
        client = _portal(lambda r: httpx.Response(200, json={"entries": [], "hasmore": False}))
        try:
            page = await client.fetch_blocklist()
        finally:
            await client.close()
        assert page.entries == []
        assert not page.has_more

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,kwargs", [
        (500, {}),
        (200, {"text": "<html>not json</html>"}),
        (200, {"json": ["not", "an", "object"]}),
        (200, {"json": {"entries": [{"tags": []}]}}),
        (200, {"json": {"entries": [{"hash": "xyz"}]}}),
    ])
    async def test_bad_responses(self, status, kwargs):
        client = _portal(lambda r: httpx.Response(status, **kwargs))
        try:
            with pytest.raises(PeerResponseError):
                await client.fetch_blocklist()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        client = _portal(_refuse)
        try:
            with pytest.raises(PeerUnreachableError):
                await client.fetch_blocklist()
        finally:
            await client.close()
