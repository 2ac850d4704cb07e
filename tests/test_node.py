"""
Blocker Node Tests
"""

import json

import pytest

from blocker.errors import DaemonUnavailableError, InvalidParameterError, StoreError
from blocker.node.config import BlockerConfig
from blocker.node.node import Node, main
from blocker.node.reports import ReportStatus
from blocker.core.records import Reporter
from blocker.store.sqlite import SQLiteStore

from conftest import FakeDaemon, FakePeer, make_hash


def _config() -> BlockerConfig:
    config = BlockerConfig.default_testing()
    config.scanner.sleep_between_scans = 0.01
    config.scanner.retry_interval = 0.01
    config.log.level = "WARNING"
    return config


class TestNode:
    """Tests for node wiring and lifecycle."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_start_report_and_stop(self, memory_store, daemon, link):
        node = Node(_config(), store=memory_store, daemon=daemon, peers=[])
        await node.start()
        try:
            assert node.blocker.running
            status = await node.reports.report(link.to_base64(), Reporter(name="a"), ["x"])
            assert status == ReportStatus.REPORTED
        finally:
            await node.stop()

        assert not node.blocker.running
        assert node.stop_event.is_set()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_syncer_wired_to_peers(self, memory_store):
        daemon = FakeDaemon()
        config = _config()
        config.sync.interval = 0.01
        node = Node(config, store=memory_store, daemon=daemon, peers=[FakePeer("https://p.example", [make_hash(3)])])
        await node.start()
        try:
            assert node.syncer._task is not None
        finally:
            await node.stop()

    @pytest.mark.asyncio
    async def test_daemon_down(self, memory_store):
        node = Node(_config(), store=memory_store, daemon=FakeDaemon(up=False), peers=[])
        with pytest.raises(DaemonUnavailableError):
            await node.start()
        assert node.blocker is None

    @pytest.mark.asyncio
    async def test_store_closed_when_ping_fails(self, tmp_path, monkeypatch):
        async def failing_ping(self):
            raise StoreError("ping", "database is locked")

        monkeypatch.setattr(SQLiteStore, "ping", failing_ping)
        config = _config()
        config.storage.db_path = str(tmp_path / "blocker.db")
        node = Node(config, daemon=FakeDaemon(), peers=[])

        with pytest.raises(StoreError):
            await node.start()
        assert node._owned == []
        assert node.store._conn is None
        assert node.blocker is None

    @pytest.mark.asyncio
    async def test_invalid_config(self, memory_store, daemon):
        config = _config()
        config.server_uid = ""
        node = Node(config, store=memory_store, daemon=daemon, peers=[])
        with pytest.raises(InvalidParameterError):
            await node.start()

    @pytest.mark.asyncio
    async def test_stop_before_start(self, memory_store, daemon):
        node = Node(_config(), store=memory_store, daemon=daemon, peers=[])
        await node.stop()


class TestMain:
    """Tests for the command line entry point."""

    def test_write_default_config(self, tmp_path):
        path = tmp_path / "config.json"
        assert main(["--write-default-config", str(path)]) == 0

        data = json.loads(path.read_text())
        assert data["server_uid"] == ""
        assert data["scanner"]["batch_size"] == 100

    def test_write_testing_config(self, tmp_path):
        path = tmp_path / "config.json"
        assert main(["--testing", "--write-default-config", str(path)]) == 0
        assert BlockerConfig.load(str(path)).validate() == []
