"""
Blocker Report Intake Tests
"""

import pytest

from blocker.core.records import AllowlistRecord, Reporter
from blocker.core.types import ContentLink
from blocker.crypto.pow import BlockProof, ProofVersion, ProofVerifier, identity_from_seed, sign_proof
from blocker.errors import InsufficientWorkError, InvalidLinkError, InvalidSignatureError
from blocker.node.reports import ReportService, ReportStatus

EASIEST = bytes([0xFF] * 32)


@pytest.fixture
def service(memory_store, daemon) -> ReportService:
    return ReportService(memory_store, daemon, ProofVerifier(EASIEST))


@pytest.fixture
def proof(seed) -> BlockProof:
    unsigned = BlockProof(ProofVersion.V1, bytes(8), identity_from_seed(seed))
    return sign_proof(seed, unsigned)


class TestTrustedReports:
    """Tests for reports that skip proof of work."""

    @pytest.mark.asyncio
    async def test_report_creates_pending_record(self, service, memory_store, link):
        status = await service.report(
            f"https://siasky.net/{link.to_base64()}",
            Reporter(name="alice", email="alice@example.com"),
            ["phishing"],
        )

        assert status == ReportStatus.REPORTED
        rec = memory_store.records[link.hash()]
        assert rec.tags == ["phishing"]
        assert rec.reporter.name == "alice"
        assert rec.reporter.unauthenticated
        assert not rec.failed and not rec.invalid
        assert rec.hash in await memory_store.pending_since(0)

    @pytest.mark.asyncio
    async def test_duplicate(self, service, link):
        await service.report(link.to_base64(), Reporter(name="a"), ["x"])
        status = await service.report(link.to_base32(), Reporter(name="b"), ["y"])
        assert status == ReportStatus.DUPLICATE

    @pytest.mark.asyncio
    async def test_authenticated_subject(self, service, memory_store, link):
        await service.report(link.to_base64(), Reporter(name="a"), [], sub="user-42")
        rec = memory_store.records[link.hash()]
        assert rec.reporter.sub == "user-42"
        assert not rec.reporter.unauthenticated

    @pytest.mark.asyncio
    async def test_allowlisted_is_silent(self, service, memory_store, link):
        await memory_store.create_allowlist_record(AllowlistRecord(hash=link.hash(), timestamp_added=1))
        status = await service.report(link.to_base64(), Reporter(name="a"), ["x"])
        assert status == ReportStatus.REPORTED
        assert memory_store.records == {}

    @pytest.mark.asyncio
    async def test_no_link(self, service, memory_store):
        with pytest.raises(InvalidLinkError):
            await service.report("https://siasky.net/", Reporter(), [])
        assert memory_store.records == {}


class TestLinkResolution:
    """Tests for version-2 link handling."""

    @pytest.mark.asyncio
    async def test_v2_resolved(self, service, daemon, memory_store, link):
        v2 = ContentLink(bitfield=1, merkle_root=bytes(32))
        daemon.resolutions[v2] = link

        assert await service.resolve_hash(v2.to_base64()) == link.hash()
        await service.report(v2.to_base64(), Reporter(), [])
        assert link.hash() in memory_store.records

    @pytest.mark.asyncio
    async def test_v2_unresolvable(self, service, memory_store):
        v2 = ContentLink(bitfield=1, merkle_root=bytes(32))
        with pytest.raises(InvalidLinkError):
            await service.report(v2.to_base64(), Reporter(), [])
        assert memory_store.records == {}


class TestProofReports:
    """Tests for proof-of-work gated reports."""

    @pytest.mark.asyncio
    async def test_identity_becomes_subject(self, service, memory_store, link, proof):
        status = await service.report_with_pow(link.to_base64(), Reporter(name="anon"), ["spam"], proof)

        assert status == ReportStatus.REPORTED
        rec = memory_store.records[link.hash()]
        assert rec.reporter.sub == proof.identity_key.hex()
        assert not rec.reporter.unauthenticated

    @pytest.mark.asyncio
    async def test_bad_signature_writes_nothing(self, service, memory_store, link, proof):
        forged = BlockProof(proof.version, proof.nonce, proof.identity_key, bytes(64))
        with pytest.raises(InvalidSignatureError):
            await service.report_with_pow(link.to_base64(), Reporter(), [], forged)
        assert memory_store.records == {}

    @pytest.mark.asyncio
    async def test_insufficient_work_writes_nothing(self, memory_store, daemon, link, proof):
        service = ReportService(memory_store, daemon, ProofVerifier(bytes(32)))
        with pytest.raises(InsufficientWorkError):
            await service.report_with_pow(link.to_base64(), Reporter(), [], proof)
        assert memory_store.records == {}
