"""
Blocker Report Intake

Turns a reported content link into a pending block record. The scan loop
picks the record up on its next cycle.
"""

from __future__ import annotations
import logging
from enum import Enum
from typing import List, Optional

from blocker.core.records import BlockRecord, Reporter
from blocker.core.types import ContentHash, ContentLink
from blocker.crypto.pow import BlockProof, ProofVerifier
from blocker.errors import BlockerError, InvalidLinkError, RecordExistsError
from blocker.network.daemon import EnforcementDaemon
from blocker.store.interface import PersistentStore

logger = logging.getLogger(__name__)


class ReportStatus(Enum):
    """Outcome of a block report."""
    REPORTED = "reported"
    DUPLICATE = "duplicate"


class ReportService:
    """
    Trusted and proof-of-work gated block reports.

    Reports for allowlisted content are answered as REPORTED without
    writing anything, so reporters cannot tell which hashes are allowlisted.
    """

    def __init__(
        self,
        store: PersistentStore,
        daemon: EnforcementDaemon,
        verifier: ProofVerifier,
    ):
        self.store = store
        self.daemon = daemon
        self.verifier = verifier

    async def resolve_hash(self, link_text: str) -> ContentHash:
        """
        Parse a link and hash it, resolving version-2 links first.

        Raises:
            InvalidLinkError: text holds no link, or resolution left a
                version-2 link behind
        """
        link = ContentLink.parse(link_text)
        if link.version != 1:
            try:
                link = await self.daemon.resolve(link)
            except BlockerError as e:
                logger.warning(f"Failed to resolve {link}: {e}")
            if link.version != 1:
                raise InvalidLinkError(link_text, "link could not be resolved to version 1")
        return ContentHash.from_link(link)

    async def report(
        self,
        link_text: str,
        reporter: Reporter,
        tags: Optional[List[str]] = None,
        sub: str = "",
    ) -> ReportStatus:
        """
        Record a block request.

        Args:
            link_text: Content link, bare or embedded in a URL
            reporter: Reporter contact details
            tags: Free-form abuse tags
            sub: Authenticated subject, empty for anonymous reports

        Returns:
            REPORTED for new records and allowlisted content, DUPLICATE if
            the hash was already reported
        """
        hash = await self.resolve_hash(link_text)

        if await self.store.is_allowlisted(hash):
            logger.info(f"Ignoring report for allowlisted hash {hash.hex()}")
            return ReportStatus.REPORTED

        reporter = Reporter(
            name=reporter.name,
            email=reporter.email,
            other_contact=reporter.other_contact,
            sub=sub,
            unauthenticated=(sub == ""),
        )
        record = BlockRecord.new(hash, reporter, tags)

        try:
            await self.store.create_record(record)
        except RecordExistsError:
            logger.debug(f"Duplicate report for {hash.hex()}")
            return ReportStatus.DUPLICATE

        logger.info(f"Added block record for {hash.hex()} with tags {record.tags}")
        return ReportStatus.REPORTED

    async def report_with_pow(
        self,
        link_text: str,
        reporter: Reporter,
        tags: Optional[List[str]],
        proof: BlockProof,
    ) -> ReportStatus:
        """
        Record a block request paid for with a proof of work.

        The proof is verified before anything touches the store; the proof's
        identity key becomes the record's subject.

        Raises:
            InvalidProofError: any proof failure
        """
        self.verifier.verify(proof)
        return await self.report(link_text, reporter, tags, sub=proof.identity_key.hex())
