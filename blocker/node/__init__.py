"""
Blocker Node Components
"""

from blocker.node.config import BlockerConfig, setup_logging, sanitize_portal_url
from blocker.node.purge import CachePurgeList
from blocker.node.blocker import Blocker
from blocker.node.syncer import Syncer
from blocker.node.reports import ReportService, ReportStatus
from blocker.node.node import Node

__all__ = [
    "BlockerConfig",
    "setup_logging",
    "sanitize_portal_url",
    "CachePurgeList",
    "Blocker",
    "Syncer",
    "ReportService",
    "ReportStatus",
    "Node",
]
