"""
Blocker Core Data Structures
"""

from blocker.core.types import ContentHash, ContentLink, diff_hashes, build_lookup_table
from blocker.core.records import Reporter, BlockRecord, AllowlistRecord, BlockedHash, now_ns

__all__ = [
    # Types
    "ContentHash",
    "ContentLink",
    "diff_hashes",
    "build_lookup_table",
    # Records
    "Reporter",
    "BlockRecord",
    "AllowlistRecord",
    "BlockedHash",
    "now_ns",
]
