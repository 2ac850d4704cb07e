"""
Blocker
Blocklist propagation and cross-portal synchronization node.

Pending block records flow from the shared store to the enforcement
daemon; peer portal blocklists flow back in through the syncer.
"""

__version__ = "0.3.0"
__author__ = "Blocker Team"

from blocker.constants import BATCH_SIZE, BATCH_SHRINK_DIVISOR

__all__ = [
    "BATCH_SIZE",
    "BATCH_SHRINK_DIVISOR",
    "__version__",
]
