"""
Blocker Network Clients

Enforcement daemon and peer portal access.
"""

from blocker.network.daemon import EnforcementDaemon, DaemonClient
from blocker.network.peer import PeerClient, PortalClient, BlocklistPage

__all__ = [
    "EnforcementDaemon",
    "DaemonClient",
    "PeerClient",
    "PortalClient",
    "BlocklistPage",
]
