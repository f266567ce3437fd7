"""
oioisync - OIOI v4 synchronization adapter

Pushes charging station topology, connector status and finished charging
sessions from a local charging backend to the OIOI partner API.
"""

__version__ = "0.1.0"

from .hooks import CustomizationHooks
from .protocol import CPOClient, Result
from .sync import IdentityMapper, SyncScheduler

__all__ = ["CPOClient", "CustomizationHooks", "IdentityMapper", "Result", "SyncScheduler"]
