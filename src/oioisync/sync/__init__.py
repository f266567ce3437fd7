"""Snapshot diffing and periodic synchronization with the partner."""

from .mapper import IdentityMapper, evse_status_to_connector_status, plug_to_connector_type
from .scheduler import StreamName, StreamState, SyncReport, SyncScheduler
from .snapshot import JSONFileSnapshotProvider, SnapshotProvider, StaticSnapshotProvider
from .tracker import Diff, diff, status_updates

__all__ = [
    "Diff",
    "IdentityMapper",
    "JSONFileSnapshotProvider",
    "SnapshotProvider",
    "StaticSnapshotProvider",
    "StreamName",
    "StreamState",
    "SyncReport",
    "SyncScheduler",
    "diff",
    "evse_status_to_connector_status",
    "plug_to_connector_type",
    "status_updates",
]
