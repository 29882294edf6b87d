"""Offline sync engine.

Tracks connectivity and drains the durable operation log against the remote
service, then reconciles the local store with a full remote listing.
"""

from .connectivity import ConnectivityMonitor
from .orchestrator import (
    DrainReport,
    EntryOutcome,
    Outcome,
    SyncOrchestrator,
    SyncResult,
    SyncState,
    SyncStatus,
)

__all__ = [
    "ConnectivityMonitor",
    "DrainReport",
    "EntryOutcome",
    "Outcome",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "SyncStatus",
]
