"""
TourneySync Sync - Engine, conflict resolution and connectivity.
"""

from tourneysync.sync.connectivity import ConnectivityMonitor
from tourneysync.sync.engine import EngineStatus, SyncEngine, SyncReport
from tourneysync.sync.lifecycle import (
    ConnectivityBinding,
    get_sync_engine,
    initialize_sync_engine,
    stop_sync_engine,
)
from tourneysync.sync.records import RecordService
from tourneysync.sync.resolver import (
    ClientWins,
    ConflictResolver,
    LastWriteWins,
    Manual,
    Merge,
    ServerWins,
    resolve_conflict,
)

__all__ = [
    "ConnectivityMonitor",
    "EngineStatus",
    "SyncEngine",
    "SyncReport",
    "ConnectivityBinding",
    "get_sync_engine",
    "initialize_sync_engine",
    "stop_sync_engine",
    "RecordService",
    "ClientWins",
    "ConflictResolver",
    "LastWriteWins",
    "Manual",
    "Merge",
    "ServerWins",
    "resolve_conflict",
]
