"""
TourneySync Store - Durable local replica and change queue.
"""

from tourneysync.store.database import ReplicaDatabase, StoreUnavailableError
from tourneysync.store.queue import ChangeQueue, retry_delay
from tourneysync.store.replica import LocalReplicaStore, RecordNotFoundError

__all__ = [
    "ReplicaDatabase",
    "StoreUnavailableError",
    "ChangeQueue",
    "retry_delay",
    "LocalReplicaStore",
    "RecordNotFoundError",
]
