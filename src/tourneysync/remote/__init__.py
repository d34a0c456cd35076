"""
TourneySync Remote - Adapters for the authoritative remote store.
"""

from tourneysync.remote.base import RemoteError, RemoteResult, RemoteStore
from tourneysync.remote.memory import MemoryRemoteStore
from tourneysync.remote.rest import RestRemoteStore

__all__ = [
    "RemoteError",
    "RemoteResult",
    "RemoteStore",
    "MemoryRemoteStore",
    "RestRemoteStore",
]
