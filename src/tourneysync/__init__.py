"""
TourneySync - Offline-first sync engine for tournament management clients.

Keeps a durable local replica of tournament data, queues local mutations
while offline, and reconciles with the authoritative remote store when
connectivity returns.
"""

__version__ = "1.0.0"
__author__ = "TourneySync Team"

from tourneysync.core.config import TourneySyncConfig
from tourneysync.core.session import Session

__all__ = ["TourneySyncConfig", "Session", "__version__"]
