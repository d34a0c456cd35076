"""
TourneySync Core - Shared configuration, logging and record types.
"""

from tourneysync.core.config import TourneySyncConfig, load_config
from tourneysync.core.logging import get_logger, setup_logging
from tourneysync.core.models import (
    ChangeOperation,
    ChangeQueueEntry,
    ConflictInfo,
    EntityType,
    ResolutionResult,
    SyncStatus,
)

__all__ = [
    "TourneySyncConfig",
    "load_config",
    "get_logger",
    "setup_logging",
    "ChangeOperation",
    "ChangeQueueEntry",
    "ConflictInfo",
    "EntityType",
    "ResolutionResult",
    "SyncStatus",
]
