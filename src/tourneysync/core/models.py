"""
TourneySync data models.

Defines the bookkeeping fields carried by replicated records, the change
queue entry, and the values exchanged during conflict resolution.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

Record = dict[str, Any]

# Local-only bookkeeping keys stored alongside business fields.
LOCAL_ID = "_local_id"
SYNC_STATUS = "_sync_status"
LAST_MODIFIED = "_last_modified"
SERVER_TIMESTAMP = "_server_timestamp"

BOOKKEEPING_FIELDS = (LOCAL_ID, SYNC_STATUS, LAST_MODIFIED, SERVER_TIMESTAMP)

PERMANENT_FAILURE_PREFIX = "PERMANENT_FAILURE:"


class SyncStatus(Enum):
    """Per-record synchronization state."""

    SYNCED = "synced"
    PENDING = "pending"
    CONFLICT = "conflict"
    ERROR = "error"


class ChangeOperation(Enum):
    """Mutation kinds carried by the change queue."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(Enum):
    """Replicated entity types, valued by their table name."""

    USERS = "users"
    TOURNAMENTS = "tournaments"
    REGISTRATIONS = "registrations"
    ROUNDS = "rounds"
    MATCHES = "matches"


class MatchConfirmation(Enum):
    """Values of a match's ``confirmation_status`` field."""

    PENDING = "pending"
    PARTIAL = "partial"
    DISPUTED = "disputed"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ChangeQueueEntry:
    """One pending local mutation awaiting remote acknowledgement."""

    id: int
    table: str
    record_id: str | None
    local_id: int
    operation: ChangeOperation
    payload: dict[str, Any]
    timestamp: int
    attempts: int = 0
    last_error: str | None = None

    @property
    def is_permanent_failure(self) -> bool:
        return bool(self.last_error and self.last_error.startswith(PERMANENT_FAILURE_PREFIX))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "table": self.table,
            "record_id": self.record_id,
            "local_id": self.local_id,
            "operation": self.operation.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class ConflictInfo:
    """A local/server disagreement found during the pull phase."""

    local_version: Record
    server_version: Record
    table: str
    record_id: str


@dataclass
class ResolutionResult:
    """Outcome of resolving a ConflictInfo."""

    resolved: Record
    strategy: str
    requires_user_action: bool = False


@dataclass
class ConflictEvent:
    """Payload delivered to the conflict callback."""

    table: str
    record_id: str
    local_version: Record
    server_version: Record
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "record_id": self.record_id,
            "local_version": self.local_version,
            "server_version": self.server_version,
            "detected_at": self.detected_at.isoformat(),
        }


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def iso_to_ms(value: str | None) -> int:
    """Convert an ISO-8601 timestamp to epoch milliseconds.

    Missing or unparseable values map to 0, and naive timestamps are read
    as UTC.
    """
    if not value:
        return 0
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def strip_bookkeeping(record: Record) -> Record:
    """Return the business fields of a record."""
    return {k: v for k, v in record.items() if k not in BOOKKEEPING_FIELDS}
