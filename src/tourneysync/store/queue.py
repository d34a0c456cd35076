"""
TourneySync change queue.

Durable FIFO log of local mutations waiting to be pushed to the remote
store. Failed entries are retried on later sync cycles until they reach
MAX_RETRY_ATTEMPTS, after which they are kept for user acknowledgement.
"""

from __future__ import annotations

from typing import Any

from tourneysync.core.logging import get_logger
from tourneysync.core.models import (
    PERMANENT_FAILURE_PREFIX,
    ChangeOperation,
    ChangeQueueEntry,
    now_ms,
)
from tourneysync.store.database import ReplicaDatabase, dumps, loads

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 5
RETRY_DELAY_MS = 1000
MAX_RETRY_DELAY_MS = 30000

_COLUMNS = (
    "id, table_name, record_id, local_id, operation, payload, timestamp, attempts, last_error"
)


def retry_delay(attempts: int) -> int:
    """Advisory backoff in milliseconds for an entry with ``attempts`` failures."""
    return min(RETRY_DELAY_MS * 2 ** max(attempts, 0), MAX_RETRY_DELAY_MS)


class ChangeQueue:
    """Manages the queue of changes waiting to be synced to the server."""

    def __init__(
        self,
        database: ReplicaDatabase,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
    ) -> None:
        self.database = database
        self.max_attempts = max_attempts

    def enqueue(
        self,
        table: str,
        record_id: str | None,
        local_id: int,
        operation: ChangeOperation | str,
        payload: dict[str, Any],
    ) -> int:
        """Append a change and return its queue id."""
        operation = ChangeOperation(operation)
        with self.database.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO change_queue "
                "(table_name, record_id, local_id, operation, payload, timestamp, attempts) "
                "VALUES (?, ?, ?, ?, ?, ?, 0)",
                (table, record_id, local_id, operation.value, dumps(payload), now_ms()),
            )
            entry_id = int(cursor.lastrowid)

        logger.debug(
            "Change enqueued",
            entry_id=entry_id,
            table=table,
            operation=operation.value,
            local_id=local_id,
        )
        return entry_id

    def get(self, entry_id: int) -> ChangeQueueEntry | None:
        row = self.database.fetchone(
            f"SELECT {_COLUMNS} FROM change_queue WHERE id = ?", (entry_id,)
        )
        return self._to_entry(row) if row else None

    def list_pending(self) -> list[ChangeQueueEntry]:
        """All queued entries, oldest first."""
        rows = self.database.fetchall(
            f"SELECT {_COLUMNS} FROM change_queue ORDER BY timestamp, id"
        )
        return [self._to_entry(row) for row in rows]

    def list_pending_for_table(self, table: str) -> list[ChangeQueueEntry]:
        rows = self.database.fetchall(
            f"SELECT {_COLUMNS} FROM change_queue WHERE table_name = ? ORDER BY timestamp, id",
            (table,),
        )
        return [self._to_entry(row) for row in rows]

    def dequeue(self, entry_id: int) -> None:
        """Remove an entry after the remote acknowledged it."""
        self.database.execute("DELETE FROM change_queue WHERE id = ?", (entry_id,))

    def mark_failed(self, entry_id: int, error: str) -> bool:
        """Record a failed push attempt.

        Returns whether the entry may be retried. Once the attempt count
        reaches ``max_attempts`` the error is stored with a
        ``PERMANENT_FAILURE:`` prefix and the entry is no longer retried.
        """
        with self.database.transaction() as conn:
            row = conn.execute(
                "SELECT attempts FROM change_queue WHERE id = ?", (entry_id,)
            ).fetchone()
            if row is None:
                return False

            attempts = int(row[0]) + 1
            can_retry = attempts < self.max_attempts
            last_error = error if can_retry else f"{PERMANENT_FAILURE_PREFIX} {error}"
            conn.execute(
                "UPDATE change_queue SET attempts = ?, last_error = ? WHERE id = ?",
                (attempts, last_error, entry_id),
            )

        if can_retry:
            logger.warning(
                "Change push failed",
                entry_id=entry_id,
                attempts=attempts,
                retry_in_ms=retry_delay(attempts),
                error=error,
            )
        else:
            logger.error(
                "Change permanently failed",
                entry_id=entry_id,
                attempts=attempts,
                error=error,
            )
        return can_retry

    def retry_delay(self, attempts: int) -> int:
        return retry_delay(attempts)

    def list_failed(self) -> list[ChangeQueueEntry]:
        rows = self.database.fetchall(
            f"SELECT {_COLUMNS} FROM change_queue WHERE attempts >= ? ORDER BY timestamp, id",
            (self.max_attempts,),
        )
        return [self._to_entry(row) for row in rows]

    def clear_failed(self) -> int:
        """Purge permanently failed entries; returns how many were removed."""
        cursor = self.database.execute(
            "DELETE FROM change_queue WHERE attempts >= ?", (self.max_attempts,)
        )
        removed = cursor.rowcount
        if removed:
            logger.info("Cleared failed changes", count=removed)
        return removed

    def has_retryable(self) -> bool:
        row = self.database.fetchone(
            "SELECT 1 FROM change_queue WHERE attempts < ? LIMIT 1", (self.max_attempts,)
        )
        return row is not None

    def count(self) -> int:
        row = self.database.fetchone("SELECT COUNT(*) FROM change_queue")
        return int(row[0]) if row else 0

    def pending_for_record(self, table: str, local_id: int) -> int:
        """Number of retryable entries still queued for one local record."""
        row = self.database.fetchone(
            "SELECT COUNT(*) FROM change_queue "
            "WHERE table_name = ? AND local_id = ? AND attempts < ?",
            (table, local_id, self.max_attempts),
        )
        return int(row[0]) if row else 0

    def has_pending_delete(self, table: str, record_id: str) -> bool:
        """Whether a retryable delete of server record ``record_id`` is queued."""
        row = self.database.fetchone(
            "SELECT 1 FROM change_queue "
            "WHERE table_name = ? AND record_id = ? AND operation = ? AND attempts < ? LIMIT 1",
            (table, record_id, ChangeOperation.DELETE.value, self.max_attempts),
        )
        return row is not None

    def assign_record_id(self, table: str, local_id: int, record_id: str) -> int:
        """Backfill a newly assigned server id onto entries queued before it existed."""
        cursor = self.database.execute(
            "UPDATE change_queue SET record_id = ? "
            "WHERE table_name = ? AND local_id = ? AND record_id IS NULL "
            "AND operation != ?",
            (record_id, table, local_id, ChangeOperation.INSERT.value),
        )
        return cursor.rowcount

    def _to_entry(self, row: tuple[Any, ...]) -> ChangeQueueEntry:
        return ChangeQueueEntry(
            id=int(row[0]),
            table=row[1],
            record_id=row[2],
            local_id=int(row[3]),
            operation=ChangeOperation(row[4]),
            payload=loads(row[5]),
            timestamp=int(row[6]),
            attempts=int(row[7]),
            last_error=row[8],
        )
