"""
TourneySync local replica store.

Keyed by the locally-assigned ``_local_id``; the server ``id`` is a
secondary index that only exists once the remote has accepted an insert.
"""

from __future__ import annotations

from typing import Any

from tourneysync.core.logging import get_logger
from tourneysync.core.models import LOCAL_ID, SYNC_STATUS, Record, SyncStatus
from tourneysync.store.database import ReplicaDatabase, dumps, loads

logger = get_logger(__name__)


class RecordNotFoundError(KeyError):
    """Raised when a local record does not exist."""

    def __init__(self, table: str, local_id: int) -> None:
        super().__init__(f"{table}:{local_id}")
        self.table = table
        self.local_id = local_id

    def __str__(self) -> str:
        return f"Record not found: {self.table} (local id {self.local_id})"


class LocalReplicaStore:
    """Durable per-table record collection with stable local ids."""

    def __init__(self, database: ReplicaDatabase) -> None:
        self.database = database

    def get(self, table: str, local_id: int) -> Record | None:
        row = self.database.fetchone(
            "SELECT local_id, data FROM records WHERE table_name = ? AND local_id = ?",
            (table, local_id),
        )
        return self._to_record(row) if row else None

    def find_by_server_id(self, table: str, server_id: str) -> Record | None:
        row = self.database.fetchone(
            "SELECT local_id, data FROM records WHERE table_name = ? AND server_id = ? "
            "ORDER BY local_id LIMIT 1",
            (table, server_id),
        )
        return self._to_record(row) if row else None

    def insert(self, table: str, record: Record) -> int:
        """Store a new record and return its assigned local id."""
        data = {k: v for k, v in record.items() if k != LOCAL_ID}
        with self.database.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO records (table_name, server_id, data) VALUES (?, ?, ?)",
                (table, data.get("id"), dumps(data)),
            )
            local_id = int(cursor.lastrowid)
        logger.debug("Local record inserted", table=table, local_id=local_id)
        return local_id

    def update(self, table: str, local_id: int, patch: dict[str, Any]) -> Record:
        """Apply a partial update and return the stored record."""
        with self.database.transaction() as conn:
            row = conn.execute(
                "SELECT local_id, data FROM records WHERE table_name = ? AND local_id = ?",
                (table, local_id),
            ).fetchone()
            if row is None:
                raise RecordNotFoundError(table, local_id)

            current = loads(row[1])
            updated = {**current, **{k: v for k, v in patch.items() if k != LOCAL_ID}}

            existing_id = current.get("id")
            if existing_id is not None and updated.get("id") != existing_id:
                logger.warning(
                    "Ignoring server id change",
                    table=table,
                    local_id=local_id,
                    server_id=existing_id,
                    attempted=updated.get("id"),
                )
                updated["id"] = existing_id

            conn.execute(
                "UPDATE records SET server_id = ?, data = ? WHERE local_id = ?",
                (updated.get("id"), dumps(updated), local_id),
            )
        return {**updated, LOCAL_ID: local_id}

    def delete(self, table: str, local_id: int) -> None:
        with self.database.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM records WHERE table_name = ? AND local_id = ?",
                (table, local_id),
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(table, local_id)
        logger.debug("Local record deleted", table=table, local_id=local_id)

    def all(self, table: str) -> list[Record]:
        rows = self.database.fetchall(
            "SELECT local_id, data FROM records WHERE table_name = ? ORDER BY local_id",
            (table,),
        )
        return [self._to_record(row) for row in rows]

    def query(self, table: str, field: str, value: Any) -> list[Record]:
        """Return records of a table whose ``field`` equals ``value``."""
        return [record for record in self.all(table) if record.get(field) == value]

    def find_by_status(self, table: str, status: SyncStatus) -> list[Record]:
        return self.query(table, SYNC_STATUS, status.value)

    def count(self, table: str) -> int:
        row = self.database.fetchone(
            "SELECT COUNT(*) FROM records WHERE table_name = ?", (table,)
        )
        return int(row[0]) if row else 0

    def raw_rows(self, table: str) -> list[tuple[int, str | None, str]]:
        """Persisted rows as stored on disk, for integrity checks."""
        rows = self.database.fetchall(
            "SELECT local_id, server_id, data FROM records WHERE table_name = ? "
            "ORDER BY local_id",
            (table,),
        )
        return [(int(r[0]), r[1], r[2]) for r in rows]

    def _to_record(self, row: tuple[Any, ...]) -> Record:
        record = loads(row[1])
        record[LOCAL_ID] = int(row[0])
        return record
