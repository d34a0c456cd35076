"""
TourneySync replica database.

A single SQLite file holds every replicated table plus the change queue.
Records are stored as canonical JSON so that identical content is
byte-identical on disk.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from tourneysync.core.logging import get_logger

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    local_id INTEGER PRIMARY KEY AUTOINCREMENT,
    table_name TEXT NOT NULL,
    server_id TEXT,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS change_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    table_name TEXT NOT NULL,
    record_id TEXT,
    local_id INTEGER NOT NULL,
    operation TEXT NOT NULL,
    payload TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);

CREATE INDEX IF NOT EXISTS idx_records_table_server
    ON records(table_name, server_id);

CREATE INDEX IF NOT EXISTS idx_queue_timestamp
    ON change_queue(timestamp);

CREATE INDEX IF NOT EXISTS idx_queue_table
    ON change_queue(table_name);
"""


class StoreUnavailableError(Exception):
    """Raised when the replica database cannot be used."""


def dumps(value: Any) -> str:
    """Canonical JSON encoding used for everything persisted."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def loads(value: str) -> Any:
    return json.loads(value)


class ReplicaDatabase:
    """Durable SQLite backing for the replica store and change queue."""

    def __init__(self, path: Path | str = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = sqlite3.connect(
            self.path, check_same_thread=False
        )
        if self.path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA)
        self._conn.commit()
        logger.debug("Replica database opened", path=self.path)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements atomically under the connection lock."""
        with self._lock:
            if self._conn is None:
                raise StoreUnavailableError(f"Replica database is closed: {self.path}")
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreUnavailableError(str(exc)) from exc
            except BaseException:
                self._conn.rollback()
                raise

    def fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[tuple[Any, ...]]:
        with self.transaction() as conn:
            return conn.execute(sql, params).fetchall()

    def fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> tuple[Any, ...] | None:
        with self.transaction() as conn:
            return conn.execute(sql, params).fetchone()

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        with self.transaction() as conn:
            return conn.execute(sql, params)

    def clear(self) -> None:
        """Remove all replicated records and queued changes (logout/reset)."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM records")
            conn.execute("DELETE FROM change_queue")
        logger.info("Replica database cleared", path=self.path)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Replica database closed", path=self.path)

    def __enter__(self) -> ReplicaDatabase:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
