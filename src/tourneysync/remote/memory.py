"""
In-process remote store.

Behaves like the authoritative server for tests and offline demos: assigns
uuid ids and ``updated_at`` timestamps, and can be told to fail.
"""

from __future__ import annotations

import copy
import threading
import uuid
from typing import Any

from tourneysync.core.models import strip_bookkeeping, utc_now_iso
from tourneysync.remote.base import RemoteError, RemoteResult, RemoteStore


class MemoryRemoteStore(RemoteStore):
    """Thread-safe dictionary-backed RemoteStore implementation."""

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._failures: dict[tuple[str, str], RemoteError] = {}
        self.calls: list[tuple[str, str]] = []
        for table, rows in (tables or {}).items():
            for row in rows:
                self.seed(table, row)

    def seed(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Place a row directly on the server side."""
        stored = dict(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("updated_at", utc_now_iso())
        with self._lock:
            self._tables.setdefault(table, {})[stored["id"]] = stored
        return copy.deepcopy(stored)

    def rows(self, table: str) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(list(self._tables.get(table, {}).values()))

    def fail(self, operation: str, table: str, error: RemoteError | str = "Service unavailable") -> None:
        """Make every subsequent ``operation`` on ``table`` fail."""
        if isinstance(error, str):
            error = RemoteError(error, status_code=503)
        self._failures[(operation, table)] = error

    def recover(self, operation: str | None = None, table: str | None = None) -> None:
        if operation is None and table is None:
            self._failures.clear()
            return
        self._failures.pop((operation or "", table or ""), None)

    def select(self, table: str) -> RemoteResult:
        self.calls.append(("select", table))
        if error := self._failures.get(("select", table)):
            return RemoteResult(error=error)
        return RemoteResult(data=self.rows(table))

    def insert(self, table: str, payload: dict[str, Any]) -> RemoteResult:
        self.calls.append(("insert", table))
        if error := self._failures.get(("insert", table)):
            return RemoteResult(error=error)
        row = strip_bookkeeping(payload)
        row["id"] = row.get("id") or str(uuid.uuid4())
        row["updated_at"] = utc_now_iso()
        with self._lock:
            self._tables.setdefault(table, {})[row["id"]] = row
        return RemoteResult(data=copy.deepcopy(row))

    def update(self, table: str, record_id: str, payload: dict[str, Any]) -> RemoteResult:
        self.calls.append(("update", table))
        if error := self._failures.get(("update", table)):
            return RemoteResult(error=error)
        with self._lock:
            existing = self._tables.get(table, {}).get(record_id)
            if existing is None:
                return RemoteResult(
                    error=RemoteError(f"{table} {record_id} not found", status_code=404)
                )
            existing.update(strip_bookkeeping(payload))
            existing["id"] = record_id
            existing["updated_at"] = utc_now_iso()
            return RemoteResult(data=copy.deepcopy(existing))

    def delete(self, table: str, record_id: str) -> RemoteResult:
        self.calls.append(("delete", table))
        if error := self._failures.get(("delete", table)):
            return RemoteResult(error=error)
        with self._lock:
            self._tables.get(table, {}).pop(record_id, None)
        return RemoteResult()
