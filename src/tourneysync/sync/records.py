"""
TourneySync record service.

The surface the UI reads and writes through. Mutations are applied to the
local replica immediately, appended to the change queue, and nudge the sync
engine when it is online. Reads only ever touch the local replica.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any

from tourneysync.core.logging import get_logger
from tourneysync.core.models import (
    LAST_MODIFIED,
    LOCAL_ID,
    SYNC_STATUS,
    ChangeOperation,
    EntityType,
    MatchConfirmation,
    Record,
    SyncStatus,
    now_ms,
    strip_bookkeeping,
)
from tourneysync.store.queue import ChangeQueue
from tourneysync.store.replica import LocalReplicaStore, RecordNotFoundError
from tourneysync.sync.engine import SyncEngine
from tourneysync.sync.lifecycle import get_sync_engine

logger = get_logger(__name__)

EngineProvider = Callable[[], SyncEngine | None]

MATCHES = EntityType.MATCHES.value


def _business_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in strip_bookkeeping(data).items() if k != "id"}


def confirmation_status_for(confirmed_by_p1: bool, confirmed_by_p2: bool, current: str | None) -> str:
    """Derive a match's confirmation status from its player confirmations."""
    if confirmed_by_p1 and confirmed_by_p2:
        return MatchConfirmation.CONFIRMED.value
    if confirmed_by_p1 or confirmed_by_p2:
        return MatchConfirmation.PARTIAL.value
    return current or MatchConfirmation.PENDING.value


class RecordService:
    """Optimistic local CRUD with queued remote propagation."""

    def __init__(
        self,
        replica: LocalReplicaStore,
        queue: ChangeQueue,
        engine: SyncEngine | EngineProvider | None = get_sync_engine,
        sync_on_mutate: bool = True,
    ) -> None:
        self.replica = replica
        self.queue = queue
        self._engine = engine
        self.sync_on_mutate = sync_on_mutate

    @property
    def engine(self) -> SyncEngine | None:
        if isinstance(self._engine, SyncEngine) or self._engine is None:
            return self._engine
        return self._engine()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_record(self, table: str, data: dict[str, Any]) -> Record:
        """Create a record locally and queue its insert."""
        payload = _business_fields(data)
        record: Record = {
            **payload,
            "id": None,
            SYNC_STATUS: SyncStatus.PENDING.value,
            LAST_MODIFIED: now_ms(),
        }
        local_id = self.replica.insert(table, record)
        self.queue.enqueue(table, None, local_id, ChangeOperation.INSERT, payload)

        logger.info("Record created locally", table=table, local_id=local_id)
        self._request_sync()
        return {**record, LOCAL_ID: local_id}

    def update_record(self, table: str, local_id: int, data: dict[str, Any]) -> Record | None:
        """Patch a record locally and queue the update; None if it does not exist."""
        existing = self.replica.get(table, local_id)
        if existing is None:
            return None

        changes = _business_fields(data)
        updated = self.replica.update(
            table,
            local_id,
            {**changes, SYNC_STATUS: SyncStatus.PENDING.value, LAST_MODIFIED: now_ms()},
        )
        # Without a server id yet, the id is filled in once the queued insert lands.
        self.queue.enqueue(table, existing.get("id"), local_id, ChangeOperation.UPDATE, changes)

        self._request_sync()
        return updated

    def delete_record(self, table: str, local_id: int) -> bool:
        """Delete a record locally and queue the remote delete."""
        existing = self.replica.get(table, local_id)
        if existing is None:
            return False

        if existing.get("id") or self.queue.pending_for_record(table, local_id):
            self.queue.enqueue(table, existing.get("id"), local_id, ChangeOperation.DELETE, {})

        self.replica.delete(table, local_id)
        logger.info("Record deleted locally", table=table, local_id=local_id)
        self._request_sync()
        return True

    def submit_match_scores(
        self,
        match_local_id: int,
        player_id: str,
        scores: dict[str, Any],
    ) -> Record:
        """Record one player's scores, which also counts as their confirmation."""
        match = self.replica.get(MATCHES, match_local_id)
        if match is None:
            raise RecordNotFoundError(MATCHES, match_local_id)

        is_player1 = match.get("player1_id") == player_id
        is_player2 = match.get("player2_id") == player_id
        if not is_player1 and not is_player2:
            raise ValueError(f"Player {player_id} is not in this match")

        updated_scores = copy.deepcopy(match.get("scores")) or {"player1": {}, "player2": {}}
        updated_scores["player1" if is_player1 else "player2"] = dict(scores)

        confirmed_by_p1 = True if is_player1 else bool(match.get("confirmed_by_p1"))
        confirmed_by_p2 = True if is_player2 else bool(match.get("confirmed_by_p2"))
        changes = {
            "scores": updated_scores,
            "confirmed_by_p1": confirmed_by_p1,
            "confirmed_by_p2": confirmed_by_p2,
            "confirmation_status": confirmation_status_for(
                confirmed_by_p1, confirmed_by_p2, match.get("confirmation_status")
            ),
        }

        updated = self.replica.update(
            MATCHES,
            match_local_id,
            {**changes, SYNC_STATUS: SyncStatus.PENDING.value, LAST_MODIFIED: now_ms()},
        )
        self.queue.enqueue(MATCHES, match.get("id"), match_local_id, ChangeOperation.UPDATE, changes)

        logger.info(
            "Match scores submitted",
            local_id=match_local_id,
            player_id=player_id,
            confirmation_status=changes["confirmation_status"],
        )
        self._request_sync()
        return updated

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def mark_conflict(self, table: str, local_id: int) -> None:
        self.replica.update(table, local_id, {SYNC_STATUS: SyncStatus.CONFLICT.value})

    def list_conflicts(self, table: str | None = None) -> list[dict[str, Any]]:
        """Records flagged for human resolution."""
        tables = [table] if table else [e.value for e in EntityType]
        conflicts: list[dict[str, Any]] = []
        for name in tables:
            for record in self.replica.find_by_status(name, SyncStatus.CONFLICT):
                conflicts.append({"table": name, "local_id": record[LOCAL_ID], "record": record})
        return conflicts

    def accept_resolution(
        self,
        table: str,
        local_id: int,
        resolution: dict[str, Any] | None = None,
    ) -> Record:
        """Settle a flagged record.

        Without a resolution the stored placeholder is accepted as synced.
        With one, its fields become a new local edit queued for the server.
        """
        existing = self.replica.get(table, local_id)
        if existing is None:
            raise RecordNotFoundError(table, local_id)

        if resolution is None:
            return self.replica.update(table, local_id, {SYNC_STATUS: SyncStatus.SYNCED.value})

        changes = _business_fields(resolution)
        updated = self.replica.update(
            table,
            local_id,
            {**changes, SYNC_STATUS: SyncStatus.PENDING.value, LAST_MODIFIED: now_ms()},
        )
        self.queue.enqueue(table, existing.get("id"), local_id, ChangeOperation.UPDATE, changes)
        self._request_sync()
        return updated

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_record(self, table: str, local_id: int) -> Record | None:
        return self.replica.get(table, local_id)

    def get_record_by_server_id(self, table: str, server_id: str) -> Record | None:
        return self.replica.find_by_server_id(table, server_id)

    def query_records(self, table: str, field: str, value: Any) -> list[Record]:
        return self.replica.query(table, field, value)

    def all_records(self, table: str) -> list[Record]:
        return self.replica.all(table)

    def record_sync_status(self, table: str, local_id: int) -> SyncStatus | None:
        record = self.replica.get(table, local_id)
        if record is None:
            return None
        return SyncStatus(record.get(SYNC_STATUS, SyncStatus.PENDING.value))

    def pending_change_count(self) -> int:
        return self.queue.count()

    def has_pending_changes(self) -> bool:
        return self.pending_change_count() > 0

    def _request_sync(self) -> None:
        if not self.sync_on_mutate:
            return
        engine = self.engine
        if engine is not None and engine.is_online_now():
            engine.sync_in_background()
