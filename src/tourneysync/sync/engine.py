"""
TourneySync sync engine.

Orchestrates bidirectional sync between the local replica and the remote
store: pushes queued local mutations, pulls remote snapshots, and resolves
conflicts per entity type. One cycle runs at a time per engine.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from tourneysync.core.logging import OperationLogger, get_logger
from tourneysync.core.models import (
    LAST_MODIFIED,
    LOCAL_ID,
    SERVER_TIMESTAMP,
    SYNC_STATUS,
    ChangeOperation,
    ChangeQueueEntry,
    ConflictEvent,
    ConflictInfo,
    Record,
    SyncStatus,
    now_ms,
    strip_bookkeeping,
    utc_now_iso,
)
from tourneysync.remote.base import RemoteError, RemoteStore
from tourneysync.store.queue import ChangeQueue
from tourneysync.store.replica import LocalReplicaStore, RecordNotFoundError
from tourneysync.sync.resolver import ConflictResolver, has_conflict

logger = get_logger(__name__)

DEFAULT_SYNC_INTERVAL_MS = 30000
DEFAULT_PULL_TABLES = ("tournaments", "registrations", "rounds", "matches")


class EngineStatus(Enum):
    """Aggregate engine state observed by the UI."""

    IDLE = "idle"
    SYNCING = "syncing"
    OFFLINE = "offline"
    ERROR = "error"


class MissingRecordIdError(Exception):
    """Raised when an update or delete has no server id to target."""


@dataclass
class SyncSummary:
    pushed: int = 0
    failed: int = 0
    rejected: int = 0
    permanently_failed: int = 0
    skipped_entries: int = 0
    pulled: int = 0
    inserted: int = 0
    updated: int = 0
    conflicts: int = 0
    unresolved_conflicts: int = 0


@dataclass
class SyncReport:
    """Outcome of one sync cycle."""

    started_at: datetime
    ended_at: datetime | None = None
    status: EngineStatus = EngineStatus.SYNCING
    summary: SyncSummary = field(default_factory=SyncSummary)
    skipped_tables: list[str] = field(default_factory=list)
    conflicts: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    timings_ms: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "status": self.status.value,
            "summary": {
                "pushed": self.summary.pushed,
                "failed": self.summary.failed,
                "rejected": self.summary.rejected,
                "permanently_failed": self.summary.permanently_failed,
                "skipped_entries": self.summary.skipped_entries,
                "pulled": self.summary.pulled,
                "inserted": self.summary.inserted,
                "updated": self.summary.updated,
                "conflicts": self.summary.conflicts,
                "unresolved_conflicts": self.summary.unresolved_conflicts,
            },
            "skipped_tables": self.skipped_tables,
            "conflicts": self.conflicts,
            "errors": self.errors,
            "timings_ms": self.timings_ms,
        }


StatusCallback = Callable[[EngineStatus], None]
ConflictCallback = Callable[[ConflictEvent], None]


class SyncEngine:
    """Push/pull orchestrator with connectivity state and a periodic timer."""

    def __init__(
        self,
        remote: RemoteStore,
        replica: LocalReplicaStore,
        queue: ChangeQueue,
        resolver: ConflictResolver | None = None,
        on_status_change: StatusCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        interval_ms: int = DEFAULT_SYNC_INTERVAL_MS,
        tables: Iterable[str] = DEFAULT_PULL_TABLES,
        online: bool = True,
        server_timestamp_field: str = "updated_at",
        status_file: Path | None = None,
    ) -> None:
        self.remote = remote
        self.replica = replica
        self.queue = queue
        self.resolver = resolver or ConflictResolver()
        self.on_status_change = on_status_change
        self.on_conflict = on_conflict
        self.interval_ms = interval_ms
        self.tables = list(tables)
        self.server_timestamp_field = server_timestamp_field
        self.status_file = status_file

        self._status = EngineStatus.IDLE
        self._online = online
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._timer_thread: threading.Thread | None = None
        self._last_report: SyncReport | None = None

        if not online:
            self._set_status(EngineStatus.OFFLINE)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._timer_thread is not None

    def start(self) -> None:
        """Run one cycle now and arm the periodic timer."""
        with self._state_lock:
            if self._timer_thread is not None:
                return
            self._stop_event = threading.Event()
            self._timer_thread = threading.Thread(
                target=self._run_timer,
                args=(self._stop_event,),
                name="tourneysync-timer",
                daemon=True,
            )
            timer = self._timer_thread

        logger.info("Sync engine started", interval_ms=self.interval_ms, tables=self.tables)
        self.sync()
        timer.start()

    def stop(self) -> None:
        """Disarm the timer. A cycle already in flight runs to completion."""
        with self._state_lock:
            if self._timer_thread is None:
                return
            self._stop_event.set()
            self._timer_thread = None
        logger.info("Sync engine stopped")

    def _run_timer(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval_ms / 1000):
            if not self._online or self._status is EngineStatus.SYNCING:
                continue
            try:
                self.sync()
            except Exception as e:
                logger.error("Periodic sync crashed", error=str(e))

    # ------------------------------------------------------------------
    # Connectivity and status
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> None:
        """Forward a connectivity transition from the platform signal."""
        with self._state_lock:
            if online == self._online:
                return
            self._online = online

        if online:
            logger.info("Connectivity restored")
            # A cycle still in flight settles the status when it finishes.
            if self._cycle_lock.locked():
                self._set_status(EngineStatus.SYNCING)
            else:
                self._set_status(EngineStatus.IDLE)
            self.sync()
        else:
            logger.info("Connectivity lost")
            self._set_status(EngineStatus.OFFLINE)

    def is_online_now(self) -> bool:
        return self._online

    def get_status(self) -> EngineStatus:
        return self._status

    @property
    def last_report(self) -> SyncReport | None:
        return self._last_report

    def _set_status(self, status: EngineStatus) -> None:
        self._status = status
        if self.on_status_change is None:
            return
        try:
            self.on_status_change(status)
        except Exception as e:
            logger.warning("Status callback error", error=str(e))

    # ------------------------------------------------------------------
    # Sync cycle
    # ------------------------------------------------------------------

    def sync(self) -> SyncReport | None:
        """Run one push/pull cycle.

        Returns None without doing anything when offline or when another
        cycle is already in flight on this engine.
        """
        if not self._online:
            return None
        if not self._cycle_lock.acquire(blocking=False):
            return None

        try:
            self._set_status(EngineStatus.SYNCING)
            report = SyncReport(started_at=datetime.now())
            cycle = OperationLogger("sync cycle", logger)

            try:
                with cycle:
                    self._run_phase("push", self._push_changes, report)
                    self._run_phase("pull", self._pull_changes, report)
                    cycle.update(
                        pushed=report.summary.pushed,
                        failed=report.summary.failed,
                        pulled=report.summary.pulled,
                        conflicts=report.summary.conflicts,
                    )
            except Exception as e:
                report.errors.append(str(e))
                report.status = EngineStatus.ERROR
            else:
                report.status = EngineStatus.IDLE if self._online else EngineStatus.OFFLINE
            finally:
                if cycle.duration_ms is not None:
                    report.timings_ms["cycle"] = cycle.duration_ms
                report.ended_at = datetime.now()
                self._last_report = report

            self._set_status(report.status)
            if self.status_file is not None:
                try:
                    self.save_status(report)
                except OSError as e:
                    logger.warning("Could not write sync status", path=str(self.status_file), error=str(e))
            return report
        finally:
            self._cycle_lock.release()

    def sync_in_background(self) -> threading.Thread:
        """Trigger a cycle without blocking the caller."""
        thread = threading.Thread(target=self.sync, name="tourneysync-sync", daemon=True)
        thread.start()
        return thread

    def _run_phase(
        self,
        name: str,
        phase: Callable[[SyncReport], None],
        report: SyncReport,
    ) -> None:
        timer = OperationLogger(f"{name} phase", logger, level="debug")
        try:
            with timer:
                phase(report)
        finally:
            if timer.duration_ms is not None:
                report.timings_ms[name] = timer.duration_ms

    # ------------------------------------------------------------------
    # Push phase
    # ------------------------------------------------------------------

    def _push_changes(self, report: SyncReport) -> None:
        assigned: dict[tuple[str, int], str] = {}

        for entry in self.queue.list_pending():
            if entry.attempts >= self.queue.max_attempts:
                report.summary.skipped_entries += 1
                continue

            try:
                self._push_entry(entry, assigned)
            except Exception as e:
                message = str(e) or type(e).__name__
                if isinstance(e, RemoteError) and not e.is_transient:
                    # 4xx: the payload itself was refused.
                    report.summary.rejected += 1
                    logger.warning(
                        "Remote rejected change",
                        entry_id=entry.id,
                        table=entry.table,
                        operation=entry.operation.value,
                        status_code=e.status_code,
                        error=message,
                    )
                can_retry = self.queue.mark_failed(entry.id, message)
                report.summary.failed += 1
                report.errors.append(f"{entry.table}:{entry.operation.value}:{entry.id}: {message}")
                if not can_retry:
                    report.summary.permanently_failed += 1
                continue

            self.queue.dequeue(entry.id)
            report.summary.pushed += 1

    def _push_entry(
        self,
        entry: ChangeQueueEntry,
        assigned: dict[tuple[str, int], str],
    ) -> None:
        table = entry.table

        if entry.operation is ChangeOperation.INSERT:
            data = self.remote.insert(table, entry.payload).raise_for_error()
            server_id = data.get("id") if isinstance(data, dict) else None
            if server_id:
                assigned[(table, entry.local_id)] = server_id
                self.queue.assign_record_id(table, entry.local_id, server_id)
                patch: dict[str, Any] = {"id": server_id}
                server_ts = data.get(self.server_timestamp_field)
                if server_ts:
                    patch[SERVER_TIMESTAMP] = server_ts
                self._settle_local(entry, patch)

        elif entry.operation is ChangeOperation.UPDATE:
            record_id = self._target_record_id(entry, assigned)
            self.remote.update(table, record_id, entry.payload).raise_for_error()
            self._settle_local(entry, {})

        elif entry.operation is ChangeOperation.DELETE:
            record_id = self._target_record_id(entry, assigned)
            self.remote.delete(table, record_id).raise_for_error()
            local = self.replica.get(table, entry.local_id) or self.replica.find_by_server_id(
                table, record_id
            )
            if local is not None:
                self.replica.delete(table, local[LOCAL_ID])

        logger.debug(
            "Change pushed",
            entry_id=entry.id,
            table=table,
            operation=entry.operation.value,
        )

    def _target_record_id(
        self,
        entry: ChangeQueueEntry,
        assigned: dict[tuple[str, int], str],
    ) -> str:
        record_id = entry.record_id or assigned.get((entry.table, entry.local_id))
        if record_id is None:
            local = self.replica.get(entry.table, entry.local_id)
            record_id = local.get("id") if local else None
        if not record_id:
            raise MissingRecordIdError(f"{entry.operation.value.capitalize()} requires recordId")
        return record_id

    def _settle_local(self, entry: ChangeQueueEntry, patch: dict[str, Any]) -> None:
        # Later queued edits for the same record keep it pending.
        if self.queue.pending_for_record(entry.table, entry.local_id) <= 1:
            patch = {**patch, SYNC_STATUS: SyncStatus.SYNCED.value}
        if not patch:
            return
        try:
            self.replica.update(entry.table, entry.local_id, patch)
        except RecordNotFoundError:
            logger.debug("Local record gone after push", table=entry.table, local_id=entry.local_id)

    # ------------------------------------------------------------------
    # Pull phase
    # ------------------------------------------------------------------

    def _pull_changes(self, report: SyncReport) -> None:
        for table in self.tables:
            self._pull_table(table, report)

    def _pull_table(self, table: str, report: SyncReport) -> None:
        result = self.remote.select(table)
        if not result.ok:
            logger.error("Error pulling table", table=table, error=str(result.error))
            report.skipped_tables.append(table)
            return

        rows = result.data
        if not isinstance(rows, list):
            return

        for row in rows:
            if not isinstance(row, dict) or not row.get("id"):
                continue
            self._apply_server_record(table, self._normalize(row), report)
            report.summary.pulled += 1

    def _normalize(self, row: dict[str, Any]) -> Record:
        server = strip_bookkeeping(row)
        server_ts = row.get(SERVER_TIMESTAMP) or row.get(self.server_timestamp_field)
        if server_ts:
            server[SERVER_TIMESTAMP] = server_ts
        return server

    def _apply_server_record(self, table: str, server: Record, report: SyncReport) -> None:
        local = self.replica.find_by_server_id(table, server["id"])

        if local is None:
            if self.queue.has_pending_delete(table, server["id"]):
                logger.debug("Skipping row deleted locally", table=table, record_id=server["id"])
                return
            self.replica.insert(
                table,
                {
                    **server,
                    SYNC_STATUS: SyncStatus.SYNCED.value,
                    LAST_MODIFIED: now_ms(),
                    SERVER_TIMESTAMP: server.get(SERVER_TIMESTAMP) or utc_now_iso(),
                },
            )
            report.summary.inserted += 1
            return

        if has_conflict(local, server):
            self._resolve_conflict(table, local, server, report)
            return

        # Queued local edits still have to land, so the record stays pending.
        if self.queue.pending_for_record(table, local[LOCAL_ID]):
            status = SyncStatus.PENDING.value
        else:
            status = SyncStatus.SYNCED.value
        patch = {
            **server,
            SYNC_STATUS: status,
            LAST_MODIFIED: local.get(LAST_MODIFIED),
            SERVER_TIMESTAMP: server.get(SERVER_TIMESTAMP) or local.get(SERVER_TIMESTAMP) or utc_now_iso(),
        }
        if all(local.get(k) == v for k, v in patch.items()):
            return
        self.replica.update(table, local[LOCAL_ID], patch)
        report.summary.updated += 1

    def _resolve_conflict(
        self,
        table: str,
        local: Record,
        server: Record,
        report: SyncReport,
    ) -> None:
        conflict = ConflictInfo(
            local_version=local,
            server_version=server,
            table=table,
            record_id=server["id"],
        )
        result = self.resolver.resolve(conflict)

        patch = {k: v for k, v in result.resolved.items() if k != LOCAL_ID}
        patch[SERVER_TIMESTAMP] = server.get(SERVER_TIMESTAMP) or utc_now_iso()
        if result.requires_user_action:
            patch[SYNC_STATUS] = SyncStatus.CONFLICT.value
        elif result.resolved is local:
            patch[SYNC_STATUS] = local.get(SYNC_STATUS, SyncStatus.PENDING.value)
        elif self.queue.pending_for_record(table, local[LOCAL_ID]):
            patch[SYNC_STATUS] = SyncStatus.PENDING.value
        else:
            patch[SYNC_STATUS] = SyncStatus.SYNCED.value

        self.replica.update(table, local[LOCAL_ID], patch)
        report.summary.conflicts += 1
        report.conflicts.append(
            {
                "table": table,
                "record_id": server["id"],
                "strategy": result.strategy,
                "requires_user_action": result.requires_user_action,
            }
        )

        logger.info(
            "Conflict resolved",
            table=table,
            record_id=server["id"],
            strategy=result.strategy,
            requires_user_action=result.requires_user_action,
        )

        if result.requires_user_action:
            report.summary.unresolved_conflicts += 1
            self._notify_conflict(
                ConflictEvent(
                    table=table,
                    record_id=server["id"],
                    local_version=local,
                    server_version=server,
                )
            )

    def _notify_conflict(self, event: ConflictEvent) -> None:
        if self.on_conflict is None:
            return
        try:
            self.on_conflict(event)
        except Exception as e:
            logger.warning("Conflict callback error", error=str(e))

    # ------------------------------------------------------------------
    # Status persistence
    # ------------------------------------------------------------------

    def save_status(self, report: SyncReport) -> None:
        """Persist the sync report to the configured status file."""
        if self.status_file is None:
            return
        self.status_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.status_file, "w") as handle:
            json.dump(report.to_dict(), handle, indent=2)

    def load_status(self) -> dict[str, object] | None:
        """Load last sync report from file."""
        return load_status(self.status_file)


def load_status(path: Path | None) -> dict[str, object] | None:
    if path is None or not path.exists():
        return None
    with open(path) as handle:
        return json.load(handle)
