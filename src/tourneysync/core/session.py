"""
TourneySync Session Management.

Wires configuration, logging, the local replica, the change queue, the
remote store, connectivity and the sync engine into one object that an
application owns for its lifetime.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from tourneysync.core.config import TourneySyncConfig, load_config
from tourneysync.core.logging import get_logger, setup_logging
from tourneysync.remote.base import RemoteStore
from tourneysync.remote.rest import RestRemoteStore
from tourneysync.store.database import ReplicaDatabase
from tourneysync.store.queue import ChangeQueue
from tourneysync.store.replica import LocalReplicaStore
from tourneysync.sync.connectivity import ConnectivityMonitor
from tourneysync.sync.engine import ConflictCallback, StatusCallback, SyncEngine
from tourneysync.sync.lifecycle import ConnectivityBinding
from tourneysync.sync.records import RecordService
from tourneysync.sync.resolver import ConflictResolver, exceeds_expected_total

logger = get_logger(__name__)


class Session:
    """
    Composition root for a TourneySync client.

    Everything is built eagerly; background threads only begin on ``start()``.
    """

    def __init__(
        self,
        config: TourneySyncConfig | None = None,
        remote: RemoteStore | None = None,
        monitor: ConnectivityMonitor | None = None,
        on_status_change: StatusCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()

        setup_logging(self.config.logging)

        self.database = ReplicaDatabase(self.config.storage.database_path)
        self.replica = LocalReplicaStore(self.database)
        self.queue = ChangeQueue(self.database)

        conflicts = self.config.conflicts
        self.resolver = ConflictResolver(
            strategies=conflicts.strategies,
            dispute_predicate=exceeds_expected_total(
                conflicts.primary_score_field, conflicts.expected_total
            ),
        )

        self._owns_remote = remote is None
        self.remote = remote or RestRemoteStore.from_config(self.config.remote)
        self.monitor = monitor or ConnectivityMonitor.from_config(
            self.config.connectivity, self.config.remote.base_url
        )

        self.engine = SyncEngine(
            self.remote,
            self.replica,
            self.queue,
            resolver=self.resolver,
            on_status_change=on_status_change,
            on_conflict=on_conflict,
            interval_ms=self.config.sync.interval_ms,
            tables=self.config.sync.tables,
            online=self.monitor.is_online(),
            server_timestamp_field=self.config.sync.server_timestamp_field,
            status_file=self.config.sync.status_file,
        )
        self.binding = ConnectivityBinding(self.engine, self.monitor)
        self.records = RecordService(
            self.replica,
            self.queue,
            engine=self.engine,
            sync_on_mutate=self.config.sync.sync_on_mutate,
        )
        self._started = False

        logger.info(
            "Session started",
            session_id=self.id,
            database=str(self.config.storage.database_path),
            online=self.engine.is_online_now(),
        )

    def start(self) -> None:
        """Start connectivity monitoring and periodic sync."""
        if self._started:
            return
        self._started = True
        self.monitor.start()
        self.engine.start()

    def status(self) -> dict[str, Any]:
        """Snapshot of engine and queue state."""
        report = self.engine.last_report
        return {
            "session_id": self.id,
            "status": self.engine.get_status().value,
            "online": self.engine.is_online_now(),
            "latency_ms": self.monitor.last_latency_ms,
            "running": self.engine.is_running,
            "pending_changes": self.queue.count(),
            "failed_changes": len(self.queue.list_failed()),
            "last_sync": report.to_dict() if report else self.engine.load_status(),
        }

    def close(self) -> None:
        """Stop background work and release the database."""
        self.engine.stop()
        self.monitor.stop()
        self.binding.unbind()
        if self._owns_remote and isinstance(self.remote, RestRemoteStore):
            self.remote.close()
        self.database.close()

        logger.info(
            "Session closed",
            session_id=self.id,
            duration_seconds=(datetime.now() - self.started_at).total_seconds(),
        )

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
