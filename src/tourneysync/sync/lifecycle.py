"""
TourneySync engine lifecycle.

Connects a connectivity monitor to an engine and keeps an optional
process-wide engine for hosts that want one. Applications normally own
their engine through ``Session``; the module-level instance is a
convenience for callers without a composition root.
"""

from __future__ import annotations

import threading
from typing import Any

from tourneysync.core.logging import get_logger
from tourneysync.remote.base import RemoteStore
from tourneysync.store.queue import ChangeQueue
from tourneysync.store.replica import LocalReplicaStore
from tourneysync.sync.connectivity import ConnectivityMonitor
from tourneysync.sync.engine import EngineStatus, SyncEngine

logger = get_logger(__name__)


class ConnectivityBinding:
    """Forwards a monitor's online/offline transitions to an engine."""

    def __init__(self, engine: SyncEngine, monitor: ConnectivityMonitor) -> None:
        self.engine = engine
        self.monitor = monitor
        monitor.on_change(self._forward)
        if monitor.is_online() != engine.is_online_now():
            engine.set_online(monitor.is_online())

    def _forward(self, online: bool) -> None:
        self.engine.set_online(online)

    def unbind(self) -> None:
        self.monitor.remove_callback(self._forward)

    def is_online_now(self) -> bool:
        return self.engine.is_online_now()

    def get_status(self) -> EngineStatus:
        return self.engine.get_status()


_engine: SyncEngine | None = None
_engine_lock = threading.Lock()


def initialize_sync_engine(
    remote: RemoteStore,
    replica: LocalReplicaStore,
    queue: ChangeQueue,
    **options: Any,
) -> SyncEngine:
    """Create the process-wide engine, stopping any previous one."""
    global _engine

    engine = SyncEngine(remote, replica, queue, **options)
    with _engine_lock:
        previous, _engine = _engine, engine

    if previous is not None:
        previous.stop()
        logger.info("Replaced previous sync engine")
    return engine


def register_sync_engine(engine: SyncEngine) -> None:
    """Install an externally constructed engine as the process-wide one."""
    global _engine

    with _engine_lock:
        previous, _engine = _engine, engine
    if previous is not None and previous is not engine:
        previous.stop()


def get_sync_engine() -> SyncEngine | None:
    return _engine


def stop_sync_engine() -> None:
    """Stop and forget the process-wide engine."""
    global _engine

    with _engine_lock:
        engine, _engine = _engine, None
    if engine is not None:
        engine.stop()
