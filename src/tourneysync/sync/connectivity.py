"""
TourneySync connectivity monitor.

The platform online/offline signal. A daemon thread periodically probes the
remote endpoint with a TCP connect, or checks for an active non-loopback
network interface when no endpoint is configured, and fires callbacks on
transitions. Hosts that already receive OS connectivity events can feed them
in through ``set_online`` instead of starting the thread.
"""

from __future__ import annotations

import socket
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import psutil

from tourneysync.core.logging import get_logger

if TYPE_CHECKING:
    from tourneysync.core.config import ConnectivityConfig

logger = get_logger(__name__)

ConnectivityCallback = Callable[[bool], None]

_LOOPBACK_PREFIXES = ("lo", "loopback")


class ConnectivityMonitor:
    """Background monitor of network reachability."""

    def __init__(
        self,
        probe_host: str = "",
        probe_port: int = 443,
        check_interval: float = 15.0,
        probe_timeout: float = 5.0,
        initially_online: bool | None = None,
    ) -> None:
        self.probe_host = probe_host
        self.probe_port = probe_port
        self.check_interval = check_interval
        self.probe_timeout = probe_timeout

        self._callbacks: list[ConnectivityCallback] = []
        self._lock = threading.Lock()
        self._running = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._last_latency_ms: float | None = None

        self._online = self._check() if initially_online is None else initially_online

    @classmethod
    def from_config(cls, config: ConnectivityConfig, remote_url: str | None = None) -> ConnectivityMonitor:
        """Build from config, deriving the probe target from the remote URL if unset."""
        host, port = config.probe_host, config.probe_port
        if not host and remote_url:
            parsed = urlparse(remote_url)
            host = parsed.hostname or ""
            port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return cls(
            probe_host=host,
            probe_port=port,
            check_interval=config.check_interval_seconds,
            probe_timeout=config.probe_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background probing thread."""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._monitor_loop, daemon=True, name="tourneysync-connectivity"
        )
        self._thread.start()
        logger.info(
            "Connectivity monitor started",
            probe_host=self.probe_host or None,
            interval_seconds=self.check_interval,
        )

    def stop(self) -> None:
        self._running = False
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.probe_timeout + 1)
        self._thread = None

    # ------------------------------------------------------------------
    # Signal
    # ------------------------------------------------------------------

    def on_change(self, callback: ConnectivityCallback) -> None:
        """Register a callback fired on online/offline transitions."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: ConnectivityCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def is_online(self) -> bool:
        with self._lock:
            return self._online

    @property
    def last_latency_ms(self) -> float | None:
        return self._last_latency_ms

    def set_online(self, online: bool) -> None:
        """Record the current state, notifying listeners on a transition."""
        with self._lock:
            changed = online != self._online
            self._online = online

        if not changed:
            return

        logger.info("Connectivity changed", online=online)
        for callback in list(self._callbacks):
            try:
                callback(online)
            except Exception as exc:
                logger.warning("Connectivity callback failed", error=str(exc))

    def probe(self) -> bool:
        """Run a single check and publish its result."""
        online = self._check()
        self.set_online(online)
        return online

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def _monitor_loop(self) -> None:
        while self._running:
            try:
                self.probe()
            except Exception as exc:
                logger.debug("Connectivity probe failed", error=str(exc))
            if self._stop_event.wait(self.check_interval):
                break

    def _check(self) -> bool:
        if self.probe_host:
            return self._measure_latency() >= 0
        return self._has_active_interface()

    def _measure_latency(self) -> float:
        """TCP connect to the probe target. Returns RTT in ms, or -1 if unreachable."""
        start = time.monotonic()
        try:
            with socket.create_connection(
                (self.probe_host, self.probe_port), timeout=self.probe_timeout
            ):
                elapsed = (time.monotonic() - start) * 1000
        except OSError:
            self._last_latency_ms = None
            return -1.0
        self._last_latency_ms = elapsed
        return elapsed

    def _has_active_interface(self) -> bool:
        try:
            stats = psutil.net_if_stats()
        except (OSError, RuntimeError) as exc:
            logger.debug("Interface check failed", error=str(exc))
            return True
        for name, st in stats.items():
            if name.lower().startswith(_LOOPBACK_PREFIXES):
                continue
            if st.isup:
                return True
        return False
