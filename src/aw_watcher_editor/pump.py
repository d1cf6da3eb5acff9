"""
ActivityPump: turns editor activity signals into delivered heartbeats.

Usage from an editor plugin:

    from aw_watcher_editor.config import WatcherConfig
    from aw_watcher_editor.models import RawSignal
    from aw_watcher_editor.pump import ActivityPump

    pump = ActivityPump(WatcherConfig())
    pump.start()

    # on every keystroke / buffer switch / save:
    pump.on_signal(RawSignal(timestamp=time.time(), active_file_path=buffer_path))

    # status line:
    pump.status.connected

    pump.close()  # on editor exit

on_signal runs on the editor's thread. It only touches the debouncer unless a
heartbeat is due; context resolution happens for due heartbeats only and every
network call runs on the delivery worker thread. Nothing raised while handling
a signal or delivering a heartbeat reaches the editor.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from . import notifier as base_notifier
from .client import DeliveryClient
from .config import WatcherConfig
from .context import ContextResolver
from .debounce import HeartbeatDebouncer
from .models import Heartbeat, HeartbeatContext, RawSignal
from .worker import DeliveryWorker

logger = logging.getLogger(__name__)


@dataclass
class PumpStatus:
    running: bool = False
    connected: bool = False
    sent: int = 0
    failed: int = 0
    dropped: int = 0
    last_error: str = ""


class ActivityPump:
    def __init__(
        self,
        config: Optional[WatcherConfig] = None,
        *,
        client: Optional[DeliveryClient] = None,
        resolver: Optional[ContextResolver] = None,
        debouncer: Optional[HeartbeatDebouncer] = None,
        notify: Optional[Callable[[str, str], None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or WatcherConfig()
        self.client = client or DeliveryClient.from_config(self.config)
        self.resolver = resolver or ContextResolver(self.config.project_markers, cwd=self.config.cwd)
        self.debouncer = debouncer or HeartbeatDebouncer(self.config.pulse_interval)
        self._notify = notify
        self._clock = clock

        idle_poll = 1.0
        if self.config.afk_timeout is not None:
            idle_poll = min(idle_poll, self.config.afk_timeout)
        self._worker = DeliveryWorker(
            self.client.send,
            queue_size=self.config.queue_size,
            on_result=self._on_delivery_result,
            on_idle=self._check_afk,
            idle_poll=idle_poll,
        )

        self._lock = threading.Lock()
        self._running = False
        self._status = PumpStatus()
        self._last_context: Optional[HeartbeatContext] = None
        self._last_timestamp: Optional[float] = None
        self._afk_sent = False
        self._outage_notified = False

    # --------------- Lifecycle ---------------
    def start(self) -> None:
        if self._running:
            return
        self._worker.start()
        self._running = True
        logger.info("Heartbeats for bucket %s go to %s", self.config.bucket_id, self.config.server_url)

    def stop(self) -> None:
        """Stop emitting; pending heartbeats are dropped and debounce state discarded."""
        if not self._running:
            return
        self._running = False
        self._worker.stop(timeout=self.config.shutdown_timeout)
        with self._lock:
            self.debouncer.reset()
            self._last_context = None
            self._last_timestamp = None
            self._afk_sent = False
        logger.info("Heartbeats for bucket %s stopped", self.config.bucket_id)

    def close(self) -> None:
        self.stop()
        self.client.close()

    def __enter__(self) -> "ActivityPump":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def status(self) -> PumpStatus:
        with self._lock:
            return replace(self._status, running=self._running, dropped=self._worker.dropped)

    # --------------- Signals ---------------
    def on_signal(self, signal: RawSignal) -> None:
        if not self._running:
            return
        try:
            heartbeat = self._next_heartbeat(signal)
            if heartbeat is not None:
                self._worker.submit(heartbeat)
        except Exception:
            logger.exception("Failed to handle activity signal")

    def _next_heartbeat(self, signal: RawSignal) -> Optional[Heartbeat]:
        with self._lock:
            if not self.debouncer.should_emit(signal.timestamp):
                return None

        context = self.resolver.resolve(signal.active_file_path)

        with self._lock:
            self._afk_sent = False
            if self.config.skip_unchanged and context == self._last_context:
                return None
            self._last_context = context
            return Heartbeat(
                timestamp=self._monotonic(signal.timestamp),
                bucket_id=self.config.bucket_id,
                context=context,
            )

    # --------------- Worker callbacks ---------------
    def _check_afk(self) -> None:
        timeout = self.config.afk_timeout
        if timeout is None or not self._running:
            return
        now = self._clock()
        with self._lock:
            if self._afk_sent or self._last_context is None:
                return
            idle_for = self.debouncer.idle_for(now)
            if idle_for < timeout:
                return
            self._afk_sent = True
            heartbeat = Heartbeat(
                timestamp=self._monotonic(now),
                bucket_id=self.config.bucket_id,
                context=self._last_context,
                is_afk=True,
            )
        logger.debug("No activity for %.0fs, sending AFK heartbeat", idle_for)
        self._worker.submit(heartbeat)

    def _on_delivery_result(self, heartbeat: Heartbeat, error: Optional[Exception]) -> None:
        should_notify = False
        with self._lock:
            if error is None:
                self._status.sent += 1
                self._status.connected = True
                self._outage_notified = False
            else:
                self._status.failed += 1
                self._status.connected = False
                self._status.last_error = str(error)
                if self.config.desktop_notifications and not self._outage_notified:
                    self._outage_notified = True
                    should_notify = True
        if error is not None:
            logger.warning("Heartbeat from %s not delivered: %s", heartbeat.iso_timestamp, error)
        if should_notify:
            notify = self._notify or base_notifier.notify
            notify("Activity server unreachable", f"Editor heartbeats are not reaching {self.config.server_url}")

    def _monotonic(self, timestamp: float) -> float:
        # caller holds self._lock
        if self._last_timestamp is not None and timestamp < self._last_timestamp:
            timestamp = self._last_timestamp
        self._last_timestamp = timestamp
        return timestamp


__all__ = ["ActivityPump", "PumpStatus"]
