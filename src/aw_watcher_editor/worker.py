from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

from .models import Heartbeat

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Heartbeat, Optional[Exception]], None]


class DeliveryWorker:
    """
    Single background thread that delivers heartbeats from a bounded queue.

    submit() never blocks: when the queue is full the oldest pending heartbeat
    is dropped. Delivery failures are reported through on_result and never stop
    the thread. When nothing arrives for idle_poll seconds, on_idle is called.
    """

    def __init__(
        self,
        deliver: Callable[[Heartbeat], None],
        queue_size: int = 16,
        on_result: Optional[ResultCallback] = None,
        on_idle: Optional[Callable[[], None]] = None,
        idle_poll: float = 1.0,
        name: str = "aw-watcher-editor-delivery",
    ) -> None:
        self._deliver = deliver
        self.on_result = on_result
        self.on_idle = on_idle
        self.idle_poll = idle_poll
        self.name = name

        self._queue: "queue.Queue[Optional[Heartbeat]]" = queue.Queue(maxsize=queue_size)
        self._put_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        if self.is_running:
            return
        # A thread left over from a timed-out stop() keeps its own, already set, event and exits on its own
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(target=self._run, args=(stop_event,), name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        abandoned = self._drain()
        if abandoned:
            logger.debug("Abandoning %d undelivered heartbeat(s)", abandoned)
        try:
            self._queue.put_nowait(None)  # wake the thread
        except queue.Full:
            pass
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Delivery worker did not stop within %.1fs", timeout)

    def submit(self, heartbeat: Heartbeat) -> bool:
        """Queue a heartbeat for delivery; returns False if the worker is stopped."""
        if self._stop_event.is_set():
            return False
        with self._put_lock:
            while True:
                try:
                    self._queue.put_nowait(heartbeat)
                    return True
                except queue.Full:
                    pass
                try:
                    oldest = self._queue.get_nowait()
                except queue.Empty:
                    continue
                if oldest is not None:
                    self.dropped += 1
                    logger.warning("Delivery queue full, dropping heartbeat from %s", oldest.iso_timestamp)

    # --------------- Internal ---------------
    def _drain(self) -> int:
        count = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return count
            if item is not None:
                count += 1

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                item = self._queue.get(timeout=self.idle_poll)
            except queue.Empty:
                if self.on_idle is not None:
                    try:
                        self.on_idle()
                    except Exception:
                        logger.exception("Idle callback failed")
                continue
            if item is None:
                continue
            if stop_event.is_set():
                self._requeue(item)
                break
            self._deliver_one(item)

    def _requeue(self, heartbeat: Heartbeat) -> None:
        try:
            self._queue.put_nowait(heartbeat)
        except queue.Full:
            pass

    def _deliver_one(self, heartbeat: Heartbeat) -> None:
        error: Optional[Exception] = None
        try:
            self._deliver(heartbeat)
        except Exception as e:
            error = e
        if self.on_result is not None:
            try:
                self.on_result(heartbeat, error)
            except Exception:
                logger.exception("Delivery result callback failed")
        elif error is not None:
            logger.warning("Heartbeat delivery failed: %s", error)


__all__ = ["DeliveryWorker"]
