import threading
import time
from typing import List, Optional

from aw_watcher_editor.errors import DeliveryUnreachable
from aw_watcher_editor.models import Heartbeat
from aw_watcher_editor.worker import DeliveryWorker


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def hb(ts: float) -> Heartbeat:
    return Heartbeat(timestamp=ts, bucket_id="bucket")


def test_delivers_in_background_and_reports_results():
    delivered: List[float] = []
    results: List[Optional[Exception]] = []
    worker = DeliveryWorker(lambda h: delivered.append(h.timestamp), on_result=lambda h, e: results.append(e))
    worker.start()
    try:
        assert worker.submit(hb(1.0))
        assert worker.submit(hb(2.0))
        assert wait_for(lambda: len(results) == 2)
    finally:
        worker.stop()
    assert delivered == [1.0, 2.0]
    assert results == [None, None]


def test_failures_do_not_kill_the_worker():
    results: List[Optional[Exception]] = []

    def deliver(h: Heartbeat) -> None:
        if h.timestamp == 1.0:
            raise DeliveryUnreachable("down", "bucket", status_code=503)

    worker = DeliveryWorker(deliver, on_result=lambda h, e: results.append(e))
    worker.start()
    try:
        worker.submit(hb(1.0))
        worker.submit(hb(2.0))
        assert wait_for(lambda: len(results) == 2)
    finally:
        worker.stop()
    assert isinstance(results[0], DeliveryUnreachable)
    assert results[1] is None


def test_full_queue_drops_oldest_without_blocking():
    release = threading.Event()
    started = threading.Event()
    delivered: List[float] = []

    def deliver(h: Heartbeat) -> None:
        started.set()
        release.wait(timeout=5.0)
        delivered.append(h.timestamp)

    worker = DeliveryWorker(deliver, queue_size=2)
    worker.start()
    try:
        worker.submit(hb(0.0))
        assert started.wait(timeout=2.0)  # worker is now stuck delivering 0.0

        t0 = time.time()
        for ts in (1.0, 2.0, 3.0, 4.0):
            assert worker.submit(hb(ts))
        assert time.time() - t0 < 0.5
        assert worker.dropped == 2

        release.set()
        assert wait_for(lambda: len(delivered) == 3)
    finally:
        release.set()
        worker.stop()
    assert delivered == [0.0, 3.0, 4.0]


def test_idle_callback_runs_when_queue_is_empty():
    idle_calls = threading.Event()
    worker = DeliveryWorker(lambda h: None, on_idle=idle_calls.set, idle_poll=0.02)
    worker.start()
    try:
        assert idle_calls.wait(timeout=2.0)
    finally:
        worker.stop()


def test_stop_rejects_new_work_and_joins():
    worker = DeliveryWorker(lambda h: None, idle_poll=0.05)
    worker.start()
    assert worker.is_running
    worker.stop(timeout=1.0)
    assert not worker.is_running
    assert not worker.submit(hb(1.0))

    worker.start()
    try:
        assert worker.is_running
        assert worker.submit(hb(2.0))
    finally:
        worker.stop()


def test_restart_after_timed_out_stop_accepts_work():
    release = threading.Event()
    started = threading.Event()
    delivered: List[float] = []

    def deliver(h: Heartbeat) -> None:
        if h.timestamp == 0.0:
            started.set()
            release.wait(timeout=5.0)
        delivered.append(h.timestamp)

    worker = DeliveryWorker(deliver, idle_poll=0.05)
    worker.start()
    try:
        worker.submit(hb(0.0))
        assert started.wait(timeout=2.0)

        worker.stop(timeout=0.1)  # old thread is still stuck delivering 0.0
        worker.start()
        assert worker.is_running

        release.set()
        assert worker.submit(hb(1.0))
        assert wait_for(lambda: 1.0 in delivered)
    finally:
        release.set()
        worker.stop()
    assert delivered.count(1.0) == 1
