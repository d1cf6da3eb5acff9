import time

import pytest

from aw_watcher_editor.debounce import DebounceState, HeartbeatDebouncer
from aw_watcher_editor.errors import SignalOutOfOrder


def test_first_signal_always_emits():
    d = HeartbeatDebouncer(pulse_interval=1.0)
    assert d.should_emit(time.time())


def test_signals_within_interval_emit_once_per_window():
    d = HeartbeatDebouncer(pulse_interval=1.0)
    base = 1_000.0
    emitted = [t for t in (base + i * 0.1 for i in range(30)) if d.should_emit(t)]

    # 0.0 .. 2.9s in 100ms steps: one emit per 1s window
    assert len(emitted) == 3
    assert emitted[0] == base
    for a, b in zip(emitted, emitted[1:]):
        assert b - a >= 1.0


def test_signals_spaced_at_interval_each_emit():
    d = HeartbeatDebouncer(pulse_interval=1.0)
    base = 1_000.0
    assert all(d.should_emit(base + i * 1.0) for i in range(5))
    assert all(d.should_emit(base + 10 + i * 2.5) for i in range(5))


def test_duplicate_timestamp_counts_once():
    d = HeartbeatDebouncer(pulse_interval=0.0)
    assert d.should_emit(50.0)
    assert not d.should_emit(50.0)
    assert d.should_emit(50.5)


def test_signal_from_the_past_is_ignored():
    d = HeartbeatDebouncer(pulse_interval=1.0)
    assert d.should_emit(100.0)
    assert not d.should_emit(99.0)
    assert d.state.last_signal_timestamp == 100.0
    assert d.state.last_emit_timestamp == 100.0
    assert d.should_emit(101.0)


def test_last_signal_updates_without_emit():
    d = HeartbeatDebouncer(pulse_interval=1.0)
    d.should_emit(10.0)
    assert not d.should_emit(10.4)
    assert d.state.last_signal_timestamp == 10.4
    assert d.state.last_emit_timestamp == 10.0


def test_idle_for_and_reset():
    d = HeartbeatDebouncer(pulse_interval=1.0)
    assert d.idle_for(500.0) == 0.0
    d.should_emit(100.0)
    assert d.idle_for(130.0) == 30.0

    d.reset()
    assert d.state == DebounceState()
    assert d.should_emit(50.0)  # new session, no baseline


def test_state_advance_raises_for_past_timestamp():
    state = DebounceState(last_signal_timestamp=10.0)
    with pytest.raises(SignalOutOfOrder):
        state.advance(9.0)
    assert state.advance(10.0) is False
    assert state.advance(11.0) is True


def test_independent_debouncers_do_not_share_state():
    a = HeartbeatDebouncer()
    b = HeartbeatDebouncer()
    assert a.should_emit(1.0)
    assert b.should_emit(1.0)
    assert not a.should_emit(1.5)
