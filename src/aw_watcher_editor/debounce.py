from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import SignalOutOfOrder

DEFAULT_PULSE_INTERVAL = 1.0


@dataclass
class DebounceState:
    last_emit_timestamp: Optional[float] = None
    last_signal_timestamp: Optional[float] = None

    def advance(self, now: float) -> bool:
        """Accept a signal at 'now'; returns False for a duplicate timestamp.

        Raises SignalOutOfOrder if 'now' is older than the last accepted signal.
        """
        last = self.last_signal_timestamp
        if last is not None:
            if now < last:
                raise SignalOutOfOrder(now, last)
            if now == last:
                return False
        self.last_signal_timestamp = now
        return True

    def reset(self) -> None:
        self.last_emit_timestamp = None
        self.last_signal_timestamp = None


class HeartbeatDebouncer:
    """
    Throttles raw activity signals into at most one heartbeat per pulse interval.

    Policy:
    - The first signal of a session always emits.
    - Later signals emit once 'pulse_interval' seconds passed since the last emit.
    - Duplicate timestamps count once; signals from the past are ignored.
    """

    def __init__(self, pulse_interval: float = DEFAULT_PULSE_INTERVAL, state: Optional[DebounceState] = None) -> None:
        self.pulse_interval = pulse_interval
        self.state = state or DebounceState()

    def should_emit(self, now: float) -> bool:
        try:
            accepted = self.state.advance(now)
        except SignalOutOfOrder:
            return False
        if not accepted:
            return False

        last_emit = self.state.last_emit_timestamp
        if last_emit is None or now - last_emit >= self.pulse_interval:
            self.state.last_emit_timestamp = now
            return True
        return False

    def idle_for(self, now: float) -> float:
        """Seconds since the last accepted signal (0.0 before any signal)."""
        last = self.state.last_signal_timestamp
        if last is None:
            return 0.0
        return max(0.0, now - last)

    def reset(self) -> None:
        self.state.reset()


__all__ = ["DebounceState", "HeartbeatDebouncer", "DEFAULT_PULSE_INTERVAL"]
