from __future__ import annotations

from typing import Optional


class WatcherError(Exception):
    """Base class for every error raised inside the watcher."""


class ConfigError(WatcherError):
    pass


class SignalOutOfOrder(WatcherError):
    """A signal arrived with a timestamp older than the last accepted one."""

    def __init__(self, timestamp: float, last_timestamp: float) -> None:
        super().__init__(f"signal at {timestamp:.3f} is older than {last_timestamp:.3f}")
        self.timestamp = timestamp
        self.last_timestamp = last_timestamp


class DeliveryError(WatcherError):
    """A heartbeat could not be delivered to the aggregation server."""

    def __init__(self, message: str, bucket_id: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.bucket_id = bucket_id
        self.status_code = status_code


class DeliveryUnreachable(DeliveryError):
    """Transient failures (connection, timeout, 5xx) outlasted every retry."""


class DeliveryRejected(DeliveryError):
    """The server refused the request permanently (4xx); retrying will not help."""


__all__ = [
    "WatcherError",
    "ConfigError",
    "SignalOutOfOrder",
    "DeliveryError",
    "DeliveryUnreachable",
    "DeliveryRejected",
]
