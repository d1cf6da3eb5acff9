"""
Watcher configuration.

The editor plugin builds a WatcherConfig directly or loads one from a JSON
preferences file. Unknown keys are ignored so older plugins keep working with
newer files.

Example (JSON):
{
  "server_url": "http://localhost:5600/api/0",
  "pulse_interval": 1.0,
  "afk_timeout": 300,
  "desktop_notifications": true
}
"""

from __future__ import annotations

import json
import os
import socket
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from .client import DEFAULT_CLIENT_NAME, DEFAULT_EVENT_TYPE, DEFAULT_SERVER_URL
from .context import DEFAULT_PROJECT_MARKERS
from .errors import ConfigError


def default_bucket_id(client_name: str = DEFAULT_CLIENT_NAME) -> str:
    try:
        host = socket.gethostname()
    except OSError:
        host = ""
    return f"{client_name}_{host or 'unknown'}"


def _default_markers() -> List[str]:
    return list(DEFAULT_PROJECT_MARKERS)


@dataclass
class WatcherConfig:
    # Server
    server_url: str = DEFAULT_SERVER_URL
    bucket_id: str = field(default_factory=default_bucket_id)
    client_name: str = DEFAULT_CLIENT_NAME
    event_type: str = DEFAULT_EVENT_TYPE
    hostname: Optional[str] = None

    # Timing (seconds)
    pulse_interval: float = 1.0   # minimum gap between heartbeats
    pulsetime: float = 30.0       # server-side merge window
    request_timeout: float = 5.0
    afk_timeout: Optional[float] = 180.0  # None disables AFK heartbeats

    # Retries
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_factor: float = 2.0
    backoff_max: float = 5.0

    # Worker
    queue_size: int = 16
    shutdown_timeout: float = 2.0

    # Behavior
    skip_unchanged: bool = False
    desktop_notifications: bool = False

    # Context resolution
    project_markers: List[str] = field(default_factory=_default_markers)
    cwd: Optional[str] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        positive = ("pulse_interval", "pulsetime", "request_timeout", "backoff_factor", "shutdown_timeout")
        for name in positive:
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)!r}")
        if self.backoff_base < 0 or self.backoff_max < 0:
            raise ConfigError("backoff delays must not be negative")
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be at least 1, got {self.max_attempts!r}")
        if self.queue_size < 1:
            raise ConfigError(f"queue_size must be at least 1, got {self.queue_size!r}")
        if self.afk_timeout is not None and self.afk_timeout <= 0:
            raise ConfigError(f"afk_timeout must be positive or null, got {self.afk_timeout!r}")
        if not self.bucket_id:
            raise ConfigError("bucket_id must not be empty")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatcherConfig":
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            kwargs[f.name] = _coerce(f.name, data[f.name])
        return cls(**kwargs)


_STR_FIELDS = {"server_url", "bucket_id", "client_name", "event_type"}
_OPTIONAL_STR_FIELDS = {"hostname", "cwd"}
_INT_FIELDS = {"max_attempts", "queue_size"}
_BOOL_FIELDS = {"skip_unchanged", "desktop_notifications"}


def _coerce(name: str, value: Any) -> Any:
    if name in _STR_FIELDS:
        if not isinstance(value, str):
            raise ConfigError(f"{name} must be a string")
        return value
    if name in _OPTIONAL_STR_FIELDS:
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"{name} must be a string or null")
        return value
    if name in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise ConfigError(f"{name} must be a boolean")
        return value
    if name in _INT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{name} must be an integer")
        return value
    if name == "project_markers":
        if not isinstance(value, list) or not all(isinstance(m, str) and m for m in value):
            raise ConfigError("project_markers must be a list of non-empty strings")
        return list(value)
    if name == "afk_timeout" and value is None:
        return None
    # remaining fields are seconds
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number")
    return float(value)


def load_config(path: str) -> WatcherConfig:
    """Load a WatcherConfig from a JSON file; a missing file yields the defaults."""
    if not os.path.exists(path):
        return WatcherConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read watcher config {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Watcher config {path} must contain a JSON object")
    return WatcherConfig.from_dict(raw)


__all__ = ["WatcherConfig", "load_config", "default_bucket_id"]
