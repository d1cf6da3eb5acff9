"""
Heartbeat data model.

A RawSignal is what the editor hands us on every qualifying action; a Heartbeat
is what eventually reaches the aggregation server. Contexts are resolved only
for signals the debouncer lets through.

Wire format (ActivityWatch event):
{
  "timestamp": "2024-01-01T12:00:00.250000+00:00",
  "duration": 0,
  "data": {"file": "...", "project": "...", "language": "...", "afk": false}
}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RawSignal:
    timestamp: float  # epoch seconds, non-decreasing per process
    active_file_path: Optional[str] = None


@dataclass(frozen=True)
class HeartbeatContext:
    file_path: Optional[str] = None
    project_path: Optional[str] = None
    language_tag: Optional[str] = None

    @property
    def is_idle(self) -> bool:
        """True for the "in the editor, but not on a file" context."""
        return self.file_path is None


@dataclass(frozen=True)
class Heartbeat:
    timestamp: float
    bucket_id: str
    context: HeartbeatContext = field(default_factory=HeartbeatContext)
    is_afk: bool = False

    @property
    def iso_timestamp(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat()

    def to_data(self) -> Dict[str, Any]:
        # Unset fields go out as empty strings so the server always sees the same keys
        ctx = self.context
        return {
            "file": ctx.file_path or "",
            "project": ctx.project_path or "",
            "language": ctx.language_tag or "",
            "afk": self.is_afk,
        }

    def to_event(self) -> Dict[str, Any]:
        return {
            "timestamp": self.iso_timestamp,
            "duration": 0,
            "data": self.to_data(),
        }


__all__ = ["RawSignal", "HeartbeatContext", "Heartbeat"]
