"""Process-wide collector of log messages emitted by plugins."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class LogEntry:
    level: str
    message: str
    timestamp: int  # milliseconds since the Unix epoch


_lock = threading.Lock()
_logs: list[LogEntry] = []


def add_log(level: str, message: str) -> None:
    """Record a log message with the current time."""
    entry = LogEntry(level=level, message=message, timestamp=time.time_ns() // 1_000_000)
    with _lock:
        _logs.append(entry)


def get_logs() -> list[LogEntry]:
    """Return a copy of every collected entry, oldest first."""
    with _lock:
        return list(_logs)


def clear_logs() -> None:
    """Discard all collected entries."""
    with _lock:
        _logs.clear()