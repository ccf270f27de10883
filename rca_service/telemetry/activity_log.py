"""Operator-facing activity log kept in memory and mirrored to stdlib logging."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel

LogLevel = Literal["info", "warn", "error"]

_logger = logging.getLogger("rca_service.activity")

_STDLIB_LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class ActivityEntry(BaseModel):
    """One recorded pipeline event."""

    timestamp: datetime
    level: LogLevel
    message: str
    details: dict[str, Any] | None = None


class ActivityLog:
    """Bounded, newest-first buffer of recent activity."""

    def __init__(self, max_entries: int = 100) -> None:
        self._entries: deque[ActivityEntry] = deque(maxlen=max(max_entries, 1))
        self._lock = threading.Lock()

    def add(self, level: LogLevel, message: str, details: dict[str, Any] | None = None) -> ActivityEntry:
        entry = ActivityEntry(
            timestamp=datetime.now(timezone.utc),
            level=level,
            message=message,
            details=details,
        )
        with self._lock:
            self._entries.appendleft(entry)
        if details:
            _logger.log(_STDLIB_LEVELS[level], "%s %s", message, details)
        else:
            _logger.log(_STDLIB_LEVELS[level], "%s", message)
        return entry

    def info(self, message: str, details: dict[str, Any] | None = None) -> ActivityEntry:
        return self.add("info", message, details)

    def warn(self, message: str, details: dict[str, Any] | None = None) -> ActivityEntry:
        return self.add("warn", message, details)

    def error(self, message: str, details: dict[str, Any] | None = None) -> ActivityEntry:
        return self.add("error", message, details)

    def entries(self) -> list[ActivityEntry]:
        with self._lock:
            return list(self._entries)
