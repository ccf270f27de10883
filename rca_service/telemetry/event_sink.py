"""Export of finished pipeline runs for offline analysis."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import IO, Protocol

from rca_service.core.config import Settings, settings


class EventSink(Protocol):
    def publish(self, event: dict) -> None:  # pragma: no cover - interface
        ...

    def close(self) -> None:  # pragma: no cover - interface
        ...


class NullEventSink:
    """Discards run records; the default when export is off."""

    def publish(self, event: dict) -> None:
        return None

    def close(self) -> None:
        return None


class FileEventSink:
    """Appends one JSON object per finished run to a local file.

    The handle is opened on first publish and kept until ``close``; writes
    from concurrent pipeline runs are serialised.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._handle: IO[str] | None = None
        self._lock = threading.Lock()

    def publish(self, event: dict) -> None:
        line = json.dumps(event, default=str, sort_keys=True)
        with self._lock:
            if self._handle is None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handle = self.path.open("a", encoding="utf-8")
            self._handle.write(line + "\n")
            self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None


def sink_from_settings(config: Settings | None = None) -> EventSink:
    config = config or settings
    backend = config.run_export_backend.lower().strip()
    if backend in {"off", "none", "disabled", ""}:
        return NullEventSink()
    if backend == "file":
        return FileEventSink(config.run_export_path)
    raise ValueError(f"Unsupported run export backend: {config.run_export_backend}")
