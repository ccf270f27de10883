"""Admit-once suppression of redelivered webhook events."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

_logger = logging.getLogger(__name__)


class EventDeduplicator:
    """TTL-bounded membership set keyed by ``repository-pull request``.

    ``admit`` returns ``True`` the first time a key is seen and ``False`` for
    every later call until the key's TTL elapses. Expired keys are dropped
    lazily on lookup and, once ``start`` has been called, by a background
    sweep thread that ``stop`` shuts down.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        *,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._sweep_interval = max(sweep_interval_seconds, 0.1)
        self._clock = clock
        self._expiries: dict[str, float] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def admit(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            expiry = self._expiries.get(key)
            if expiry is not None and expiry > now:
                return False
            self._expiries[key] = now + self._ttl
            return True

    def sweep(self) -> int:
        """Drop expired keys and return how many were removed."""

        now = self._clock()
        with self._lock:
            expired = [key for key, expiry in self._expiries.items() if expiry <= now]
            for key in expired:
                del self._expiries[key]
        return len(expired)

    def start(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(target=self._run_sweeper, name="dedup-sweeper", daemon=True)
        self._sweeper.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=self._sweep_interval + 1)
            self._sweeper = None

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for expiry in self._expiries.values() if expiry > now)

    def _run_sweeper(self) -> None:
        while not self._stop_event.wait(self._sweep_interval):
            removed = self.sweep()
            if removed:
                _logger.debug("Evicted %d expired dedup keys", removed)
