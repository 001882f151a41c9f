"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards every read-modify-write.
- Expired entries are dropped by ``sweep()``, driven by ``PeriodicSweeper``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from app.adapters.rate_limit.base import AbstractCounterStore, CounterEntry

logger = logging.getLogger(__name__)


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store holding fixed-window entries in a process-local dict.

    Keys are independent, so a single coarse lock is enough: contention is
    limited to the dict update itself.

    Important:
        This store is per-process only. If the API runs with multiple workers,
        each worker enforces its own independent limits.
    """

    backend_name = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CounterEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def increment(self, key: str, window_seconds: float) -> CounterEntry:
        """Count one request for ``key`` in its current window.

        A missing or expired entry is replaced wholesale, never merged.

        Args:
            key: Store key.
            window_seconds: Window length for a newly created entry.

        Returns:
            Copy of the entry after the increment.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                entry = CounterEntry(count=1, reset_time=now + window_seconds)
                self._entries[key] = entry
            else:
                entry.count += 1
            return CounterEntry(count=entry.count, reset_time=entry.reset_time)

    def get(self, key: str) -> CounterEntry | None:
        """Return a copy of the live entry for ``key`` without counting."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return CounterEntry(count=entry.count, reset_time=entry.reset_time)

    def sweep(self) -> int:
        """Drop entries whose window has closed.

        The lock is taken without blocking: if live traffic holds it, this
        round is skipped and the next scheduled sweep catches up.

        Returns:
            Number of entries removed (0 when the round was skipped).
        """
        if not self._lock.acquire(blocking=False):
            logger.debug("rate_limit.sweep_skipped", extra={"reason": "lock_busy"})
            return 0
        try:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)
        finally:
            self._lock.release()

        if expired:
            logger.debug(
                "rate_limit.sweep",
                extra={"removed": len(expired), "entries": remaining},
            )
        return len(expired)

    def ping(self) -> bool:
        return True

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()
