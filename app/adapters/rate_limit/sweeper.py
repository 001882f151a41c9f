"""Background sweep of expired counters.

The sweeper is an explicit object owned by the application lifespan, so no
timer starts as a side effect of importing the store.
"""

from __future__ import annotations

import logging
import threading

from app.adapters.rate_limit.base import AbstractCounterStore

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Call ``store.sweep()`` every ``interval_seconds`` on a daemon thread."""

    def __init__(self, store: AbstractCounterStore, *, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        self._store = store
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        """Run a single sweep now and return the number of removed entries."""
        return self._store.sweep()

    def start(self) -> None:
        """Start the sweep thread (no-op if already running)."""
        if self.running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="rate-limit-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "rate_limit.sweeper_started",
            extra={"interval_s": self._interval, "backend": self._store.backend_name},
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the thread to exit and wait up to ``timeout`` seconds."""
        thread = self._thread
        if thread is None:
            return

        self._stop_event.set()
        thread.join(timeout)
        self._thread = None
        logger.info("rate_limit.sweeper_stopped")

    def _run(self) -> None:
        # Event.wait doubles as an interruptible sleep.
        while not self._stop_event.wait(self._interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("rate_limit.sweep_failed")
