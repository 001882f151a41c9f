"""Rate limiter data model and counter store interface.

The limiter depends on this abstraction (not a concrete store) so the
per-process memory store and the shared Redis store are interchangeable.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

from app.core.errors import InvalidConfigError

# Upper bound shared by both stores; Redis rejects PEXPIRE values past its
# millisecond range, so longer windows are refused at construction.
MAX_WINDOW_SECONDS = 366 * 24 * 3600


@dataclass(frozen=True)
class RateLimitConfig:
    """Quota for one operation.

    Attributes:
        window_seconds: Length of the fixed window in seconds.
        max_requests: Requests allowed per identifier within one window.
        sensitive: Deny (fail closed) when the counter store is unavailable.
            Non-sensitive operations fail open.
    """

    window_seconds: float
    max_requests: int
    sensitive: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.max_requests, bool) or not isinstance(self.max_requests, int):
            raise InvalidConfigError(
                code="rate_limit_invalid_max_requests",
                message="max_requests must be an integer",
                details={"field": "max_requests", "value": self.max_requests},
            )
        if self.max_requests <= 0:
            raise InvalidConfigError(
                code="rate_limit_invalid_max_requests",
                message="max_requests must be > 0",
                details={"field": "max_requests", "value": self.max_requests},
            )
        if isinstance(self.window_seconds, bool) or not isinstance(self.window_seconds, (int, float)):
            raise InvalidConfigError(
                code="rate_limit_invalid_window",
                message="window_seconds must be a number",
                details={"field": "window_seconds", "value": self.window_seconds},
            )
        if not math.isfinite(self.window_seconds) or self.window_seconds <= 0:
            raise InvalidConfigError(
                code="rate_limit_invalid_window",
                message="window_seconds must be a finite number > 0",
                details={"field": "window_seconds", "value": self.window_seconds},
            )
        if self.window_seconds > MAX_WINDOW_SECONDS:
            raise InvalidConfigError(
                code="rate_limit_invalid_window",
                message=f"window_seconds must be <= {MAX_WINDOW_SECONDS}",
                details={"field": "window_seconds", "value": self.window_seconds},
            )


@dataclass
class CounterEntry:
    """Request count for one key inside the current window.

    Attributes:
        count: Requests seen in the window, including denied ones.
        reset_time: UNIX epoch seconds at which the window closes.
    """

    count: int
    reset_time: float

    def is_expired(self, now: float) -> bool:
        return now >= self.reset_time


@dataclass(frozen=True)
class Allowed:
    """The request fits in the current window."""

    limit: int
    remaining: int
    reset_time: float

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class RateLimitExceeded:
    """The identifier used up its budget for this window."""

    limit: int
    reset_time: float
    window_seconds: float

    @property
    def allowed(self) -> bool:
        return False

    def retry_after(self, now: float) -> int:
        """Whole seconds until the window closes, rounded up."""
        return max(0, math.ceil(self.reset_time - now))


@dataclass(frozen=True)
class StoreUnavailable:
    """The counter store failed; the caller applies its fail-open/closed policy."""

    reason: str

    @property
    def allowed(self) -> bool:
        return False


RateLimitResult = Allowed | RateLimitExceeded | StoreUnavailable


def build_rate_limit_key(identifier: str, operation: str) -> str:
    """Join identifier and operation into the store key.

    Both parts are opaque: they are never parsed or normalised.
    """
    return f"{identifier}:{operation}"


class AbstractCounterStore(ABC):
    """Interface for fixed-window counter storage."""

    backend_name: str = "abstract"

    @abstractmethod
    def increment(self, key: str, window_seconds: float) -> CounterEntry:
        """Atomically count one request for ``key``.

        Creates a fresh entry (count=1, reset_time=now + window_seconds) when
        none is live; otherwise increments the live entry.

        Args:
            key: Store key built by ``build_rate_limit_key``.
            window_seconds: Window length used when a new entry is created.

        Returns:
            Snapshot of the entry after the increment.

        Raises:
            StoreUnavailableError: If the underlying medium fails or times out.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self) -> int:
        """Remove expired entries and return how many were dropped."""
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the store is reachable."""
        raise NotImplementedError

    def close(self) -> None:
        """Release store resources (no-op by default)."""
