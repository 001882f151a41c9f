"""Fixed-window rate limiter.

The limiter turns a store increment into an explicit decision. It never
raises for "limit exceeded" and never retries the store: a retry would count
the same request twice and distort the window.

Known trade-off: a fixed window lets up to 2 x max_requests through in any
rolling interval that straddles a window boundary (a full budget at the tail
of one window, another at the head of the next). This is accepted in exchange
for O(1) time and space per key.
"""

from __future__ import annotations

import hashlib
import logging

from app.adapters.rate_limit.base import (
    AbstractCounterStore,
    Allowed,
    RateLimitConfig,
    RateLimitExceeded,
    RateLimitResult,
    StoreUnavailable,
    build_rate_limit_key,
)
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def hash_identifier(identifier: str) -> str:
    """Hash an identifier for logging without exposing it."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


class RateLimiter:
    """Apply a ``RateLimitConfig`` against a counter store."""

    def __init__(self, store: AbstractCounterStore) -> None:
        self._store = store

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def check(self, identifier: str, operation: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request and decide whether it may proceed.

        Denied requests still increment the counter, so repeated denials
        never open the window early.

        Args:
            identifier: Opaque caller identity.
            operation: Opaque name of the protected action.
            config: Quota to enforce.

        Returns:
            Allowed, RateLimitExceeded or StoreUnavailable.
        """
        key = build_rate_limit_key(identifier, operation)

        try:
            entry = self._store.increment(key, config.window_seconds)
        except StoreUnavailableError as exc:
            logger.warning(
                "rate_limit.store_unavailable",
                extra={
                    "operation": operation,
                    "backend": self._store.backend_name,
                    "error_code": exc.code,
                },
            )
            return StoreUnavailable(reason=exc.message)

        if entry.count <= config.max_requests:
            remaining = config.max_requests - entry.count
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "operation": operation,
                    "key_hash": hash_identifier(identifier),
                    "limit": config.max_requests,
                    "remaining": remaining,
                },
            )
            return Allowed(
                limit=config.max_requests,
                remaining=remaining,
                reset_time=entry.reset_time,
            )

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "operation": operation,
                "key_hash": hash_identifier(identifier),
                "limit": config.max_requests,
                "count": entry.count,
                "window_s": config.window_seconds,
            },
        )
        return RateLimitExceeded(
            limit=config.max_requests,
            reset_time=entry.reset_time,
            window_seconds=config.window_seconds,
        )
