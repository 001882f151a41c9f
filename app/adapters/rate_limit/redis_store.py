"""Redis-backed fixed-window counter store.

Each key is a plain integer counter. The window is a fixed slot: its TTL is
set on the first write and Redis expires the key when the slot closes, so no
local sweep is needed.

Increment and expiry run inside one Lua script. Redis executes scripts
atomically, which makes concurrent increments on the same key linearizable
across every API instance sharing the keyspace.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import redis

from app.adapters.rate_limit.base import AbstractCounterStore, CounterEntry
from app.core.config import RedisSettings, settings
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


# KEYS[1] = counter key
# ARGV[1] = window length in milliseconds
# Returns: {count, pttl_ms}
INCREMENT_WITH_EXPIRY_LUA = r"""
local count = redis.call('INCR', KEYS[1])
local ttl = redis.call('PTTL', KEYS[1])
if count == 1 or ttl < 0 then
  redis.call('PEXPIRE', KEYS[1], ARGV[1])
  ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


def create_redis_client(redis_settings: RedisSettings | None = None) -> redis.Redis:
    """Build a Redis client with bounded connect and socket timeouts.

    Args:
        redis_settings: Connection settings; defaults to global settings.

    Returns:
        Configured ``redis.Redis`` client (connections are lazy).
    """
    cfg = redis_settings or settings.redis
    return redis.Redis.from_url(
        cfg.url,
        decode_responses=True,
        socket_timeout=cfg.socket_timeout_seconds,
        socket_connect_timeout=cfg.connect_timeout_seconds,
    )


class RedisCounterStore(AbstractCounterStore):
    """Counter store sharing fixed-window counters through Redis."""

    backend_name = "redis"

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "rate_limit",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._key_prefix = key_prefix
        self._clock = clock
        self._increment = client.register_script(INCREMENT_WITH_EXPIRY_LUA)

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}" if self._key_prefix else key

    def increment(self, key: str, window_seconds: float) -> CounterEntry:
        """Count one request for ``key`` using the atomic increment script.

        Args:
            key: Store key.
            window_seconds: TTL applied when the counter is created.

        Returns:
            Entry whose reset_time is derived from the key's remaining TTL.

        Raises:
            ValueError: If key is empty.
            StoreUnavailableError: On any Redis error, including timeouts.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        window_ms = max(1, int(round(window_seconds * 1000)))
        try:
            count, ttl_ms = self._increment(keys=[self._redis_key(key)], args=[window_ms])
        except redis.RedisError as exc:
            logger.warning(
                "rate_limit.redis_error",
                extra={"error_type": type(exc).__name__, "operation": "increment"},
            )
            raise StoreUnavailableError(
                code="rate_limit_store_unavailable",
                message="Rate limit store is unavailable",
                details={"backend": self.backend_name, "hint": type(exc).__name__},
            ) from exc

        now = self._clock()
        return CounterEntry(count=int(count), reset_time=now + int(ttl_ms) / 1000)

    def sweep(self) -> int:
        # Expiry is delegated to Redis key TTLs.
        return 0

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as exc:
            logger.warning(
                "rate_limit.redis_error",
                extra={"error_type": type(exc).__name__, "operation": "ping"},
            )
            return False

    def close(self) -> None:
        self._client.close()
