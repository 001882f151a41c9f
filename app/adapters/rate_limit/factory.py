"""Factory pattern for creating counter store instances."""

from __future__ import annotations

from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.in_memory import InMemoryCounterStore
from app.adapters.rate_limit.redis_store import RedisCounterStore, create_redis_client
from app.core.config import Settings, settings as default_settings
from app.core.errors import ValidationAppError


def create_counter_store(settings: Settings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store selected by ``RATE_LIMIT_BACKEND``.

    Args:
        settings: Settings to read; defaults to the global settings.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = settings or default_settings
    backend = cfg.rate_limit.backend.lower()

    if backend == "memory":
        return InMemoryCounterStore()

    if backend == "redis":
        return RedisCounterStore(
            create_redis_client(cfg.redis),
            key_prefix=cfg.redis.key_prefix,
        )

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=f"Unknown rate limit backend: '{backend}'. Supported backends: memory, redis",
        details={"backend": backend},
    )
