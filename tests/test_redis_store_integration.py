"""Runs the increment script against a live Redis.

Set ``REDIS_TEST_URL`` (e.g. ``redis://localhost:6379/15``) to enable.
"""

import os
import uuid

import pytest
import redis

from app.adapters.rate_limit.base import MAX_WINDOW_SECONDS, RateLimitConfig, RateLimitExceeded
from app.adapters.rate_limit.redis_store import RedisCounterStore, create_redis_client
from app.core.config import RedisSettings
from app.services.rate_limiter import RateLimiter

pytestmark = pytest.mark.redis

REDIS_TEST_URL = os.environ.get("REDIS_TEST_URL")


@pytest.fixture
def client():
    if not REDIS_TEST_URL:
        pytest.skip("REDIS_TEST_URL not set")
    client = create_redis_client(RedisSettings(url=REDIS_TEST_URL))
    try:
        client.ping()
    except redis.RedisError as exc:
        pytest.skip(f"Redis not reachable: {exc}")
    yield client
    client.close()


@pytest.fixture
def key_prefix(client):
    prefix = f"rl-test-{uuid.uuid4().hex}"
    yield prefix
    for key in client.scan_iter(match=f"{prefix}:*"):
        client.delete(key)


@pytest.fixture
def store(client, key_prefix) -> RedisCounterStore:
    return RedisCounterStore(client, key_prefix=key_prefix)


def test_limiter_allows_then_denies(store: RedisCounterStore) -> None:
    limiter = RateLimiter(store)
    config = RateLimitConfig(window_seconds=60, max_requests=3)

    results = [limiter.check("user_1", "export", config) for _ in range(4)]

    assert [r.remaining for r in results[:3]] == [2, 1, 0]
    assert isinstance(results[3], RateLimitExceeded)


def test_first_increment_sets_ttl(client, store: RedisCounterStore, key_prefix) -> None:
    entry = store.increment("k", 60)

    assert entry.count == 1
    assert 0 < client.pttl(f"{key_prefix}:k") <= 60_000


def test_key_without_ttl_gets_one_on_next_increment(
    client, store: RedisCounterStore, key_prefix
) -> None:
    client.set(f"{key_prefix}:k", 5)
    assert client.pttl(f"{key_prefix}:k") == -1

    entry = store.increment("k", 30)

    assert entry.count == 6
    assert 0 < client.pttl(f"{key_prefix}:k") <= 30_000


def test_longest_window_is_accepted_by_redis(client, store: RedisCounterStore) -> None:
    limiter = RateLimiter(store)
    config = RateLimitConfig(window_seconds=MAX_WINDOW_SECONDS, max_requests=1)

    first = limiter.check("user_1", "annual", config)
    second = limiter.check("user_1", "annual", config)

    assert first.remaining == 0
    assert isinstance(second, RateLimitExceeded)
