"""Unit tests for rate limit configuration and result types."""

import pytest

from app.adapters.rate_limit.base import (
    MAX_WINDOW_SECONDS,
    CounterEntry,
    RateLimitConfig,
    RateLimitExceeded,
    build_rate_limit_key,
)
from app.core.errors import InvalidConfigError, ValidationAppError


def test_valid_config_is_frozen() -> None:
    config = RateLimitConfig(window_seconds=60, max_requests=3)

    assert config.sensitive is False
    with pytest.raises(AttributeError):
        config.max_requests = 4  # type: ignore[misc]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"window_seconds": 0, "max_requests": 1},
        {"window_seconds": -5, "max_requests": 1},
        {"window_seconds": float("inf"), "max_requests": 1},
        {"window_seconds": MAX_WINDOW_SECONDS + 1, "max_requests": 1},
        {"window_seconds": 1e17, "max_requests": 1},
        {"window_seconds": 60, "max_requests": 0},
        {"window_seconds": 60, "max_requests": -1},
        {"window_seconds": 60, "max_requests": 1.5},
        {"window_seconds": 60, "max_requests": True},
        {"window_seconds": "60", "max_requests": 1},
    ],
)
def test_invalid_config_fails_at_construction(kwargs: dict) -> None:
    with pytest.raises(InvalidConfigError) as exc_info:
        RateLimitConfig(**kwargs)

    assert isinstance(exc_info.value, ValidationAppError)
    assert exc_info.value.code.startswith("rate_limit_invalid")


def test_longest_window_is_accepted() -> None:
    config = RateLimitConfig(window_seconds=MAX_WINDOW_SECONDS, max_requests=1)

    assert config.window_seconds == MAX_WINDOW_SECONDS


def test_key_joins_opaque_parts() -> None:
    assert build_rate_limit_key("user_1", "meal_log") == "user_1:meal_log"
    # Never parsed: colons inside parts are kept verbatim
    assert build_rate_limit_key("::1", "a:b") == "::1:a:b"


def test_counter_entry_expires_at_reset_time() -> None:
    entry = CounterEntry(count=1, reset_time=1060.0)

    assert entry.is_expired(1059.9) is False
    assert entry.is_expired(1060.0) is True


def test_retry_after_rounds_up_and_never_negative() -> None:
    denied = RateLimitExceeded(limit=3, reset_time=1060.0, window_seconds=60)

    assert denied.retry_after(1000.0) == 60
    assert denied.retry_after(1059.2) == 1
    assert denied.retry_after(1070.0) == 0
    assert denied.allowed is False
