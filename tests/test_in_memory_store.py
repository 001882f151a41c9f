"""Unit tests for the in-memory counter store."""

import threading
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import InMemoryCounterStore


def test_first_increment_opens_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    entry = store.increment("k", 60)

    assert entry.count == 1
    assert entry.reset_time == 1060.0


def test_increments_within_window_keep_reset_time() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    store.increment("k", 60)
    clock.return_value = 1030.0
    entry = store.increment("k", 60)

    assert entry.count == 2
    assert entry.reset_time == 1060.0


def test_expired_entry_is_replaced_not_merged() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    for _ in range(5):
        store.increment("k", 10)

    clock.return_value = 1010.0
    entry = store.increment("k", 10)

    assert entry.count == 1
    assert entry.reset_time == 1020.0


def test_returned_entry_is_a_snapshot() -> None:
    store = InMemoryCounterStore(clock=Mock(return_value=1000.0))

    entry = store.increment("k", 60)
    entry.count = 99

    assert store.get("k").count == 1


def test_keys_are_isolated() -> None:
    store = InMemoryCounterStore(clock=Mock(return_value=1000.0))

    store.increment("k1", 60)
    store.increment("k1", 60)

    assert store.increment("k2", 60).count == 1


def test_empty_key_rejected() -> None:
    store = InMemoryCounterStore()

    with pytest.raises(ValueError):
        store.increment("", 60)


def test_sweep_removes_only_expired_entries() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)
    store.increment("short", 10)
    store.increment("long", 120)

    clock.return_value = 1010.0
    removed = store.sweep()

    assert removed == 1
    assert len(store) == 1
    assert store.get("short") is None
    assert store.get("long").count == 1


def test_sweep_never_removes_live_entries() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)
    store.increment("k", 60)

    clock.return_value = 1059.999

    assert store.sweep() == 0
    assert store.get("k") is not None


def test_sweep_skips_when_lock_is_held() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)
    store.increment("k", 10)
    clock.return_value = 2000.0

    store._lock.acquire()
    try:
        assert store.sweep() == 0
    finally:
        store._lock.release()

    assert store.sweep() == 1


def test_clear_and_ping() -> None:
    store = InMemoryCounterStore()
    store.increment("k", 60)

    store.clear()

    assert len(store) == 0
    assert store.ping() is True


def test_concurrent_increments_never_share_a_count() -> None:
    store = InMemoryCounterStore(clock=Mock(return_value=1000.0))
    counts: list[int] = []
    counts_lock = threading.Lock()

    def _worker() -> None:
        for _ in range(20):
            count = store.increment("k", 60).count
            with counts_lock:
                counts.append(count)

    threads = [threading.Thread(target=_worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(counts) == list(range(1, 201))
