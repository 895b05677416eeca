"""Unit tests for the in-memory counter store."""

import asyncio
import threading

import pytest

from ratekeeper.adapters.rate_limit.base import CounterEntry
from ratekeeper.adapters.rate_limit.in_memory import InMemoryCounterStore


@pytest.fixture
def store(clock) -> InMemoryCounterStore:
    s = InMemoryCounterStore(sweep_interval_seconds=None, clock=clock.time)
    yield s
    s.shutdown()


def test_first_increment_creates_entry_with_full_ttl(store, clock) -> None:
    entry = store.increment_sync("k", 60)

    assert entry == CounterEntry(count=1, expires_at=clock.current + 60)


def test_subsequent_increments_keep_existing_expiry(store, clock) -> None:
    first = store.increment_sync("k", 60)
    clock.advance(10)
    second = store.increment_sync("k", 60)
    third = store.increment_sync("k", 5)

    assert second.count == 2
    assert third.count == 3
    assert second.expires_at == first.expires_at
    assert third.expires_at == first.expires_at


def test_increment_after_expiry_starts_fresh_window(store, clock) -> None:
    store.increment_sync("k", 10)
    store.increment_sync("k", 10)

    clock.advance(10)
    entry = store.increment_sync("k", 10)

    assert entry.count == 1
    assert entry.expires_at == clock.current + 10


def test_get_on_unknown_key_is_absent(store) -> None:
    assert store.get_sync("never-seen") == CounterEntry(count=0, expires_at=None)


def test_get_reports_live_count_without_mutating(store) -> None:
    created = store.increment_sync("k", 30)
    store.increment_sync("k", 30)

    assert store.get_sync("k") == CounterEntry(count=2, expires_at=created.expires_at)
    assert store.get_sync("k").count == 2


def test_get_after_expiry_is_absent(store, clock) -> None:
    store.increment_sync("k", 5)
    clock.advance(5)

    assert store.get_sync("k") == CounterEntry.absent()


def test_keys_are_isolated(store) -> None:
    store.increment_sync("a", 60)
    store.increment_sync("a", 60)

    assert store.increment_sync("b", 60).count == 1
    assert store.get_sync("a").count == 2


@pytest.mark.parametrize(
    "key, ttl",
    [
        ("", 60),
        ("k", 0),
        ("k", -1),
    ],
)
def test_invalid_increment_args(store, key: str, ttl: float) -> None:
    with pytest.raises(ValueError):
        store.increment_sync(key, ttl)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"sweep_interval_seconds": 0},
        {"sweep_interval_seconds": None, "sweep_grace_seconds": -1},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryCounterStore(**kwargs)


def test_sweep_evicts_only_expired_entries(store, clock) -> None:
    store.increment_sync("short", 5)
    store.increment_sync("long", 60)

    clock.advance(6)
    evicted = store.sweep()

    assert evicted == 1
    assert len(store) == 1
    assert store.get_sync("long").count == 1


def test_sweep_respects_grace_period(clock) -> None:
    with InMemoryCounterStore(
        sweep_interval_seconds=None, sweep_grace_seconds=30, clock=clock.time
    ) as store:
        store.increment_sync("k", 5)

        clock.advance(10)
        assert store.sweep() == 0
        assert len(store) == 1
        # Lingering entry is still reported as absent.
        assert store.get_sync("k") == CounterEntry.absent()

        clock.advance(30)
        assert store.sweep() == 1
        assert len(store) == 0


def test_background_sweeper_stops_on_shutdown() -> None:
    store = InMemoryCounterStore(sweep_interval_seconds=0.01)
    assert store.sweeper_running is True

    store.shutdown()

    assert store.sweeper_running is False


def test_background_sweeper_evicts_expired_entries() -> None:
    with InMemoryCounterStore(sweep_interval_seconds=0.01) as store:
        store.increment_sync("k", 0.01)
        for _ in range(200):
            if len(store) == 0:
                break
            threading.Event().wait(0.01)

        assert len(store) == 0


def test_async_interface_matches_sync(store, clock) -> None:
    async def _run() -> tuple[CounterEntry, CounterEntry]:
        created = await store.increment("k", 60)
        read = await store.get("k", timeout=0.1)
        await store.close()
        return created, read

    created, read = asyncio.run(_run())

    assert created == CounterEntry(count=1, expires_at=clock.current + 60)
    assert read == created
    assert store.sweeper_running is False


def test_concurrent_increments_on_one_key_are_all_counted() -> None:
    store = InMemoryCounterStore(sweep_interval_seconds=None)
    workers = 100
    barrier = threading.Barrier(workers)
    counts: list[int] = []
    counts_lock = threading.Lock()

    def _worker() -> None:
        barrier.wait()
        entry = store.increment_sync("hot", 60)
        with counts_lock:
            counts.append(entry.count)

    threads = [threading.Thread(target=_worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # Each caller observed a distinct count: no lost updates, one creator.
    assert sorted(counts) == list(range(1, workers + 1))
    assert store.get_sync("hot").count == workers
