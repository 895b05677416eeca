"""Unit tests for the Redis counter store (backed by fakeredis)."""

import asyncio

import fakeredis
import pytest
import redis.asyncio.client
import redis.exceptions
from fakeredis import aioredis as fake_aioredis

from ratekeeper.adapters.rate_limit.base import CounterEntry
from ratekeeper.adapters.rate_limit.redis_store import RedisCounterStore
from ratekeeper.core.errors import StorageError


class _SlowPipeline:
    """Pipeline stand-in whose round trip never finishes in time."""

    def __init__(self) -> None:
        self.commands: list[tuple[str, str]] = []

    async def __aenter__(self) -> "_SlowPipeline":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    def set(self, key: str, value: int, px: int | None = None, nx: bool = False) -> None:
        self.commands.append(("set", key))

    def incr(self, key: str) -> None:
        self.commands.append(("incr", key))

    def get(self, key: str) -> None:
        self.commands.append(("get", key))

    def pttl(self, key: str) -> None:
        self.commands.append(("pttl", key))

    async def execute(self) -> list[int]:
        await asyncio.sleep(5)
        return [True, 1, 60_000]


class _SlowRedis:
    def pipeline(self, transaction: bool = True) -> _SlowPipeline:
        return _SlowPipeline()


@pytest.fixture
def redis_client() -> fake_aioredis.FakeRedis:
    return fake_aioredis.FakeRedis(server=fakeredis.FakeServer())


@pytest.fixture
def store(redis_client, clock) -> RedisCounterStore:
    return RedisCounterStore(redis_client, default_timeout_seconds=1.0, clock=clock.time)


@pytest.mark.asyncio
async def test_first_increment_sets_ttl(store, redis_client, clock) -> None:
    entry = await store.increment("ratelimit:c1", 60)

    assert entry.count == 1
    assert entry.expires_at == pytest.approx(clock.current + 60, abs=1.0)
    pttl = await redis_client.pttl("ratelimit:c1")
    assert 0 < pttl <= 60_000


@pytest.mark.asyncio
async def test_increment_keeps_existing_expiry(store, redis_client, clock) -> None:
    first = await store.increment("k", 60)
    second = await store.increment("k", 10)

    assert second.count == 2
    assert second.expires_at == pytest.approx(first.expires_at, abs=1.0)
    # The shorter TTL passed on the second call must not shrink the window.
    assert await redis_client.pttl("k") > 10_000


@pytest.mark.asyncio
async def test_key_without_expiry_is_counted_without_reset(store, redis_client) -> None:
    await redis_client.set("k", 3)

    entry = await store.increment("k", 30)

    assert entry == CounterEntry(count=4, expires_at=None)


@pytest.mark.asyncio
async def test_failed_transaction_leaves_no_counter(store, redis_client, monkeypatch) -> None:
    async def _fail(self, *args, **kwargs):
        raise redis.exceptions.ConnectionError("connection reset by peer")

    monkeypatch.setattr(redis.asyncio.client.Pipeline, "execute", _fail)

    with pytest.raises(StorageError) as exc_info:
        await store.increment("ratelimit:c1", 60)

    assert exc_info.value.code == "storage_unavailable"
    assert await redis_client.get("ratelimit:c1") is None


@pytest.mark.asyncio
async def test_increment_needs_no_follow_up_commands(store, redis_client, monkeypatch) -> None:
    async def _fail(*args, **kwargs):
        raise redis.exceptions.ConnectionError("connection reset by peer")

    monkeypatch.setattr(redis_client, "pexpire", _fail)
    monkeypatch.setattr(redis_client, "expire", _fail)

    first = await store.increment("ratelimit:c1", 60)
    second = await store.increment("ratelimit:c1", 60)

    assert (first.count, second.count) == (1, 2)
    assert 0 < await redis_client.pttl("ratelimit:c1") <= 60_000


@pytest.mark.asyncio
async def test_get_unknown_key_is_absent(store) -> None:
    assert await store.get("never-seen") == CounterEntry.absent()


@pytest.mark.asyncio
async def test_get_reports_count_and_expiry(store) -> None:
    await store.increment("k", 60)
    await store.increment("k", 60)

    entry = await store.get("k")

    assert entry.count == 2
    assert entry.expires_at is not None


@pytest.mark.asyncio
async def test_get_without_ttl_is_absent(store, redis_client) -> None:
    await redis_client.set("k", 7)

    assert await store.get("k") == CounterEntry.absent()


@pytest.mark.asyncio
async def test_get_after_expiry_is_absent(store, redis_client) -> None:
    await store.increment("k", 60)
    await redis_client.pexpire("k", 1)
    await asyncio.sleep(0.02)

    assert await store.get("k") == CounterEntry.absent()


@pytest.mark.asyncio
async def test_get_with_corrupt_counter_raises(store, redis_client) -> None:
    await redis_client.set("k", "not-a-number", px=60_000)

    with pytest.raises(StorageError) as exc_info:
        await store.get("k")

    assert exc_info.value.code == "storage_corrupt_counter"


@pytest.mark.asyncio
async def test_connection_failure_raises_storage_error(clock) -> None:
    server = fakeredis.FakeServer()
    server.connected = False
    store = RedisCounterStore(fake_aioredis.FakeRedis(server=server), clock=clock.time)

    with pytest.raises(StorageError) as exc_info:
        await store.increment("k", 60)
    assert exc_info.value.code == "storage_unavailable"

    with pytest.raises(StorageError):
        await store.get("k")


@pytest.mark.asyncio
async def test_deadline_exceeded_raises_storage_error() -> None:
    store = RedisCounterStore(_SlowRedis(), default_timeout_seconds=5.0)  # type: ignore[arg-type]

    with pytest.raises(StorageError) as exc_info:
        await store.increment("k", 60, timeout=0.01)

    assert exc_info.value.code == "storage_timeout"
    assert exc_info.value.details["timeout_seconds"] == 0.01


@pytest.mark.asyncio
async def test_default_deadline_applies_to_get() -> None:
    store = RedisCounterStore(_SlowRedis(), default_timeout_seconds=0.01)  # type: ignore[arg-type]

    with pytest.raises(StorageError) as exc_info:
        await store.get("k")

    assert exc_info.value.code == "storage_timeout"


@pytest.mark.asyncio
async def test_concurrent_increments_are_all_counted(store) -> None:
    entries = await asyncio.gather(*(store.increment("hot", 60) for _ in range(50)))

    assert sorted(e.count for e in entries) == list(range(1, 51))
    assert (await store.get("hot")).count == 50


@pytest.mark.asyncio
async def test_close_only_closes_owned_client(redis_client) -> None:
    borrowed = RedisCounterStore(redis_client)
    await borrowed.close()

    # Borrowed client is still usable after the store is closed.
    assert await redis_client.incr("still-open") == 1


def test_invalid_default_timeout(redis_client) -> None:
    with pytest.raises(ValueError):
        RedisCounterStore(redis_client, default_timeout_seconds=0)


@pytest.mark.asyncio
async def test_invalid_increment_args(store) -> None:
    with pytest.raises(ValueError):
        await store.increment("", 60)
    with pytest.raises(ValueError):
        await store.increment("k", 0)
