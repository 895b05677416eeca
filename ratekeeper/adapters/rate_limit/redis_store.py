"""Redis-backed counter store.

Shared across workers and hosts: all mutual exclusion lives in Redis, the
process holds no lock across the network call.

``increment`` is one MULTI/EXEC round trip:

    SET key 0 PX ttl NX   create the window with its expiry if absent
    INCR key
    PTTL key

The key is created and expired by the same transaction that counts it, so a
failed call either ran all three commands or none of them.

Every call is bounded by a deadline and every backend fault surfaces as
``StorageError``, never as a zero count.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ratekeeper.adapters.rate_limit.base import CounterEntry, CounterStore
from ratekeeper.core.errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisCounterStore(CounterStore):
    """Counter store using Redis ``INCR`` with key expiry."""

    def __init__(
        self,
        redis: Redis,
        *,
        default_timeout_seconds: float = 0.5,
        owns_client: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            redis: Async Redis client.
            default_timeout_seconds: Deadline applied when a call passes none.
            owns_client: Close the client in ``close()``.
            clock: Time source used to turn PTTL into an absolute expiry.

        Raises:
            ValueError: If default_timeout_seconds is not positive.
        """
        if default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be > 0")

        self._redis = redis
        self._default_timeout = default_timeout_seconds
        self._owns_client = owns_client
        self._clock = clock

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        default_timeout_seconds: float = 0.5,
        **kwargs: Any,
    ) -> "RedisCounterStore":
        """Build a store that owns a client created from a Redis URL."""
        client = Redis.from_url(
            url,
            socket_timeout=default_timeout_seconds,
            socket_connect_timeout=default_timeout_seconds,
        )
        return cls(
            client,
            default_timeout_seconds=default_timeout_seconds,
            owns_client=True,
            **kwargs,
        )

    async def _bounded(
        self,
        operation: str,
        call: Awaitable[T],
        timeout: float | None,
    ) -> T:
        deadline = self._default_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(call, timeout=deadline)
        except asyncio.TimeoutError as exc:
            logger.warning(
                "counter_store.timeout",
                extra={"operation": operation, "timeout_s": deadline},
            )
            raise StorageError(
                code="storage_timeout",
                message=f"Redis {operation} exceeded its {deadline:g}s deadline",
                details={"backend": "redis", "operation": operation, "timeout_seconds": deadline},
            ) from exc
        except (RedisError, OSError) as exc:
            logger.warning(
                "counter_store.error",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise StorageError(
                code="storage_unavailable",
                message=f"Redis {operation} failed: {exc}",
                details={"backend": "redis", "operation": operation},
            ) from exc

    async def _increment(self, key: str, ttl_seconds: float) -> CounterEntry:
        ttl_ms = max(1, math.ceil(ttl_seconds * 1000))
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, px=ttl_ms, nx=True)
            pipe.incr(key)
            pipe.pttl(key)
            _, count, pttl = await pipe.execute()

        if pttl < 0:
            # Only a writer outside this store can leave the key without expiry.
            logger.warning("counter_store.missing_ttl", extra={"operation": "increment"})
            return CounterEntry(count=int(count), expires_at=None)

        return CounterEntry(count=int(count), expires_at=self._clock() + pttl / 1000)

    async def _get(self, key: str) -> CounterEntry:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.get(key)
            pipe.pttl(key)
            raw, pttl = await pipe.execute()

        if raw is None or pttl <= 0:
            return CounterEntry.absent()

        try:
            count = int(raw)
        except ValueError as exc:
            raise StorageError(
                code="storage_corrupt_counter",
                message=f"Counter value is not an integer: {raw!r}",
                details={"backend": "redis", "operation": "get"},
            ) from exc

        return CounterEntry(count=count, expires_at=self._clock() + pttl / 1000)

    async def increment(
        self,
        key: str,
        ttl_seconds: float,
        *,
        timeout: float | None = None,
    ) -> CounterEntry:
        if not key:
            raise ValueError("key must be a non-empty string")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        return await self._bounded("increment", self._increment(key, ttl_seconds), timeout)

    async def get(self, key: str, *, timeout: float | None = None) -> CounterEntry:
        return await self._bounded("get", self._get(key), timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._redis.aclose()
