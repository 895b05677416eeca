"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a structural lock guards insert/replace/evict, and each entry
  carries its own lock so increments on a live key never take the structural
  lock and unrelated keys never contend.
- A background sweeper thread evicts expired entries; it starts with the store
  and stops in ``shutdown()``/``close()``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from ratekeeper.adapters.rate_limit.base import CounterEntry, CounterStore

logger = logging.getLogger(__name__)


class _Entry:
    """Mutable counter for one live window; ``expires_at`` never changes."""

    __slots__ = ("count", "expires_at", "lock")

    def __init__(self, *, count: int, expires_at: float) -> None:
        self.count = count
        self.expires_at = expires_at
        self.lock = threading.Lock()


class InMemoryCounterStore(CounterStore):
    """Counter store backed by a process-local dictionary.

    Increment path:
        1. Optimistic lookup without the structural lock. A live entry is
           bumped under its own lock.
        2. Absent or expired: take the structural lock, re-check (another
           thread may have created the entry first) and either bump the fresh
           entry or install a new one with count=1.

    For a given key exactly one entry object is reachable at any moment, so
    two callers can never both create the same window.
    """

    def __init__(
        self,
        *,
        sweep_interval_seconds: float | None = 30.0,
        sweep_grace_seconds: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store and start the background sweeper.

        Args:
            sweep_interval_seconds: Seconds between sweeps; None disables the
                background thread (``sweep()`` can still be called directly).
            sweep_grace_seconds: How long past its expiry an entry may linger
                before a sweep evicts it.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If the sweep settings are invalid.
        """
        if sweep_interval_seconds is not None and sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")
        if sweep_grace_seconds < 0:
            raise ValueError("sweep_grace_seconds must be >= 0")

        self._clock = clock
        self._grace = sweep_grace_seconds
        self._interval = sweep_interval_seconds
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

        if sweep_interval_seconds is not None:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name="counter-store-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    def __len__(self) -> int:
        return len(self._entries)

    def __enter__(self) -> "InMemoryCounterStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _bump_if_live(self, entry: _Entry) -> CounterEntry | None:
        with entry.lock:
            if self._clock() >= entry.expires_at:
                return None
            entry.count += 1
            return CounterEntry(count=entry.count, expires_at=entry.expires_at)

    def increment_sync(self, key: str, ttl_seconds: float) -> CounterEntry:
        """Blocking-free increment usable from plain threads.

        Args:
            key: Storage key.
            ttl_seconds: Window length for a newly created entry.

        Returns:
            The post-increment counter snapshot.

        Raises:
            ValueError: If key is empty or ttl_seconds is not positive.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")

        entry = self._entries.get(key)
        if entry is not None:
            result = self._bump_if_live(entry)
            if result is not None:
                return result

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                result = self._bump_if_live(entry)
                if result is not None:
                    return result

            fresh = _Entry(count=1, expires_at=self._clock() + ttl_seconds)
            self._entries[key] = fresh
            return CounterEntry(count=1, expires_at=fresh.expires_at)

    def get_sync(self, key: str) -> CounterEntry:
        """Read a counter without mutating it."""
        entry = self._entries.get(key)
        if entry is None:
            return CounterEntry.absent()

        with entry.lock:
            if self._clock() >= entry.expires_at:
                return CounterEntry.absent()
            return CounterEntry(count=entry.count, expires_at=entry.expires_at)

    async def increment(
        self,
        key: str,
        ttl_seconds: float,
        *,
        timeout: float | None = None,
    ) -> CounterEntry:
        # Local operations are bounded, so the deadline is not needed.
        return self.increment_sync(key, ttl_seconds)

    async def get(self, key: str, *, timeout: float | None = None) -> CounterEntry:
        return self.get_sync(key)

    def sweep(self) -> int:
        """Evict entries whose window ended more than the grace period ago.

        Returns:
            Number of evicted entries.
        """
        cutoff = self._clock() - self._grace
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= cutoff]
            for key in expired:
                del self._entries[key]
            size = len(self._entries)

        if expired:
            logger.debug(
                "counter_store.sweep",
                extra={"evicted": len(expired), "size": size},
            )
        return len(expired)

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._interval):
            self.sweep()

    def shutdown(self) -> None:
        """Stop the sweeper thread and wait for it to exit."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join()
            self._sweeper = None

    async def close(self) -> None:
        self.shutdown()
