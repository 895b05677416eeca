"""Counter store interfaces.

The engine talks to this abstraction (not the concrete implementation) so the
in-memory store and the Redis store honour the same contract:

- ``increment`` creates a fresh entry (count=1, expiry=now+ttl) when the key is
  absent or expired, otherwise bumps the count and keeps the existing expiry.
- ``get`` never mutates state and reports absent/expired keys as count 0 with
  no expiry.
- Both raise ``StorageError`` on faults, and a failed call never advances the
  counter.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterEntry:
    """Snapshot of one counter as observed by a store call.

    Attributes:
        count: Requests counted in the current window (0 when absent).
        expires_at: UNIX epoch seconds when the window ends, or None when absent.
    """

    count: int
    expires_at: float | None

    @classmethod
    def absent(cls) -> "CounterEntry":
        return cls(count=0, expires_at=None)

    def is_live(self, now: float) -> bool:
        return self.expires_at is not None and now < self.expires_at


class CounterStore(ABC):
    """Interface for counter stores."""

    @abstractmethod
    async def increment(
        self,
        key: str,
        ttl_seconds: float,
        *,
        timeout: float | None = None,
    ) -> CounterEntry:
        """Atomically increment the counter for ``key``.

        Args:
            key: Storage key for one client window.
            ttl_seconds: Window length applied when the entry is created.
            timeout: Optional deadline in seconds for remote backends.

        Returns:
            CounterEntry with the post-increment count and the window expiry.

        Raises:
            StorageError: If the backend could not complete the operation.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str, *, timeout: float | None = None) -> CounterEntry:
        """Read the counter for ``key`` without mutating it.

        Raises:
            StorageError: If the backend could not complete the operation.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release background work and connections held by the store."""
        return None
