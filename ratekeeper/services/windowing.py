"""Window strategies: how a client's limit maps onto counter keys and TTLs.

Only the lazy-TTL window is provided. A window opens on the client's first
request and lasts exactly ``window_seconds``; the counter store's expiry is the
reset instant. Clients therefore reset at different wall-clock times, and
idle clients cost nothing until they send a request.

Fixed windows allow a burst of up to twice the limit across a reset (N
requests just before it, N more just after). That trade-off is accepted;
callers needing smoothing must layer a different algorithm on top.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ratekeeper.services.limits import ClientLimit


class WindowStrategy(ABC):
    """Derives storage keys and TTLs for a client's window."""

    @abstractmethod
    def storage_key(self, client_id: str, now: float) -> str:
        raise NotImplementedError

    @abstractmethod
    def ttl_seconds(self, limit: ClientLimit, now: float) -> float:
        raise NotImplementedError


class LazyTTLWindow(WindowStrategy):
    """Window starts on first hit; one key per client for all generations."""

    def __init__(self, key_prefix: str = "ratelimit") -> None:
        if not key_prefix:
            raise ValueError("key_prefix must be a non-empty string")
        self._prefix = key_prefix

    def storage_key(self, client_id: str, now: float) -> str:
        return f"{self._prefix}:{client_id}"

    def ttl_seconds(self, limit: ClientLimit, now: float) -> float:
        return limit.window_seconds
