"""Client limit configuration owned by the rate limiter engine.

The table is read on every admission check and may be rewritten at runtime.
Writers build a new immutable mapping and swap the reference, so readers
never take a lock and never observe a half-applied update.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from ratekeeper.core.errors import ConfigurationError, ErrorDetails


@dataclass(frozen=True)
class ClientLimit:
    """Quota of ``requests`` per ``window_seconds`` for one client."""

    requests: int
    window_seconds: float

    def validate(self, client_id_hash: str | None = None) -> None:
        """Raise ConfigurationError unless both values are positive."""
        if self.requests > 0 and self.window_seconds > 0:
            return

        details: ErrorDetails = {"requests": self.requests, "window_seconds": self.window_seconds}
        if client_id_hash:
            details["client_id_hash"] = client_id_hash
        raise ConfigurationError(
            code="invalid_client_limit",
            message=(
                "Client limit must have requests > 0 and window_seconds > 0 "
                f"(got requests={self.requests}, window_seconds={self.window_seconds})"
            ),
            details=details,
        )


class LimitTable:
    """Thread-safe lookup of per-client limits with a process-wide default."""

    def __init__(
        self,
        default: ClientLimit,
        clients: Mapping[str, ClientLimit] | None = None,
    ) -> None:
        self._write_lock = threading.Lock()
        self._default = default
        self._clients: Mapping[str, ClientLimit] = MappingProxyType(dict(clients or {}))

    @property
    def default(self) -> ClientLimit:
        return self._default

    def resolve(self, client_id: str) -> ClientLimit:
        """Return the explicit limit for ``client_id`` or the default."""
        return self._clients.get(client_id, self._default)

    def snapshot(self) -> Mapping[str, ClientLimit]:
        """Return the current read-only client mapping."""
        return self._clients

    def set_limit(self, client_id: str, limit: ClientLimit) -> None:
        with self._write_lock:
            updated = dict(self._clients)
            updated[client_id] = limit
            self._clients = MappingProxyType(updated)

    def remove_limit(self, client_id: str) -> None:
        with self._write_lock:
            if client_id not in self._clients:
                return
            updated = dict(self._clients)
            del updated[client_id]
            self._clients = MappingProxyType(updated)

    def replace(
        self,
        clients: Mapping[str, ClientLimit],
        default: ClientLimit | None = None,
    ) -> None:
        """Swap in a whole new configuration (e.g. after a reload)."""
        with self._write_lock:
            if default is not None:
                self._default = default
            self._clients = MappingProxyType(dict(clients))
