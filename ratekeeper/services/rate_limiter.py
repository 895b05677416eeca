"""Rate limiter engine.

Turns a counter increment into an admission decision:

1. Resolve the client's limit (explicit entry or default); a non-positive
   requests/window value raises ConfigurationError.
2. Derive the storage key and TTL from the window strategy.
3. Increment the counter. A StorageError is answered by the failure policy.
4. allowed = count <= limit, remaining = max(0, limit - count),
   reset_at = expiry when still in the future.

The engine holds no per-call state: only the limit table and a store handle.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ratekeeper.adapters.rate_limit.base import CounterStore
from ratekeeper.core.errors import ConfigurationError, StorageError
from ratekeeper.core.logging import hash_identifier
from ratekeeper.services.limits import ClientLimit, LimitTable
from ratekeeper.services.windowing import LazyTTLWindow, WindowStrategy

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """Decision returned when the counter store fails.

    OPEN admits the request (a broken limiter should not take a healthy
    service down); CLOSED denies it. Either way the decision carries the
    StorageError so callers can alert on it separately from a normal deny.
    """

    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Decision:
    """Result of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window for this client.
        remaining: Requests left in the current window, within [0, limit].
        reset_at: UNIX epoch seconds when the window resets; None when no wait
            is needed (window already elapsed, or no live window).
        retry_after_seconds: Suggested wait when denied with a known reset.
        error: The StorageError behind a failure-policy decision, else None.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float | None
    retry_after_seconds: int | None = None
    error: StorageError | None = None


class RateLimiterService:
    """Fixed-window admission control over a CounterStore."""

    def __init__(
        self,
        store: CounterStore,
        limits: LimitTable,
        *,
        window: WindowStrategy | None = None,
        failure_policy: FailurePolicy = FailurePolicy.OPEN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._limits = limits
        self._window = window or LazyTTLWindow()
        self._failure_policy = FailurePolicy(failure_policy)
        self._clock = clock

    @property
    def store(self) -> CounterStore:
        return self._store

    @property
    def limits(self) -> LimitTable:
        return self._limits

    @property
    def failure_policy(self) -> FailurePolicy:
        return self._failure_policy

    def resolve_limit(self, client_id: str) -> ClientLimit:
        """Return the effective, validated limit for ``client_id``.

        Raises:
            ValueError: If client_id is empty.
            ConfigurationError: If the effective limit is malformed.
        """
        if not client_id:
            raise ValueError("client_id must be a non-empty string")

        limit = self._limits.resolve(client_id)
        try:
            limit.validate(hash_identifier(client_id))
        except ConfigurationError:
            logger.error(
                "rate_limit.misconfigured",
                extra={
                    "client_id_hash": hash_identifier(client_id),
                    "requests": limit.requests,
                    "window_seconds": limit.window_seconds,
                },
            )
            raise
        return limit

    def _build_decision(self, limit: ClientLimit, count: int, expires_at: float | None) -> Decision:
        now = self._clock()
        reset_at = expires_at if expires_at is not None and expires_at > now else None
        allowed = count <= limit.requests
        remaining = min(limit.requests, max(0, limit.requests - count))

        retry_after = None
        if not allowed and reset_at is not None:
            retry_after = max(0, int(math.ceil(reset_at - now)))

        return Decision(
            allowed=allowed,
            limit=limit.requests,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    def _failure_decision(self, client_id: str, limit: ClientLimit, exc: StorageError) -> Decision:
        fail_open = self._failure_policy is FailurePolicy.OPEN
        logger.error(
            "rate_limit.storage_error",
            extra={
                "client_id_hash": hash_identifier(client_id),
                "error_code": exc.code,
                "error_message": exc.message,
                "failure_policy": self._failure_policy.value,
            },
        )
        return Decision(
            allowed=fail_open,
            limit=limit.requests,
            remaining=limit.requests if fail_open else 0,
            reset_at=None,
            error=exc,
        )

    async def allow(self, client_id: str, *, timeout: float | None = None) -> Decision:
        """Count one request for ``client_id`` and decide whether it may proceed.

        Args:
            client_id: Caller-supplied identifier, trusted as-is.
            timeout: Optional deadline in seconds for the store call.

        Returns:
            Decision for this request. When the store fails, the decision is
            the failure policy's and ``decision.error`` is set.

        Raises:
            ValueError: If client_id is empty.
            ConfigurationError: If the effective limit is malformed.
        """
        limit = self.resolve_limit(client_id)
        now = self._clock()
        key = self._window.storage_key(client_id, now)
        ttl = self._window.ttl_seconds(limit, now)

        try:
            entry = await self._store.increment(key, ttl, timeout=timeout)
        except StorageError as exc:
            return self._failure_decision(client_id, limit, exc)

        decision = self._build_decision(limit, entry.count, entry.expires_at)
        if decision.allowed:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "client_id_hash": hash_identifier(client_id),
                    "limit": decision.limit,
                    "remaining": decision.remaining,
                },
            )
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "client_id_hash": hash_identifier(client_id),
                    "limit": decision.limit,
                    "remaining": decision.remaining,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
        return decision

    async def peek(self, client_id: str, *, timeout: float | None = None) -> Decision:
        """Describe the client's current window without counting a request.

        ``allowed`` tells whether one more request would be admitted right now.

        Raises:
            ValueError: If client_id is empty.
            ConfigurationError: If the effective limit is malformed.
            StorageError: If the store cannot be read.
        """
        limit = self.resolve_limit(client_id)
        key = self._window.storage_key(client_id, self._clock())
        entry = await self._store.get(key, timeout=timeout)
        decision = self._build_decision(limit, entry.count + 1, entry.expires_at)
        return Decision(
            allowed=decision.allowed,
            limit=limit.requests,
            remaining=min(limit.requests, max(0, limit.requests - entry.count)),
            reset_at=decision.reset_at,
            retry_after_seconds=decision.retry_after_seconds,
        )

    async def close(self) -> None:
        await self._store.close()
