"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiter engine into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Swap-friendly: the counter store is chosen from settings (memory or redis).
- Explicit failure policy: a broken counter store is answered according to
  the configured fail-open/fail-closed policy.

Client identity comes from the ``X-Client-ID`` header (configurable) and falls
back to a fixed sentinel when absent. The identifier is trusted as-is.
"""

from __future__ import annotations

from fastapi import Request, Response

from ratekeeper.adapters.rate_limit.base import CounterStore
from ratekeeper.adapters.rate_limit.in_memory import InMemoryCounterStore
from ratekeeper.adapters.rate_limit.redis_store import RedisCounterStore
from ratekeeper.core.config import RateLimitSettings, StorageBackend, settings
from ratekeeper.core.errors import ErrorDetails, RateLimitExceededError
from ratekeeper.services.limits import ClientLimit, LimitTable
from ratekeeper.services.rate_limiter import Decision, FailurePolicy, RateLimiterService
from ratekeeper.services.windowing import LazyTTLWindow


def build_limit_table(cfg: RateLimitSettings) -> LimitTable:
    """Convert rate limit settings into the engine's limit table."""

    default = ClientLimit(
        requests=cfg.default_requests,
        window_seconds=cfg.default_window_seconds,
    )
    clients = {
        client_id: ClientLimit(requests=c.requests, window_seconds=c.window_seconds)
        for client_id, c in cfg.clients.items()
    }
    return LimitTable(default, clients)


def build_counter_store(cfg: RateLimitSettings) -> CounterStore:
    """Create the counter store selected by ``cfg.backend``."""

    if cfg.backend == StorageBackend.REDIS:
        return RedisCounterStore.from_url(
            cfg.redis_url,
            default_timeout_seconds=cfg.redis_timeout_seconds,
        )

    return InMemoryCounterStore(
        sweep_interval_seconds=cfg.sweep_interval_seconds,
        sweep_grace_seconds=cfg.sweep_grace_seconds,
    )


def build_rate_limiter(
    cfg: RateLimitSettings | None = None,
    *,
    store: CounterStore | None = None,
) -> RateLimiterService:
    """Build the engine from settings.

    Args:
        cfg: Rate limit settings; defaults to the global settings.
        store: Optional pre-built counter store (mainly for tests).

    Returns:
        RateLimiterService: Configured engine. The caller owns its lifecycle
            and must ``await engine.close()`` on shutdown.
    """

    cfg = cfg or settings.rate_limit
    return RateLimiterService(
        store if store is not None else build_counter_store(cfg),
        build_limit_table(cfg),
        window=LazyTTLWindow(cfg.key_prefix),
        failure_policy=FailurePolicy(cfg.failure_policy.value),
    )


def get_rate_limiter(request: Request) -> RateLimiterService:
    """Return the engine attached to the running application."""

    return request.app.state.rate_limiter


def resolve_client_id(request: Request) -> str:
    """Extract the client identifier, falling back to the default sentinel."""

    cfg = settings.rate_limit
    client_id = request.headers.get(cfg.client_id_header, "").strip()
    return client_id or cfg.default_client_id


def build_rate_limit_headers(decision: Decision) -> dict[str, str]:
    """Render a decision as X-RateLimit-* headers."""

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if decision.reset_at is not None:
        headers["X-RateLimit-Reset"] = str(int(decision.reset_at))
    if not decision.allowed and decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


async def enforce_rate_limit(request: Request, response: Response) -> Decision | None:
    """FastAPI dependency enforcing rate limits.

    When enabled, counts one request against the caller's quota. Rate limit
    headers are added to the response; over-quota callers get HTTP 429.

    Args:
        request: FastAPI request.
        response: Response whose headers receive the rate limit metadata.

    Returns:
        The decision, or None when rate limiting is disabled.

    Raises:
        RateLimitExceededError: When the client is over its quota.
        StorageError: When the store failed and the policy is fail-closed.
        ConfigurationError: When the client's limit is malformed.
    """

    cfg = settings.rate_limit
    if not cfg.enabled:
        return None

    limiter = get_rate_limiter(request)
    client_id = resolve_client_id(request)

    decision = await limiter.allow(client_id)
    headers = build_rate_limit_headers(decision) if cfg.include_headers else {}

    # The engine logs every decision, including store failures.
    if decision.error is not None and not decision.allowed:
        raise decision.error

    if decision.allowed:
        response.headers.update(headers)
        return decision

    details: ErrorDetails = {"remaining": decision.remaining, "limit": decision.limit}
    if decision.reset_at is not None:
        details["reset_at"] = int(decision.reset_at)
    if decision.retry_after_seconds is not None:
        details["retry_after"] = decision.retry_after_seconds

    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message="Rate limit exceeded. Try again later.",
        details=details,
        headers=headers or None,
    )
