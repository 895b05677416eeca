"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
the rate limiter's lifecycle: the engine and its counter store are built on
startup and closed on shutdown, so the in-memory sweeper thread or the Redis
connection pool never outlives the app.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from ratekeeper.adapters.rate_limit.base import CounterStore
from ratekeeper.api.routes import api_router, health_router
from ratekeeper.core.config import settings
from ratekeeper.core.exception_handlers import setup_exception_handlers
from ratekeeper.core.logging import configure_logging
from ratekeeper.core.middleware import request_id_middleware
from ratekeeper.core.rate_limit import build_rate_limiter

logger = logging.getLogger(__name__)


def create_app(*, store: CounterStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Optional counter store to use instead of the configured one.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        limiter = build_rate_limiter(settings.rate_limit, store=store)
        app.state.rate_limiter = limiter
        logger.info(
            "rate_limiter.started",
            extra={
                "backend": type(limiter.store).__name__,
                "failure_policy": limiter.failure_policy.value,
                "default_requests": limiter.limits.default.requests,
                "default_window_s": limiter.limits.default.window_seconds,
                "configured_clients": len(limiter.limits.snapshot()),
            },
        )
        try:
            yield
        finally:
            await limiter.close()
            logger.info("rate_limiter.stopped")

    app = FastAPI(
        title="Ratekeeper",
        description=(
            "Per-client fixed-window rate limiting. Identify the caller with the "
            "X-Client-ID header; responses carry X-RateLimit-Limit, "
            "X-RateLimit-Remaining and X-RateLimit-Reset."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(api_router, prefix="/api")
    app.include_router(health_router)

    return app
