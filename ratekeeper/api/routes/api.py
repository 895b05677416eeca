from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from ratekeeper.core.rate_limit import (
    enforce_rate_limit,
    get_rate_limiter,
    resolve_client_id,
)
from ratekeeper.schemas.quota import HelloResponse, QuotaResponse

router = APIRouter(tags=["API"])


@router.get(
    "/hello",
    response_model=HelloResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def hello(request: Request) -> HelloResponse:
    """Rate-limited greeting endpoint.

    Every call counts against the caller's quota. The X-RateLimit-* headers
    on the response describe what is left of the current window.
    """
    return HelloResponse(
        message="Hello! Your request was successful.",
        client_id=resolve_client_id(request),
        timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )


@router.get("/quota", response_model=QuotaResponse)
async def quota(request: Request) -> QuotaResponse:
    """Show the caller's current window without consuming a request.

    Raises:
        StorageError: When the counter store cannot be read (mapped to 503).
    """
    client_id = resolve_client_id(request)
    decision = await get_rate_limiter(request).peek(client_id)
    return QuotaResponse(
        client_id=client_id,
        limit=decision.limit,
        remaining=decision.remaining,
        reset_at=int(decision.reset_at) if decision.reset_at is not None else None,
        allowed=decision.allowed,
    )
