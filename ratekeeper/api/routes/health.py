from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers; never rate limited."""

    return {"status": "ok"}


@router.get("/status")
def status_check() -> dict:
    """Report service status with the current server time (RFC 3339)."""

    return {
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }
