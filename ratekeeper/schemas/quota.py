"""Pydantic schemas for the rate-limited API responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HelloResponse(BaseModel):
    """Greeting returned to an admitted request."""

    message: str = Field(..., description="Greeting text.")
    client_id: str = Field(
        ..., description="Client identifier the request was counted against."
    )
    timestamp: str = Field(..., description="Server time in RFC 3339 format.")


class QuotaResponse(BaseModel):
    """Read-only view of a client's current rate limit window."""

    client_id: str = Field(..., description="Client identifier that was looked up.")
    limit: int = Field(..., ge=1, description="Requests allowed per window.")
    remaining: int = Field(
        ..., ge=0, description="Requests left in the current window."
    )
    reset_at: int | None = Field(
        default=None,
        description=(
            "UNIX epoch seconds when the current window ends; null when no "
            "window is open (no wait needed)."
        ),
    )
    allowed: bool = Field(
        ..., description="Whether one more request would be admitted right now."
    )
