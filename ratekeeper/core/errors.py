"""Application-level exception types.

Every failure the rate limiter can produce is a typed, recoverable error
carrying a stable code, so the admission layer can tell a misconfiguration or
a broken counter store apart from an ordinary deny.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes flexible while encouraging consistent
    keys across the codebase.
    """

    code: str
    message: str
    hint: str
    client_id_hash: str
    requests: int
    window_seconds: float
    backend: str
    operation: str
    timeout_seconds: float
    retry_after: int
    limit: int
    remaining: int
    reset_at: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationError(AppError):
    """Raised when an effective client limit has non-positive requests or window."""


class StorageError(AppError):
    """Raised when a counter store cannot complete an operation.

    Covers I/O and connectivity faults, deadline expiry and protocol errors
    (e.g. a counter value that is not an integer).
    """


@dataclass
class RateLimitExceededError(AppError):
    """Raised by the HTTP layer when a client is over its quota.

    Attributes:
        headers: Rate limit headers to attach to the 429 response.
    """

    headers: dict[str, str] | None = None
