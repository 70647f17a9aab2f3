"""Application-level exception types.

Domain errors raised by the limiter and the HTTP layer share one shape so
the exception handlers can render them consistently.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    policy: str
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
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


class ValidationAppError(AppError):
    """Raised when request input fails validation."""


class ConfigurationAppError(AppError):
    """Raised when the service is misconfigured (e.g. unknown policy name)."""


class RateLimitExceededError(AppError):
    """Raised when a client is over its request budget.

    ``details`` carries ``limit``, ``remaining``, ``reset_at`` and
    ``retry_after`` when they are known.
    """
