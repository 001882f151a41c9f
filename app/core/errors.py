"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Rate limit denials are not exceptions: the limiter returns an explicit result
(see ``app.adapters.rate_limit.base``). Only faults that callers cannot be
expected to branch on are raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep the shape flexible while encouraging
    consistent keys across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    value: Any
    backend: str
    operation: str
    http_status: int
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
    """Raised when input/config validation fails."""


class InvalidConfigError(ValidationAppError):
    """Raised when a rate limit configuration is constructed with bad values.

    This is a programmer error: configurations are built once at startup, so
    it should never surface while serving a request.
    """


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class StoreUnavailableError(AppError):
    """Raised when the counter store cannot be reached or times out."""
