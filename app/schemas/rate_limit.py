"""Pydantic schemas for the rate limit endpoints."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from app.adapters.rate_limit.base import MAX_WINDOW_SECONDS


class RateLimitCheckRequest(BaseModel):
    """Decision request from a collaborator service.

    When ``window_seconds`` and ``max_requests`` are both given they form a
    one-off config; otherwise the registry entry for ``operation`` applies.
    """

    identifier: str = Field(
        ..., min_length=1, description="Opaque caller identity (user id, IP, ...)."
    )
    operation: str = Field(
        ..., min_length=1, description="Opaque name of the protected action."
    )
    window_seconds: float | None = Field(
        default=None,
        gt=0,
        le=MAX_WINDOW_SECONDS,
        description="One-off window length in seconds.",
    )
    max_requests: int | None = Field(
        default=None, ge=1, description="One-off request budget per window."
    )
    sensitive: bool = Field(
        default=False,
        description="One-off configs only: deny instead of allow when the store is down.",
    )


class RateLimitCheckResponse(BaseModel):
    """Successful decision."""

    allowed: bool = Field(True, description="Always true; denials use HTTP 429.")
    remaining: int = Field(..., ge=0, description="Requests left in the current window.")
    limit: int = Field(..., description="Requests allowed per window.")
    reset_time: float = Field(..., description="UNIX epoch seconds when the window closes.")


class OperationLimit(BaseModel):
    """One registry entry."""

    operation: str
    window_seconds: float
    max_requests: int
    sensitive: bool


class LimitsResponse(BaseModel):
    """Registry listing."""

    default: OperationLimit | None = Field(
        default=None, description="Config applied to operations not listed below."
    )
    operations: List[OperationLimit] = Field(default_factory=list)
