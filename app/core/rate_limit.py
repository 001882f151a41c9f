"""Rate limiting guard for FastAPI routes.

This module wires the limiter into the HTTP layer.

Design goals:
- Routes hand the guard a handler; the guard decides whether it runs.
- Denials are side-effect free: the handler is never called.
- Allowed and denied responses carry the same security header set.
- Store failures fail open unless the operation's config is sensitive.

Identity (first match wins):
1. Authenticated principal id (``request.state.principal_id``)
2. First address in ``X-Forwarded-For``, then ``X-Real-IP``
3. The literal ``"anonymous"``
"""

from __future__ import annotations

import logging
import math
import time
from typing import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.adapters.rate_limit.base import (
    AbstractCounterStore,
    Allowed,
    RateLimitConfig,
    RateLimitExceeded,
    RateLimitResult,
    StoreUnavailable,
)
from app.adapters.rate_limit.factory import create_counter_store
from app.core.config import Settings, settings
from app.core.logging import get_request_id
from app.core.rate_limits import ConfigRegistry, build_registry
from app.core.security_headers import (
    SecurityHeaderOptions,
    apply_security_headers,
    get_security_headers,
)
from app.services.rate_limiter import RateLimiter, hash_identifier

logger = logging.getLogger(__name__)

ANONYMOUS_IDENTIFIER = "anonymous"
DENIAL_CODE = "rate_limit_exceeded"
DENIAL_MESSAGE = "Rate limit exceeded. Please try again later."

Handler = Callable[[], Awaitable[Response]]


def resolve_identifier(request: Request) -> str:
    """Pick the identifier to count the request against.

    The value is opaque to the limiter and is never validated here.
    """
    principal_id = getattr(request.state, "principal_id", None)
    if principal_id:
        return str(principal_id)

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return ANONYMOUS_IDENTIFIER


def _format_window(window_seconds: float) -> str:
    if float(window_seconds).is_integer():
        return str(int(window_seconds))
    return str(window_seconds)


def build_denial_response(
    *,
    limit: int,
    window_seconds: float,
    retry_after: int,
    header_options: SecurityHeaderOptions | None = None,
) -> JSONResponse:
    """Build the 429 response shared by quota and fail-closed denials."""
    headers = get_security_headers(header_options)
    headers["Retry-After"] = str(retry_after)
    headers["X-RateLimit-Limit"] = str(limit)
    headers["X-RateLimit-Window"] = _format_window(window_seconds)

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": {
                "code": DENIAL_CODE,
                "message": DENIAL_MESSAGE,
                "request_id": get_request_id(),
                "details": {"retry_after": retry_after},
            }
        },
        headers=headers,
    )


def build_allowed_headers(result: Allowed) -> dict[str, str]:
    """Quota headers for a request that fit in its window."""
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_time)),
    }


class RequestGuard:
    """Resolve identity, consult the limiter, and finalize the response."""

    def __init__(
        self,
        limiter: RateLimiter,
        registry: ConfigRegistry,
        *,
        header_options: SecurityHeaderOptions | None = None,
        enabled: bool = True,
        include_rate_headers: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._limiter = limiter
        self._registry = registry
        self._header_options = header_options or SecurityHeaderOptions()
        self._enabled = enabled
        self._include_rate_headers = include_rate_headers
        self._clock = clock

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def registry(self) -> ConfigRegistry:
        return self._registry

    @property
    def header_options(self) -> SecurityHeaderOptions:
        return self._header_options

    async def check(self, identifier: str, operation: str, config: RateLimitConfig) -> RateLimitResult:
        """Run the blocking limiter check off the event loop."""
        return await run_in_threadpool(self._limiter.check, identifier, operation, config)

    def deny(self, result: RateLimitExceeded | StoreUnavailable, config: RateLimitConfig) -> JSONResponse:
        """Turn a denial (or a fail-closed store fault) into the 429 response."""
        if isinstance(result, RateLimitExceeded):
            retry_after = result.retry_after(self._clock())
        else:
            # No trustworthy reset time: ask the caller to wait a full window.
            retry_after = math.ceil(config.window_seconds)

        return build_denial_response(
            limit=config.max_requests,
            window_seconds=config.window_seconds,
            retry_after=retry_after,
            header_options=self._header_options,
        )

    async def protect(
        self,
        request: Request,
        operation: str,
        handler: Handler,
        *,
        config: RateLimitConfig | None = None,
    ) -> Response:
        """Run ``handler`` only if ``operation`` is within quota.

        Args:
            request: Incoming request, used for identity resolution.
            operation: Name of the protected action.
            handler: Zero-argument coroutine producing the response.
            config: One-off config; defaults to the registry entry.

        Returns:
            The handler's response with security headers applied, or a 429
            denial response.

        Raises:
            InvalidConfigError: If no config applies to ``operation``.
        """
        if not self._enabled:
            return apply_security_headers(await handler(), self._header_options)

        resolved = self._registry.resolve(operation, config)
        identifier = resolve_identifier(request)
        result = await self.check(identifier, operation, resolved)

        if isinstance(result, RateLimitExceeded):
            return self.deny(result, resolved)

        if isinstance(result, StoreUnavailable):
            log_extra = {
                "operation": operation,
                "key_hash": hash_identifier(identifier),
                "reason": result.reason,
            }
            if resolved.sensitive:
                logger.warning("rate_limit.fail_closed", extra=log_extra)
                return self.deny(result, resolved)
            logger.warning("rate_limit.fail_open", extra=log_extra)
            return apply_security_headers(await handler(), self._header_options)

        response = await handler()
        apply_security_headers(response, self._header_options)
        if self._include_rate_headers:
            for name, value in build_allowed_headers(result).items():
                response.headers[name] = value
        return response


def build_request_guard(
    store: AbstractCounterStore | None = None,
    cfg: Settings | None = None,
) -> RequestGuard:
    """Wire store, limiter, registry and header options from settings."""
    cfg = cfg or settings
    return RequestGuard(
        RateLimiter(store or create_counter_store(cfg)),
        build_registry(cfg),
        header_options=SecurityHeaderOptions(
            include_hsts=cfg.app.include_hsts,
            include_csp=cfg.app.include_csp,
        ),
        enabled=cfg.rate_limit.enabled,
        include_rate_headers=cfg.rate_limit.include_headers,
    )


_guard: RequestGuard | None = None


def get_request_guard() -> RequestGuard:
    """Return the process-wide guard.

    The application lifespan installs the guard it owns; outside of a
    running app (scripts, some tests) one is built lazily from settings.
    """
    global _guard

    if _guard is None:
        _guard = build_request_guard()
    return _guard


def set_request_guard(guard: RequestGuard | None) -> None:
    """Install (or clear) the process-wide guard."""
    global _guard
    _guard = guard
