from __future__ import annotations

import logging
import time
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import Allowed, RateLimitConfig, RateLimitExceeded
from app.core.auth import verify_api_key
from app.core.errors import ValidationAppError
from app.core.rate_limit import RequestGuard, build_allowed_headers, get_request_guard
from app.core.rate_limits import ConfigRegistry
from app.core.security_headers import apply_security_headers
from app.schemas.rate_limit import (
    LimitsResponse,
    OperationLimit,
    RateLimitCheckRequest,
    RateLimitCheckResponse,
)
from app.services.rate_limiter import hash_identifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Rate Limits"], dependencies=[Depends(verify_api_key)])

GuardDep = Annotated[RequestGuard, Depends(get_request_guard)]


def _describe(operation: str, config: RateLimitConfig) -> OperationLimit:
    return OperationLimit(
        operation=operation,
        window_seconds=config.window_seconds,
        max_requests=config.max_requests,
        sensitive=config.sensitive,
    )


def build_limits_listing(registry: ConfigRegistry) -> LimitsResponse:
    default = registry.default
    return LimitsResponse(
        default=_describe("*", default) if default is not None else None,
        operations=[_describe(name, config) for name, config in sorted(registry.items())],
    )


def _one_off_config(payload: RateLimitCheckRequest) -> RateLimitConfig | None:
    if payload.window_seconds is None and payload.max_requests is None:
        if payload.sensitive:
            raise ValidationAppError(
                code="rate_limit_sensitive_without_config",
                message="sensitive applies only to a one-off window_seconds and max_requests",
            )
        return None
    if payload.window_seconds is None or payload.max_requests is None:
        raise ValidationAppError(
            code="rate_limit_incomplete_config",
            message="window_seconds and max_requests must be provided together",
        )
    return RateLimitConfig(
        window_seconds=payload.window_seconds,
        max_requests=payload.max_requests,
        sensitive=payload.sensitive,
    )


@router.get("/limits", response_model=LimitsResponse)
async def list_limits(request: Request, guard: GuardDep) -> Response:
    """List configured operations and their quotas.

    The listing itself is rate limited under the ``read`` operation.
    """

    async def handler() -> Response:
        return JSONResponse(build_limits_listing(guard.registry).model_dump())

    return await guard.protect(request, "read", handler)


@router.post(
    "/rate-limit/check",
    response_model=RateLimitCheckResponse,
    responses={429: {"description": "Quota exhausted (or store down for a sensitive operation)."}},
)
async def check_rate_limit(payload: RateLimitCheckRequest, guard: GuardDep) -> Response:
    """Count one request for a collaborator and return the decision.

    Collaborators pass their own identifier and operation; the quota comes
    from the registry unless a one-off window/limit is supplied.

    Returns:
        200 with ``{allowed, remaining, limit, reset_time}`` when allowed,
        429 with ``Retry-After`` and ``X-RateLimit-*`` headers when denied.
        If the store is down, non-sensitive operations are allowed with
        ``degraded: true``.
    """
    config = guard.registry.resolve(payload.operation, _one_off_config(payload))
    result = await guard.check(payload.identifier, payload.operation, config)

    if isinstance(result, Allowed):
        body = RateLimitCheckResponse(
            remaining=result.remaining,
            limit=result.limit,
            reset_time=result.reset_time,
        )
        response = JSONResponse(body.model_dump(), headers=build_allowed_headers(result))
        return apply_security_headers(response, guard.header_options)

    if isinstance(result, RateLimitExceeded):
        return guard.deny(result, config)

    log_extra = {
        "operation": payload.operation,
        "key_hash": hash_identifier(payload.identifier),
        "reason": result.reason,
    }
    if config.sensitive:
        logger.warning("rate_limit.fail_closed", extra=log_extra)
        return guard.deny(result, config)

    logger.warning("rate_limit.fail_open", extra=log_extra)
    body = RateLimitCheckResponse(
        remaining=config.max_requests,
        limit=config.max_requests,
        reset_time=time.time() + config.window_seconds,
    )
    content = body.model_dump()
    content["degraded"] = True
    return apply_security_headers(JSONResponse(content), guard.header_options)
