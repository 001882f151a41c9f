from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.core.rate_limit import RequestGuard, get_request_guard

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(
    guard: Annotated[RequestGuard, Depends(get_request_guard)],
) -> JSONResponse:
    """Readiness check that pings the counter store.

    A degraded store does not stop traffic (non-sensitive operations fail
    open), but load balancers and dashboards should know about it.

    Returns:
        200 ``{"status": "ok", "backend": ...}`` or 503 with
        ``"status": "degraded"``.
    """

    store = guard.limiter.store
    reachable = await run_in_threadpool(store.ping)
    body = {"status": "ok" if reachable else "degraded", "backend": store.backend_name}
    return JSONResponse(body, status_code=200 if reachable else 503)
