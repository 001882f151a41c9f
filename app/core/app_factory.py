"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the rate limiter lifecycle: the counter store, the guard and, for the
memory backend, the background sweeper are created at startup and released
at shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.factory import create_counter_store
from app.adapters.rate_limit.sweeper import PeriodicSweeper
from app.api.routes import health_router, limits_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import build_request_guard, set_request_guard

logger = logging.getLogger(__name__)


def _build_lifespan(cfg: Settings, store: AbstractCounterStore | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        counter_store = store or create_counter_store(cfg)
        guard = build_request_guard(counter_store, cfg)
        set_request_guard(guard)
        app.state.rate_limit_guard = guard

        sweeper: PeriodicSweeper | None = None
        if counter_store.backend_name == "memory":
            sweeper = PeriodicSweeper(
                counter_store,
                interval_seconds=cfg.rate_limit.sweep_interval_seconds,
            )
            sweeper.start()
        app.state.rate_limit_sweeper = sweeper

        logger.info(
            "rate_limit.ready",
            extra={
                "backend": counter_store.backend_name,
                "enabled": cfg.rate_limit.enabled,
                "operations": len(guard.registry),
            },
        )
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.stop()
            counter_store.close()
            set_request_guard(None)

    return lifespan


def create_app(
    cfg: Settings | None = None,
    *,
    store: AbstractCounterStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cfg: Settings to use; defaults to the global settings.
        store: Counter store to use instead of the configured backend.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = cfg or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Rate Limit API",
        description=(
            "Per-identifier, per-operation request quotas over fixed windows, "
            "backed by process memory or Redis. Denials return 429 with "
            "Retry-After and X-RateLimit-* headers."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=_build_lifespan(cfg, store),
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
