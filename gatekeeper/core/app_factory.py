"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers,
background sweeper lifecycle) so tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from gatekeeper.api.routes import admission_router, health_router
from gatekeeper.core.config import settings
from gatekeeper.core.exception_handlers import setup_exception_handlers
from gatekeeper.core.logging import configure_logging
from gatekeeper.core.middleware import request_id_middleware
from gatekeeper.core.openapi import apply_openapi_customizations
from gatekeeper.core.rate_limit import get_counter_store, shutdown_rate_limiter
from gatekeeper.services.sweeper import EvictionSweeper

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the eviction sweeper on startup; stop it and close the store on shutdown."""

    sweeper: EvictionSweeper | None = None
    # Redis keys expire natively; only the memory store needs sweeping.
    if settings.rate_limit.sweep_enabled and settings.rate_limit.backend == "memory":
        sweeper = EvictionSweeper(
            store_provider=get_counter_store,
            interval_seconds=settings.rate_limit.sweep_interval_seconds,
            stale_after_ms=settings.rate_limit.stale_after_ms,
        )
        sweeper.start()
    app.state.sweeper = sweeper

    logger.info(
        "app.startup",
        extra={
            "app_env": settings.app_env,
            "backend": settings.rate_limit.backend,
            "rate_limit_enabled": settings.rate_limit.enabled,
        },
    )
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.stop()
        shutdown_rate_limiter()
        logger.info("app.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Gatekeeper Admission API",
        description=(
            "Request admission gate: checks a caller identifier against a named "
            "fixed-window rate limit policy and returns an admit/deny decision "
            "with remaining quota, reset time and Retry-After."
        ),
        version="0.1.0",
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(admission_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
