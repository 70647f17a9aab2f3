"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, rate limiters,
routers) so tests can build isolated instances with their own counters.
"""

from __future__ import annotations

import time
from typing import Callable

from fastapi import FastAPI

from app.api.routes import health_router, rate_limits_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import RateLimiterRegistry


def create_app(
    config: Settings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        config: Settings to build from; defaults to the global settings.
        clock: Time source for the rate limiters.

    Returns:
        Configured FastAPI app with middleware, handlers, limiters and routers.
    """
    config = config or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(config.log)

    app = FastAPI(
        title="Social Feed API",
        description=(
            "Per-client request rate limiting for the social feed endpoints. "
            "Clients over their budget receive HTTP 429 with a JSON error body."
        ),
        version="0.1.0",
        debug=config.app.debug,
    )

    app.state.settings = config
    # One limiter per policy, owned by this app instance
    app.state.rate_limiters = RateLimiterRegistry.from_settings(config, clock=clock)

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
