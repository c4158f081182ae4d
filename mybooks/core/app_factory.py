"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from fastapi import FastAPI

from mybooks.api.routes import admin_router, health_router
from mybooks.core.config import settings
from mybooks.core.exception_handlers import setup_exception_handlers
from mybooks.core.logging import configure_logging
from mybooks.core.middleware import request_id_middleware, security_headers_middleware
from mybooks.core.openapi import apply_openapi_customizations
from mybooks.core.rate_limit import rate_limit_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="MyBooks API",
        description=(
            "Book and note tracking backend. This service hosts the request "
            "pipeline guards: per-client sliding-window rate limiting, "
            "security headers, request correlation and security audit logging, "
            "plus an admin API to inspect and reset rate limit state."
        ),
        version=settings.app.api_version,
        debug=settings.app.debug,
    )

    # Middleware: the last registered runs first, so the order below yields
    # request-id -> security headers -> rate limit -> routes.
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(admin_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
