"""HTTP middleware for request correlation and security response headers.

Request IDs:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for log correlation
- Echoes request_id and total duration in the response headers

Security headers are applied to every response, including the 429 responses
produced by the rate limiting stage further down the stack.

Usage:
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from mybooks.core.config import settings
from mybooks.core.logging import clear_request_id, set_request_id

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "script-src 'self'; "
    "style-src 'self'; "
    "img-src 'self' data:; "
    "font-src 'self' data:; "
    "connect-src 'self'; "
    "frame-ancestors 'none';"
)
HSTS_VALUE = "max-age=31536000; includeSubDomains; preload"

STATIC_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-XSS-Protection": "1; mode=block",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a correlation id through the request lifecycle.

    If the client provides the configured request id header (default
    ``X-Request-ID``) its value is reused, otherwise a UUID4 is generated.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with request id and duration headers.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def security_headers_middleware(request: Request, call_next) -> Response:
    """Attach browser hardening headers to every response.

    HSTS is only sent when TLS is enabled in configuration and the request
    actually arrived over https. API responses are marked non-cacheable.
    """

    response: Response = await call_next(request)

    for name, value in STATIC_SECURITY_HEADERS.items():
        response.headers[name] = value
    response.headers["X-API-Version"] = settings.app.api_version

    if settings.app.ssl_enabled and request.url.scheme == "https":
        response.headers["Strict-Transport-Security"] = HSTS_VALUE

    if request.url.path.startswith("/api/"):
        for name, value in NO_STORE_HEADERS.items():
            response.headers[name] = value

    return response
