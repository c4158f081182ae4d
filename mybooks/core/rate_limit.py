"""Rate limiting stage of the HTTP pipeline.

This module wires the rate limiting adapter into the HTTP layer. It runs as
middleware, ahead of route dependencies, so throttled callers never reach
authentication.

Category selection (path + method):
- ``POST /api/auth/login``    -> ``login``
- ``POST /api/auth/register`` -> ``register``
- any other ``/api/*`` path outside ``/api/auth/`` -> ``api``
- everything else is not rate limited
"""

from __future__ import annotations

import threading
import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from mybooks.adapters.rate_limit.base import API, LOGIN, REGISTER, AbstractRateLimiter
from mybooks.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from mybooks.core.client_ip import resolve_client_ip
from mybooks.core.config import settings
from mybooks.schemas.rate_limit import RateLimitExceededResponse
from mybooks.services.security_logger import security_logger

RATE_LIMIT_EXCEEDED_CODE = "RATE_LIMIT_EXCEEDED"
RATE_LIMIT_EXCEEDED_MESSAGE = "Too many requests. Please try again later."

_limiter: InMemorySlidingWindowRateLimiter | None = None
_limiter_config: tuple | None = None
_limiter_lock = threading.Lock()


def get_rate_limiter() -> InMemorySlidingWindowRateLimiter:
    """Return the process-wide limiter instance.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.
    """

    global _limiter, _limiter_config

    cfg = settings.rate_limit
    config = (
        cfg.login_max_requests,
        cfg.login_window_seconds,
        cfg.register_max_requests,
        cfg.register_window_seconds,
        cfg.api_max_requests,
        cfg.api_window_seconds,
        cfg.cleanup_interval_seconds,
        cfg.retention_seconds,
    )

    # _limiter is published before _limiter_config, so read them in reverse.
    current_config = _limiter_config
    limiter = _limiter
    if limiter is not None and current_config == config:
        return limiter

    # Admin routes run in worker threads; only one of them may build the limiter.
    with _limiter_lock:
        if _limiter is None or _limiter_config != config:
            _limiter = InMemorySlidingWindowRateLimiter(
                policies=cfg.policies(),
                cleanup_interval_seconds=cfg.cleanup_interval_seconds,
                retention_seconds=cfg.retention_seconds,
            )
            _limiter_config = config
        return _limiter


def resolve_category(method: str, path: str) -> str | None:
    """Map a request to its rate limit category, or None when exempt."""

    method = method.upper()
    if path == "/api/auth/login" and method == "POST":
        return LOGIN
    if path == "/api/auth/register" and method == "POST":
        return REGISTER
    if path.startswith("/api/") and not path.startswith("/api/auth/"):
        return API
    return None


def build_exceeded_response(
    limiter: AbstractRateLimiter,
    client: str,
    category: str,
    retry_after: int,
) -> JSONResponse:
    body = RateLimitExceededResponse(
        message=RATE_LIMIT_EXCEEDED_MESSAGE,
        error=RATE_LIMIT_EXCEEDED_CODE,
        retryAfter=retry_after,
        remainingAttempts=(
            limiter.remaining_quota(client, category) if category == LOGIN else None
        ),
        timestamp=int(time.time() * 1000),
    )
    return JSONResponse(
        status_code=429,
        content=body.model_dump(exclude_none=True),
        headers={"Retry-After": str(retry_after)},
    )


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """HTTP middleware enforcing per-client, per-category quotas.

    Denied requests get a 429 JSON body with ``retryAfter`` (and
    ``remainingAttempts`` for login) plus a ``Retry-After`` header. Admitted
    login requests carry ``X-RateLimit-Remaining`` / ``X-RateLimit-Limit``.
    """

    if not settings.rate_limit.enabled:
        return await call_next(request)

    category = resolve_category(request.method, request.url.path)
    if category is None:
        return await call_next(request)

    limiter = get_rate_limiter()
    client = resolve_client_ip(request)

    if not limiter.admit(client, category):
        retry_after = limiter.time_until_unblock(client, category)
        security_logger.rate_limit_exceeded(client, request.url.path, category, retry_after)
        return build_exceeded_response(limiter, client, category, retry_after)

    if category != LOGIN:
        return await call_next(request)

    # Snapshot right after admission; other logins may land while the handler runs.
    quota_headers = {
        "X-RateLimit-Remaining": str(limiter.remaining_quota(client, LOGIN)),
        "X-RateLimit-Limit": str(limiter.policy_for(LOGIN).max_requests),
    }
    response = await call_next(request)
    response.headers.update(quota_headers)
    return response
