"""Admin key authentication for the rate limit management endpoints.

Keys are validated against a comma-separated list from environment variables
(``APP_ADMIN_API_KEYS``). Missing keys are rejected with 401, wrong keys with
403; both outcomes are recorded as security events.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from mybooks.core.client_ip import resolve_client_ip
from mybooks.core.config import settings
from mybooks.core.errors import AuthenticationAppError
from mybooks.services.security_logger import security_logger

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Args:
        keys_string: Comma-separated string of API keys, or None.

    Returns:
        Set of trimmed, non-empty API keys.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def _key_fingerprint(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def validate_admin_key(provided_key: str) -> None:
    """Validate that the provided key matches a configured admin key.

    Pure validation logic without FastAPI dependencies for easy testing.

    Raises:
        AuthenticationAppError: If the key is invalid or no keys are configured.
    """
    if not settings.app.admin_auth_required:
        return

    valid_keys = parse_api_keys(settings.app.admin_api_keys)

    if not valid_keys:
        logger.error(
            "admin_key_validation_failed",
            extra={"reason": "admin_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="admin_keys_not_configured",
            message="Admin authentication is enabled but no admin keys are configured",
            details={
                "hint": "Set APP_ADMIN_API_KEYS or disable with APP_ADMIN_AUTH_REQUIRED=false"
            },
        )

    if not any(hmac.compare_digest(provided_key.encode(), key.encode()) for key in valid_keys):
        logger.warning(
            "admin_key_validation_failed",
            extra={
                "reason": "invalid_admin_key",
                "key_hash": _key_fingerprint(provided_key),
            },
        )
        raise AuthenticationAppError(
            code="invalid_admin_key",
            message="Invalid admin key",
        )


async def verify_admin_key(
    request: Request,
    x_admin_key: Annotated[str | None, Header(alias="X-Admin-Key")] = None,
) -> None:
    """FastAPI dependency guarding the admin endpoints.

    Usage:
        @router.get("/stats", dependencies=[Depends(verify_admin_key)])

    Raises:
        HTTPException: 401 when the header is missing, 403 when it is invalid.
    """
    if not settings.app.admin_auth_required:
        logger.debug("admin.auth_skipped", extra={"reason": "auth_required_false"})
        return

    endpoint = request.url.path
    client_ip = resolve_client_ip(request)

    if not x_admin_key:
        security_logger.unauthorized_access(endpoint, client_ip, "missing admin key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing admin key. Provide X-Admin-Key header.",
        )

    try:
        validate_admin_key(x_admin_key)
    except AuthenticationAppError as exc:
        security_logger.forbidden_access(endpoint, client_ip, exc.code)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.info(
        "admin.auth_success",
        extra={"key_hash": _key_fingerprint(x_admin_key)},
    )
