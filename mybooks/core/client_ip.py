"""Client address resolution for requests arriving through proxies.

The resolved value is only used as an opaque rate limit / audit identifier.
Headers are consulted in order of preference:

1. ``X-Forwarded-For`` (first entry: the originating client)
2. ``X-Real-IP`` (nginx)
3. ``Proxy-Client-IP``
4. ``WL-Proxy-Client-IP`` (WebLogic)
5. the transport peer address
6. the literal ``"unknown"``
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from mybooks.services.security_logger import security_logger

UNKNOWN_CLIENT = "unknown"

_FALLBACK_HEADERS = ("x-real-ip", "proxy-client-ip", "wl-proxy-client-ip")
_CONTROL_CHARS = ("\r", "\n", "\t", "\x00")


def _usable(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = value.strip()
    if not cleaned or cleaned.lower() == UNKNOWN_CLIENT:
        return None
    return cleaned


def _first_forwarded_value(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    return _usable(header_value.split(",")[0])


def resolve_client_ip(request: Request) -> str:
    """Return the best-effort originating address of the request.

    Args:
        request: Incoming FastAPI/Starlette request.

    Returns:
        The client identifier, or ``"unknown"`` when nothing is available.
    """

    headers = request.headers

    candidate = _first_forwarded_value(headers.get("x-forwarded-for"))
    source = "x-forwarded-for"
    if candidate is None:
        for name in _FALLBACK_HEADERS:
            candidate = _usable(headers.get(name))
            if candidate is not None:
                source = name
                break

    if candidate is not None:
        if any(ch in candidate for ch in _CONTROL_CHARS):
            security_logger.suspicious_activity(
                "MALFORMED_CLIENT_IP_HEADER",
                f"header={source} value={candidate!r}",
                request.client.host if request.client else UNKNOWN_CLIENT,
            )
        return candidate

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT
