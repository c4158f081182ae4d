"""Classified security event logging.

Security-relevant events (throttled clients, failed admin access, suspicious
request metadata) are emitted on dedicated loggers with a stable ``event``
field so they can be routed to an audit sink. Free-text values are
sanitized first: control characters are stripped and long values are
truncated.
"""

from __future__ import annotations

import logging
from enum import Enum

from mybooks.core.logging import SECURITY_LOGGER_NAME, SUSPICIOUS_LOGGER_NAME

MAX_LOGGED_VALUE_CHARS = 200
TRUNCATION_MARKER = "...[truncated]"


class SecurityEvent(str, Enum):
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    RATE_LIMIT_RESET = "RATE_LIMIT_RESET"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"
    FORBIDDEN_ACCESS = "FORBIDDEN_ACCESS"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"


def sanitize_input(value: str | None) -> str:
    """Make an untrusted value safe to embed in a log record.

    Examples:
        >>> sanitize_input("admin\\nFAKE_ENTRY")
        'adminFAKE_ENTRY'
        >>> sanitize_input(None)
        'null'
    """
    if value is None:
        return "null"

    sanitized = value.replace("\n", "").replace("\r", "").replace("\t", "")
    if len(sanitized) > MAX_LOGGED_VALUE_CHARS:
        sanitized = sanitized[:MAX_LOGGED_VALUE_CHARS] + TRUNCATION_MARKER
    return sanitized


class SecurityLogger:
    """Emit classified security events."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        suspicious_logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(SECURITY_LOGGER_NAME)
        self._suspicious = suspicious_logger or logging.getLogger(SUSPICIOUS_LOGGER_NAME)

    def _emit(
        self,
        target: logging.Logger,
        level: int,
        event: SecurityEvent,
        **fields: object,
    ) -> None:
        target.log(
            level,
            f"security.{event.value.lower()}",
            extra={"event": event.value, **fields},
        )

    def rate_limit_exceeded(
        self,
        ip_address: str,
        endpoint: str,
        category: str,
        retry_after: int,
    ) -> None:
        self._emit(
            self._logger,
            logging.WARNING,
            SecurityEvent.RATE_LIMIT_EXCEEDED,
            ip=sanitize_input(ip_address),
            endpoint=sanitize_input(endpoint),
            category=category,
            retry_after_s=retry_after,
        )

    def rate_limit_reset(self, ip_address: str, target_client: str, category: str) -> None:
        """Record an administrative reset (who asked, which bucket)."""
        self._emit(
            self._logger,
            logging.INFO,
            SecurityEvent.RATE_LIMIT_RESET,
            ip=sanitize_input(ip_address),
            target_client=sanitize_input(target_client),
            category=sanitize_input(category),
        )

    def unauthorized_access(self, endpoint: str, ip_address: str, reason: str) -> None:
        self._emit(
            self._logger,
            logging.WARNING,
            SecurityEvent.UNAUTHORIZED_ACCESS,
            endpoint=sanitize_input(endpoint),
            ip=sanitize_input(ip_address),
            reason=sanitize_input(reason),
        )

    def forbidden_access(self, endpoint: str, ip_address: str, reason: str) -> None:
        self._emit(
            self._logger,
            logging.WARNING,
            SecurityEvent.FORBIDDEN_ACCESS,
            endpoint=sanitize_input(endpoint),
            ip=sanitize_input(ip_address),
            reason=sanitize_input(reason),
        )

    def suspicious_activity(self, activity_type: str, details: str, ip_address: str) -> None:
        self._emit(
            self._suspicious,
            logging.WARNING,
            SecurityEvent.SUSPICIOUS_ACTIVITY,
            activity_type=activity_type,
            details=sanitize_input(details),
            ip=sanitize_input(ip_address),
        )


security_logger = SecurityLogger()
