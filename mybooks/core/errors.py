"""Application-level exception types.

Routes and dependencies raise these; ``exception_handlers`` renders them as
``{"error": {...}}`` using the HTTP status carried by each class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Optional structured context attached to an error response."""

    hint: str
    category: str
    allowed_categories: list[str]


@dataclass
class AppError(Exception):
    """Base error for failures the API reports to its callers.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details.
    """

    status_code: ClassVar[int] = 400

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ValidationAppError(AppError):
    """A request parameter was rejected (unknown category, bad limits)."""


class AuthenticationAppError(AppError):
    """Admin authentication failed or is misconfigured."""

    status_code: ClassVar[int] = 403
