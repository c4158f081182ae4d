"""Pydantic schemas for rate limit responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitExceededResponse(BaseModel):
    """Body of a 429 response.

    Field names are camelCase to match the existing client contract.
    """

    success: bool = Field(False, description="Always false for a throttled request.")
    message: str = Field(..., description="Human-readable explanation.")
    error: str = Field(..., description="Machine-readable error code.")
    retryAfter: int = Field(
        ..., ge=0, description="Seconds until a slot frees up (mirrors Retry-After)."
    )
    remainingAttempts: int | None = Field(
        None, ge=0, description="Attempts left in the window (login only)."
    )
    timestamp: int = Field(..., description="Server time in epoch milliseconds.")


class RateLimitStatsResponse(BaseModel):
    tracked_keys: int = Field(..., ge=0, description="Number of tracked client buckets.")
    last_cleanup_at: str = Field(..., description="ISO-8601 UTC time of the last sweep.")


class RateLimitStatusResponse(BaseModel):
    """Current quota state of one client for one category."""

    client_id: str = Field(..., description="Client identifier that was inspected.")
    category: str = Field(..., description="Rate limit category.")
    limit: int = Field(..., ge=1, description="Requests allowed per window.")
    window_seconds: int = Field(..., ge=1, description="Sliding window length.")
    remaining: int = Field(..., ge=0, description="Requests left in the window.")
    blocked: bool = Field(..., description="Outcome of the client's last admission check.")
    retry_after_seconds: int = Field(
        ..., ge=0, description="Seconds until unblocked (0 when not blocked)."
    )


class RateLimitResetResponse(BaseModel):
    message: str
    client_id: str
    category: str
