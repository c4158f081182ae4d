"""Rate limiter administration endpoints.

Every route requires a valid ``X-Admin-Key``. Status queries are read-only:
they never consume a slot from the inspected client's quota.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request

from mybooks.adapters.rate_limit.base import LOGIN
from mybooks.core.auth import verify_admin_key
from mybooks.core.client_ip import resolve_client_ip
from mybooks.core.errors import ValidationAppError
from mybooks.core.rate_limit import get_rate_limiter
from mybooks.schemas.rate_limit import (
    RateLimitResetResponse,
    RateLimitStatsResponse,
    RateLimitStatusResponse,
)
from mybooks.services.security_logger import security_logger

router = APIRouter(
    prefix="/api/admin/rate-limit",
    tags=["Admin"],
    dependencies=[Depends(verify_admin_key)],
)


@router.get("/stats", response_model=RateLimitStatsResponse)
def get_statistics() -> RateLimitStatsResponse:
    """Return the number of tracked buckets and the last cleanup time."""

    stats = get_rate_limiter().statistics()
    return RateLimitStatsResponse(
        tracked_keys=stats.tracked_keys,
        last_cleanup_at=datetime.fromtimestamp(
            stats.last_cleanup_at, tz=timezone.utc
        ).isoformat(),
    )


@router.get("/status", response_model=RateLimitStatusResponse)
def get_status(
    request: Request,
    client_id: str | None = Query(
        None,
        min_length=1,
        description="Client identifier to inspect; defaults to the caller's address.",
    ),
    category: str = Query(LOGIN, min_length=1),
) -> RateLimitStatusResponse:
    """Report quota state for a client without touching its quota.

    Raises:
        ValidationAppError: If the category has no configured policy.
    """

    limiter = get_rate_limiter()
    policy = limiter.policy_for(category)
    if policy is None:
        raise ValidationAppError(
            code="unknown_rate_limit_category",
            message=f"No rate limit policy is configured for category '{category}'",
            details={
                "category": category,
                "allowed_categories": sorted(limiter.policies),
            },
        )

    target = client_id or resolve_client_ip(request)
    return RateLimitStatusResponse(
        client_id=target,
        category=category,
        limit=policy.max_requests,
        window_seconds=policy.window_seconds,
        remaining=limiter.remaining_quota(target, category),
        blocked=limiter.is_blocked(target, category),
        retry_after_seconds=limiter.time_until_unblock(target, category),
    )


@router.post("/reset", response_model=RateLimitResetResponse)
def reset_rate_limit(
    request: Request,
    client_id: str = Query(..., min_length=1),
    category: str = Query(LOGIN, min_length=1),
) -> RateLimitResetResponse:
    """Drop the bucket for ``(client_id, category)``; a no-op when absent."""

    get_rate_limiter().reset(client_id, category)
    security_logger.rate_limit_reset(resolve_client_ip(request), client_id, category)
    return RateLimitResetResponse(
        message="Rate limit reset successfully",
        client_id=client_id,
        category=category,
    )
