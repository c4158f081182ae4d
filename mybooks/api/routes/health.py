from __future__ import annotations

from fastapi import APIRouter

from mybooks.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe. Lives outside ``/api/`` so it is never rate limited."""

    return {
        "status": "ok",
        "version": settings.app.api_version,
        "rate_limiting": settings.rate_limit.enabled,
    }
