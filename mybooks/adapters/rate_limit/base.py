"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the in-memory store can later be replaced by a shared one (e.g., Redis)
without touching the middleware or the admin routes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

LOGIN = "login"
REGISTER = "register"
API = "api"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Quota applied to one operation category.

    Attributes:
        max_requests: Requests admitted per sliding window.
        window_seconds: Length of the sliding window in seconds.
    """

    max_requests: int
    window_seconds: int

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")


DEFAULT_POLICIES: dict[str, RateLimitPolicy] = {
    LOGIN: RateLimitPolicy(max_requests=5, window_seconds=60),
    REGISTER: RateLimitPolicy(max_requests=3, window_seconds=60),
    API: RateLimitPolicy(max_requests=100, window_seconds=60),
}


@dataclass(frozen=True)
class RateLimiterStats:
    """Read-only snapshot of limiter state.

    Attributes:
        tracked_keys: Number of (client, category) buckets currently held.
        last_cleanup_at: UNIX time of the last cleanup sweep.
    """

    tracked_keys: int
    last_cleanup_at: float


class AbstractRateLimiter(ABC):
    """Interface for per-client, per-category sliding-window limiters.

    ``max_requests`` and ``window_seconds`` may be omitted when the category
    has a configured policy.
    """

    @abstractmethod
    def admit(
        self,
        client: str,
        category: str,
        max_requests: int | None = None,
        window_seconds: int | None = None,
    ) -> bool:
        """Record an attempt and return whether it may proceed."""
        raise NotImplementedError

    @abstractmethod
    def remaining_quota(
        self,
        client: str,
        category: str,
        max_requests: int | None = None,
        window_seconds: int | None = None,
    ) -> int:
        """Return how many requests are still available in the window."""
        raise NotImplementedError

    @abstractmethod
    def is_blocked(self, client: str, category: str) -> bool:
        """Return the outcome flag recorded by the most recent ``admit``."""
        raise NotImplementedError

    @abstractmethod
    def time_until_unblock(
        self,
        client: str,
        category: str,
        window_seconds: int | None = None,
    ) -> int:
        """Return whole seconds until a blocked client regains a slot."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, client: str, category: str) -> None:
        """Forget all state for the given client and category."""
        raise NotImplementedError

    @abstractmethod
    def statistics(self) -> RateLimiterStats:
        """Return an observability snapshot without mutating state."""
        raise NotImplementedError
