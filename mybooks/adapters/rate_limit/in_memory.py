"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: every (client, category) bucket carries its own lock, so
  unrelated clients never wait on each other. A small registry lock only
  guards bucket creation and removal.
- Cleanup is opportunistic: ``admit`` triggers a sweep once the cleanup
  interval has elapsed. The sweep drops timestamps older than the retention
  horizon, which always exceeds the longest window.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Mapping

from mybooks.adapters.rate_limit.base import (
    DEFAULT_POLICIES,
    AbstractRateLimiter,
    RateLimiterStats,
    RateLimitPolicy,
)

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60
DEFAULT_RETENTION_SECONDS = 10 * 60

ClientKey = tuple[str, str]


@dataclass
class _Bucket:
    timestamps: deque[float] = field(default_factory=deque)
    blocked: bool = False
    last_blocked_at: float | None = None
    # Set once the bucket has been unlinked from the registry.
    retired: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def _purge_before(timestamps: deque[float], cutoff: float) -> None:
    """Drop timestamps strictly older than ``cutoff`` (oldest first)."""
    while timestamps and timestamps[0] < cutoff:
        timestamps.popleft()


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Sliding-window limiter keyed by (client identifier, category).

    A request is admitted while fewer than ``max_requests`` timestamps fall
    within the last ``window_seconds``. Denied attempts are not recorded.
    """

    def __init__(
        self,
        *,
        policies: Mapping[str, RateLimitPolicy] | None = None,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            policies: Per-category quotas used when a call omits explicit
                ``max_requests``/``window_seconds``.
            cleanup_interval_seconds: Minimum spacing between cleanup sweeps.
            retention_seconds: Age after which timestamps are swept away.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If intervals are invalid or the retention horizon does
                not exceed every configured window.
        """
        if cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be > 0")
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be > 0")

        self._policies = dict(DEFAULT_POLICIES if policies is None else policies)
        longest_window = max(
            (policy.window_seconds for policy in self._policies.values()),
            default=0,
        )
        if retention_seconds <= longest_window:
            raise ValueError(
                "retention_seconds must exceed the longest policy window "
                f"({longest_window}s)"
            )

        self._cleanup_interval = cleanup_interval_seconds
        self._retention = retention_seconds
        self._clock = clock
        self._buckets: dict[ClientKey, _Bucket] = {}
        self._registry_lock = threading.Lock()
        self._sweep_lock = threading.Lock()
        self._last_cleanup = clock()

    @property
    def policies(self) -> dict[str, RateLimitPolicy]:
        return dict(self._policies)

    def policy_for(self, category: str) -> RateLimitPolicy | None:
        return self._policies.get(category)

    def _require_policy(self, category: str) -> RateLimitPolicy:
        policy = self._policies.get(category)
        if policy is None:
            raise ValueError(
                f"no rate limit policy configured for category {category!r}"
            )
        return policy

    def _resolve_window(self, category: str, window_seconds: int | None) -> int:
        if window_seconds is None:
            window_seconds = self._require_policy(category).window_seconds
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if window_seconds >= self._retention:
            raise ValueError("window_seconds must be shorter than the retention horizon")
        return window_seconds

    def _resolve_limits(
        self,
        category: str,
        max_requests: int | None,
        window_seconds: int | None,
    ) -> tuple[int, int]:
        if max_requests is None:
            max_requests = self._require_policy(category).max_requests
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        return max_requests, self._resolve_window(category, window_seconds)

    @staticmethod
    def _validate_key(client: str, category: str) -> ClientKey:
        if not client:
            raise ValueError("client must be a non-empty string")
        if not category:
            raise ValueError("category must be a non-empty string")
        return client, category

    def _get_or_create_bucket(self, key: ClientKey) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is not None:
            return bucket
        with self._registry_lock:
            return self._buckets.setdefault(key, _Bucket())

    def admit(
        self,
        client: str,
        category: str,
        max_requests: int | None = None,
        window_seconds: int | None = None,
    ) -> bool:
        """Check the quota for ``(client, category)`` and consume a slot.

        Args:
            client: Caller identifier (usually the resolved IP address).
            category: Operation category, e.g. ``"login"``.
            max_requests: Quota override; defaults to the category policy.
            window_seconds: Window override; defaults to the category policy.

        Returns:
            True when admitted, False when the window is full.

        Raises:
            ValueError: For empty identifiers or invalid limits.
        """
        key = self._validate_key(client, category)
        max_requests, window_seconds = self._resolve_limits(
            category, max_requests, window_seconds
        )
        self._maybe_sweep()

        while True:
            bucket = self._get_or_create_bucket(key)
            with bucket.lock:
                if bucket.retired:
                    # Swept or reset between lookup and lock; use the fresh one.
                    continue

                now = self._clock()
                _purge_before(bucket.timestamps, now - window_seconds)

                if len(bucket.timestamps) >= max_requests:
                    bucket.blocked = True
                    bucket.last_blocked_at = now
                    logger.debug(
                        "rate_limit.denied",
                        extra={
                            "category": category,
                            "limit": max_requests,
                            "window_s": window_seconds,
                        },
                    )
                    return False

                bucket.timestamps.append(now)
                bucket.blocked = False
                return True

    def remaining_quota(
        self,
        client: str,
        category: str,
        max_requests: int | None = None,
        window_seconds: int | None = None,
    ) -> int:
        """Return the unused part of the quota without consuming it."""
        key = self._validate_key(client, category)
        max_requests, window_seconds = self._resolve_limits(
            category, max_requests, window_seconds
        )

        bucket = self._buckets.get(key)
        if bucket is None:
            return max_requests

        with bucket.lock:
            window_start = self._clock() - window_seconds
            in_window = sum(1 for ts in bucket.timestamps if ts >= window_start)
        return max(0, max_requests - in_window)

    def is_blocked(self, client: str, category: str) -> bool:
        bucket = self._buckets.get(self._validate_key(client, category))
        if bucket is None:
            return False
        with bucket.lock:
            return bucket.blocked

    def time_until_unblock(
        self,
        client: str,
        category: str,
        window_seconds: int | None = None,
    ) -> int:
        """Return whole seconds until the oldest in-window request expires.

        Only timestamps inside the current window are considered, so stale
        entries awaiting cleanup never inflate the wait.

        Returns:
            0 when the client is not blocked, otherwise the floored number of
            seconds until one slot frees up.

        Raises:
            ValueError: For empty identifiers or an invalid window.
        """
        key = self._validate_key(client, category)
        window_seconds = self._resolve_window(category, window_seconds)

        bucket = self._buckets.get(key)
        if bucket is None:
            return 0

        with bucket.lock:
            if not bucket.blocked:
                return 0
            now = self._clock()
            window_start = now - window_seconds
            oldest = next((ts for ts in bucket.timestamps if ts >= window_start), None)
        if oldest is None:
            return 0
        return max(0, math.floor(oldest + window_seconds - now))

    def reset(self, client: str, category: str) -> None:
        key = self._validate_key(client, category)
        with self._registry_lock:
            bucket = self._buckets.pop(key, None)
        if bucket is None:
            return
        with bucket.lock:
            bucket.retired = True

    def statistics(self) -> RateLimiterStats:
        return RateLimiterStats(
            tracked_keys=len(self._buckets),
            last_cleanup_at=self._last_cleanup,
        )

    def _maybe_sweep(self) -> None:
        if self._clock() - self._last_cleanup <= self._cleanup_interval:
            return
        # Another caller is already sweeping; don't queue behind it.
        if not self._sweep_lock.acquire(blocking=False):
            return
        try:
            if self._clock() - self._last_cleanup > self._cleanup_interval:
                self.sweep()
        finally:
            self._sweep_lock.release()

    def sweep(self) -> int:
        """Purge timestamps past the retention horizon and drop empty buckets.

        Each bucket is processed under its own lock; the rest of the table
        stays available while the sweep runs.

        Returns:
            Number of buckets removed.
        """
        now = self._clock()
        cutoff = now - self._retention
        removed = 0

        with self._registry_lock:
            entries = list(self._buckets.items())

        for key, bucket in entries:
            with bucket.lock:
                if bucket.retired:
                    continue
                _purge_before(bucket.timestamps, cutoff)
                if bucket.timestamps:
                    continue
                with self._registry_lock:
                    if self._buckets.get(key) is bucket:
                        del self._buckets[key]
                        removed += 1
                bucket.retired = True

        self._last_cleanup = now
        logger.info(
            "rate_limit.cleanup",
            extra={
                "removed_keys": removed,
                "tracked_keys": len(self._buckets),
                "retention_s": self._retention,
            },
        )
        return removed
