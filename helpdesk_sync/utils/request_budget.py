"""
Global request budget for the incremental export endpoint.

The incremental export endpoint has a hard per-minute ceiling (10/min, 30
with the high volume add-on) shared by every tenant, independent of the
per-account rate-limit headers. The scheduler records one entry per
dispatched sync task, before the task runs, and stops dispatching once the
last 60 seconds hold max_per_minute entries.

Sliding Window Configuration:
- Window: 60 seconds (counted)
- Retention: 120 seconds (older entries pruned once per tick)
- Storage: Redis sorted set, one member per request scored by timestamp

The check and the record are separate calls, so two overlapping ticks can
both pass at_cap() and overshoot the cap slightly.

Usage:
    from helpdesk_sync.utils.request_budget import get_request_budget

    budget = get_request_budget()
    budget.prune_old()
    if not budget.at_cap(10):
        member = budget.record_request()
        # if the dispatch fails: budget.discard(member)
"""

import logging
import time
import uuid
from typing import Optional

import redis

from helpdesk_sync.core.constants.sync import BUDGET_WINDOW_SECONDS, BUDGET_RETENTION_SECONDS

logger = logging.getLogger("request_budget")

# Redis key for the incremental export request log
REDIS_KEY = "helpdesk:incremental_export_requests"

DEFAULT_MAX_PER_MINUTE = 10


class GlobalRequestBudget:
    """
    Sliding-window counter of calls to the incremental export endpoint.

    Shared by all scheduler ticks through Redis.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key: str = REDIS_KEY,
        window_seconds: int = BUDGET_WINDOW_SECONDS,
        retention_seconds: int = BUDGET_RETENTION_SECONDS,
    ):
        """
        Initialize the budget.

        Args:
            redis_client: Redis client instance
            key: Sorted set key holding request timestamps
            window_seconds: Window counted by at_cap()
            retention_seconds: Age after which prune_old() drops entries
        """
        self._redis = redis_client
        self._key = key
        self._window_seconds = window_seconds
        self._retention_seconds = retention_seconds

    def count_in_window(self) -> int:
        """Number of requests recorded in the last window_seconds."""
        now = time.time()
        try:
            return int(self._redis.zcount(self._key, f"({now - self._window_seconds}", "+inf"))
        except redis.RedisError as e:
            logger.error(f"Redis error in count_in_window: {e}")
            # Fail open: a Redis outage should not stop every tenant from syncing
            return 0

    def at_cap(self, max_per_minute: int = DEFAULT_MAX_PER_MINUTE) -> bool:
        """True when the last window already holds max_per_minute requests."""
        count = self.count_in_window()
        if count >= max_per_minute:
            logger.info(f"Incremental export budget at cap ({count}/{max_per_minute} in last {self._window_seconds}s)")
            return True
        return False

    def record_request(self) -> Optional[str]:
        """
        Insert one timestamped entry.

        Returns:
            The sorted set member written, or None if Redis was unavailable
        """
        now = time.time()
        member = f"{now:.6f}:{uuid.uuid4().hex}"
        try:
            self._redis.zadd(self._key, {member: now})
            self._redis.expire(self._key, self._retention_seconds)
            return member
        except redis.RedisError as e:
            logger.error(f"Redis error in record_request: {e}")
            return None

    def discard(self, member: Optional[str]) -> bool:
        """Remove an entry written by record_request for a call that never went out."""
        if not member:
            return False
        try:
            return bool(self._redis.zrem(self._key, member))
        except redis.RedisError as e:
            logger.error(f"Redis error in discard: {e}")
            return False

    def prune_old(self) -> int:
        """
        Delete entries older than the retention window.

        Returns:
            Number of entries removed
        """
        cutoff = time.time() - self._retention_seconds
        try:
            removed = int(self._redis.zremrangebyscore(self._key, "-inf", f"({cutoff}"))
            if removed:
                logger.debug(f"Pruned {removed} old incremental export request(s)")
            return removed
        except redis.RedisError as e:
            logger.error(f"Redis error in prune_old: {e}")
            return 0

    def reset(self) -> None:
        """
        Drop every recorded request.

        Use with caution - typically only for testing.
        """
        try:
            self._redis.delete(self._key)
            logger.info("Incremental export request log cleared")
        except redis.RedisError as e:
            logger.error(f"Redis error in reset: {e}")

    def ping(self) -> bool:
        """True if the Redis server behind the budget answers."""
        try:
            return bool(self._redis.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    def get_status(self, max_per_minute: int = DEFAULT_MAX_PER_MINUTE) -> dict:
        """Current budget status (for monitoring)."""
        count = self.count_in_window()
        return {
            "requests_last_window": count,
            "max_per_minute": max_per_minute,
            "window_seconds": self._window_seconds,
            "at_cap": count >= max_per_minute,
        }


# Singleton instance
_request_budget: Optional[GlobalRequestBudget] = None


def get_request_budget() -> GlobalRequestBudget:
    """
    Get or create the singleton GlobalRequestBudget instance.

    Uses the Redis connection from settings.

    Returns:
        GlobalRequestBudget instance
    """
    global _request_budget

    if _request_budget is None:
        from helpdesk_sync.core.config import settings
        redis_client = redis.from_url(settings.redis_url)
        _request_budget = GlobalRequestBudget(redis_client=redis_client)

    return _request_budget


def reset_request_budget() -> None:
    """Reset the singleton instance (for testing)."""
    global _request_budget
    _request_budget = None
