"""
Scheduler tick lock — Redis SET NX EX guard against overlapping ticks.

Beat fires the tick on a fixed cadence; if a tick outlives its interval (slow
database, many tenants) the next one would evaluate the same tenants and
budget concurrently. Only the holder of this lock runs a tick; the others
return immediately.
Version: 1.0.0
"""
import logging

import redis

from helpdesk_sync.core.config import settings

logger = logging.getLogger(__name__)

TICK_LOCK_KEY = "scheduler_tick_lock"

# Upper bound on a tick's runtime; the lock expires on its own if a worker dies
TICK_LOCK_TTL = 120


def _get_redis() -> redis.Redis:
    """Create a Redis client from the configured URL."""
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def acquire_tick_lock(task_id: str = "unknown", ttl: int = TICK_LOCK_TTL) -> bool:
    """Acquire the scheduler tick lock.

    Returns True if lock was acquired (this tick should proceed).
    Returns False if lock is already held (another tick is running).
    """
    r = _get_redis()
    acquired = r.set(TICK_LOCK_KEY, task_id, nx=True, ex=ttl)

    if acquired:
        logger.debug(f"Tick lock ACQUIRED: task={task_id}, ttl={ttl}s")
    else:
        holder = r.get(TICK_LOCK_KEY)
        logger.info(f"Tick lock HELD: holder={holder}, skipping")

    return bool(acquired)


def release_tick_lock(task_id: str = "unknown") -> None:
    """Release the tick lock if this task still holds it."""
    r = _get_redis()
    if r.get(TICK_LOCK_KEY) == task_id:
        r.delete(TICK_LOCK_KEY)
        logger.debug(f"Tick lock released: task={task_id}")
