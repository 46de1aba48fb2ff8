"""
Base task class — lifecycle logging, async helper, and lazy dependencies.

Provides:
- Task lifecycle logging (start/success/failure/retry)
- run_async for calling the async helpdesk client from sync tasks
- Worker-local stores, budget and settings (created after fork)
Version: 1.0.0
"""
import asyncio
import logging
from celery import Task

logger = logging.getLogger(__name__)


class BaseTask(Task):
    """Base task with common functionality for all workers."""

    # Don't create abstract tasks
    abstract = True

    # Rate limits and transient errors are retried in place by the task body;
    # nothing is re-queued through Celery's own retry machinery.
    max_retries = 0

    # Track task state
    track_started = True

    def before_start(self, task_id, args, kwargs):
        """Called before the task body runs."""
        logger.info(f"Task {self.name}[{task_id}] starting")

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Called when the task body raised."""
        logger.error(f"Task {self.name}[{task_id}] failed: {exc}")

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        """Called when task is being retried."""
        logger.warning(f"Task {self.name}[{task_id}] retrying (attempt {self.request.retries}): {exc}")

    def on_success(self, retval, task_id, args, kwargs):
        """Called when task succeeds."""
        logger.info(f"Task {self.name}[{task_id}] succeeded")


# ============================================
# Async Helper
# ============================================
def run_async(coro):
    """
    Run async function in sync context.

    Use this to call async client methods from Celery tasks.
    Each call creates a new event loop to avoid conflicts.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ============================================
# Dependency helpers (lazy loading, worker-local)
# ============================================
_dependencies = None


def get_dependencies():
    """
    Lazy load dependencies.

    Called after fork so each worker gets own instances.
    This prevents connection sharing issues between workers.
    """
    global _dependencies
    if _dependencies is None:
        # Lazy imports: circular dependency avoidance
        from helpdesk_sync.core.config import settings
        from helpdesk_sync.db.tenant_store import get_tenant_store
        from helpdesk_sync.db.ticket_store import get_ticket_store
        from helpdesk_sync.utils.request_budget import get_request_budget

        _dependencies = {
            "settings": settings,
            "tenant_store": get_tenant_store(),
            "ticket_store": get_ticket_store(),
            "request_budget": get_request_budget(),
        }
    return _dependencies


def reset_dependencies() -> None:
    """Drop cached dependencies (for testing)."""
    global _dependencies
    _dependencies = None


def get_settings():
    """Get settings instance."""
    return get_dependencies()["settings"]


def get_tenant_store():
    """Get tenant store instance."""
    return get_dependencies()["tenant_store"]


def get_ticket_store():
    """Get ticket store instance."""
    return get_dependencies()["ticket_store"]


def get_request_budget():
    """Get global request budget instance."""
    return get_dependencies()["request_budget"]


def get_helpdesk_client(tenant):
    """Build a helpdesk API client for one tenant."""
    from helpdesk_sync.clients.helpdesk_client import HelpdeskClient
    return HelpdeskClient(tenant, get_settings())
