"""
Scheduler tick task — picks eligible tenants and dispatches incremental syncs.

Tasks:
- queue_incremental_syncs: Runs every SCHEDULER_TICK_SECONDS from Celery Beat
Version: 1.0.0
"""
import logging

from helpdesk_sync.celery_app.celery_config import celery_app, SYNC_ENABLED
from helpdesk_sync.celery_app.tasks.base import (
    BaseTask,
    get_settings,
    get_tenant_store,
    get_request_budget,
)
from helpdesk_sync.celery_app.tasks.incremental_sync import sync_tenant_page
from helpdesk_sync.core.constants.sync import QUEUE_INCREMENTAL, PRIORITY_INCREMENTAL
from helpdesk_sync.services.scheduler_service import SchedulerService
from helpdesk_sync.utils.dispatch_lock import acquire_tick_lock, release_tick_lock

logger = logging.getLogger(__name__)


def _dispatch_sync(tenant_id: int):
    return sync_tenant_page.apply_async(
        args=[tenant_id],
        queue=QUEUE_INCREMENTAL,
        priority=PRIORITY_INCREMENTAL,
    )


@celery_app.task(
    bind=True,
    base=BaseTask,
    name="tasks.scheduler.queue_incremental_syncs",
    max_retries=0
)
def queue_incremental_syncs(self):
    """
    One scheduler tick.

    Guarded by a Redis tick lock so overlapping ticks never evaluate the
    same tenants and budget at the same time.
    """
    if not SYNC_ENABLED:
        logger.info("Auto-sync is disabled (SYNC_ENABLED=false), skipping tick")
        return {"status": "skipped", "reason": "sync_disabled"}

    task_id = self.request.id or "unknown"
    if not acquire_tick_lock(task_id):
        return {"status": "skipped", "reason": "tick_in_progress"}

    try:
        settings = get_settings()
        service = SchedulerService(get_tenant_store(), get_request_budget())
        return service.run_tick(
            dispatch_callback=_dispatch_sync,
            max_per_minute=settings.incremental_export_max_per_minute,
            ready_buffer_seconds=settings.tenant_ready_buffer_seconds,
            stuck_threshold_minutes=settings.stuck_in_flight_minutes,
        )

    except Exception as e:
        logger.error(f"Scheduler tick failed: {e}")
        raise

    finally:
        release_tick_lock(task_id)
