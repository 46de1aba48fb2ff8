"""
Celery configuration — broker, task routes, beat schedule.

Configures the Redis broker, per-stage queues, priorities and the scheduler
tick that drives tenant synchronization.

=============================================================================
RUNNING WORKERS (Separate Terminals for Better Log Visibility)
=============================================================================

Option A: ALL QUEUES IN ONE TERMINAL
    celery -A helpdesk_sync.celery_app worker -Q default,incremental,comments,metrics,comments_closed,metrics_closed,proxy -l info -n all@%h

Option B: SEPARATE TERMINALS

    Terminal 1 - Scheduler tick + incremental syncs:
        celery -A helpdesk_sync.celery_app worker -Q default,incremental -l info -n sync@%h

    Terminal 2 - Live ticket details:
        celery -A helpdesk_sync.celery_app worker -Q comments,metrics -l info -n details@%h

    Terminal 3 - Closed ticket backlog (can run with low concurrency):
        celery -A helpdesk_sync.celery_app worker -Q comments_closed,metrics_closed --concurrency=1 -l info -n backlog@%h

    Terminal 4 - Proxy calls:
        celery -A helpdesk_sync.celery_app worker -Q proxy -l info -n proxy@%h

    Terminal 5 - Celery Beat (scheduler):
        celery -A helpdesk_sync.celery_app beat -l info

Backoff waits block a worker slot (time.sleep) for their whole duration,
so size concurrency on the incremental/detail queues with that in mind.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================
    SYNC_ENABLED: "true" or "false" — master on/off for the scheduler tick (default: true)
    SCHEDULER_TICK_SECONDS: Seconds between scheduler ticks (default: 60)
    INCREMENTAL_EXPORT_MAX_PER_MINUTE: Incremental export budget (default: 10)
    RATE_LIMIT_HEADROOM_PERCENT: Back off below this % of remaining quota (default: 40)
Version: 1.0.0
"""
import logging
import platform

from celery import Celery
from kombu import Queue

from helpdesk_sync.core.config import settings
from helpdesk_sync.core.constants.sync import (
    QUEUE_DEFAULT,
    QUEUE_INCREMENTAL,
    QUEUE_COMMENTS,
    QUEUE_COMMENTS_CLOSED,
    QUEUE_METRICS,
    QUEUE_METRICS_CLOSED,
    QUEUE_PROXY,
)

logger = logging.getLogger(__name__)

# Detect Windows platform for pool configuration
IS_WINDOWS = platform.system() == "Windows"

# =============================================================================
# SCHEDULER CONFIGURATION (all values from centralized settings)
# =============================================================================

BROKER_URL = settings.celery_broker_url
RESULT_BACKEND = settings.celery_result_backend
SYNC_ENABLED = settings.sync_enabled
SCHEDULER_TICK_SECONDS = settings.scheduler_tick_seconds


def _build_beat_schedule() -> dict:
    """Build Celery Beat schedule based on the sync enabled setting."""
    if not SYNC_ENABLED:
        return {}

    return {
        "queue-incremental-syncs": {
            "task": "tasks.scheduler.queue_incremental_syncs",
            "schedule": SCHEDULER_TICK_SECONDS,
            "options": {"queue": QUEUE_DEFAULT, "expires": SCHEDULER_TICK_SECONDS},
        },
    }


def _log_scheduler_config():
    """Log scheduler configuration at startup."""
    border = "=" * 60

    if not SYNC_ENABLED:
        logger.info(border)
        logger.info("  TENANT SCHEDULER: DISABLED (SYNC_ENABLED=false)")
        logger.info("  Proxy and detail queues keep working normally.")
        logger.info(border)
        return

    logger.info(border)
    logger.info("  TENANT SCHEDULER: ENABLED")
    logger.info(f"  Tick interval: every {SCHEDULER_TICK_SECONDS}s")
    logger.info(f"  Incremental export budget: {settings.incremental_export_max_per_minute}/min")
    logger.info(f"  Ready buffer: {settings.tenant_ready_buffer_seconds}s")
    logger.info(f"  Stuck in-flight threshold: {settings.stuck_in_flight_minutes} min")
    logger.info(f"  Rate limit headroom: {settings.rate_limit_headroom_percent}%")
    logger.info(border)


_log_scheduler_config()

celery_app = Celery(
    "helpdesk_sync",
    broker=BROKER_URL,
    backend=RESULT_BACKEND,
    include=[
        "helpdesk_sync.celery_app.tasks.scheduler",
        "helpdesk_sync.celery_app.tasks.incremental_sync",
        "helpdesk_sync.celery_app.tasks.ticket_details",
        "helpdesk_sync.celery_app.tasks.proxy",
    ]
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings (at-least-once: ack after the task body ran)
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # Task routing - scheduler, incremental, live/closed details, proxy
    task_queues=(
        Queue(QUEUE_DEFAULT),
        Queue(QUEUE_INCREMENTAL),
        Queue(QUEUE_COMMENTS),
        Queue(QUEUE_METRICS),
        Queue(QUEUE_COMMENTS_CLOSED),
        Queue(QUEUE_METRICS_CLOSED),
        Queue(QUEUE_PROXY),
    ),
    task_default_queue=QUEUE_DEFAULT,
    task_routes={
        "tasks.scheduler.*": {"queue": QUEUE_DEFAULT},
        "tasks.incremental_sync.*": {"queue": QUEUE_INCREMENTAL},
        "tasks.ticket_details.fetch_ticket_comments": {"queue": QUEUE_COMMENTS},
        "tasks.ticket_details.fetch_ticket_metrics": {"queue": QUEUE_METRICS},
        "tasks.proxy.*": {"queue": QUEUE_PROXY},
    },

    # Beat schedule for the scheduler tick
    beat_schedule=_build_beat_schedule(),

    # Result expiration
    result_expires=3600,  # 1 hour

    # Worker pool configuration for Windows compatibility
    worker_pool="solo" if IS_WINDOWS else "prefork",

    # Visibility timeout and priority support on the Redis transport
    broker_transport_options={
        "visibility_timeout": 3600,
        "queue_order_strategy": "priority",
        "priority_steps": list(range(10)),
    },

    # Custom log format
    worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
    worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s] [%(task_name)s] %(message)s",
)
