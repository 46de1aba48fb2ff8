"""
FastAPI application — webhook proxy and health endpoints.

Run with:
    uvicorn helpdesk_sync.main:app --host 0.0.0.0 --port 8000

Celery workers and beat run as separate processes (see celery_app/celery_config.py).
Version: 1.0.0
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from helpdesk_sync.routes import health_router, webhooks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan event handler.

    On startup:
    - Verify Redis connection through the global request budget
    """
    logger.info("=== Helpdesk Sync Starting ===")

    try:
        from helpdesk_sync.core.config import settings
        from helpdesk_sync.utils.request_budget import get_request_budget
        status = get_request_budget().get_status(settings.incremental_export_max_per_minute)
        logger.info(
            f"Request budget initialized: {status['requests_last_window']}/{status['max_per_minute']} "
            f"incremental export calls in the last minute"
        )
    except Exception as e:
        logger.warning(f"Request budget check failed (Redis may be unavailable): {e}")

    logger.info("=== Helpdesk Sync Ready ===")

    yield

    logger.info("Shutdown complete")


app = FastAPI(title="Helpdesk Sync", lifespan=lifespan)
logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")

app.include_router(health_router)
app.include_router(webhooks_router)
