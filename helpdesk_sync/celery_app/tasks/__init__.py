"""
Celery task exports — all tasks registered from submodules.

Exports all tasks for convenient imports.
Version: 1.0.0
"""
from helpdesk_sync.celery_app.tasks.scheduler import queue_incremental_syncs
from helpdesk_sync.celery_app.tasks.incremental_sync import sync_tenant_page
from helpdesk_sync.celery_app.tasks.ticket_details import fetch_ticket_comments, fetch_ticket_metrics
from helpdesk_sync.celery_app.tasks.proxy import proxy_request

__all__ = [
    "queue_incremental_syncs",
    "sync_tenant_page",
    "fetch_ticket_comments",
    "fetch_ticket_metrics",
    "proxy_request",
]
