"""
Route aggregation module.

Health and webhook routers are mounted at the root by main.py.
Version: 1.0.0
"""
from helpdesk_sync.routes.health import router as health_router
from helpdesk_sync.routes.webhooks import router as webhooks_router

__all__ = ["health_router", "webhooks_router"]
