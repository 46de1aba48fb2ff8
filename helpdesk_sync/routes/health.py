"""
Health route — readiness of the stores the sync depends on.

GET /health pings Redis (request budget and tick lock) and reads one row
of the tenants table. 200 when both answer, 503 otherwise.
Version: 1.0.0
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from helpdesk_sync.clients.supabase_client import SupabaseClient
from helpdesk_sync.core.config import Settings, get_settings
from helpdesk_sync.core.exceptions import ConfigurationError
from helpdesk_sync.utils.request_budget import GlobalRequestBudget, get_request_budget

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


def get_health_supabase(settings: Settings = Depends(get_settings)) -> Optional[SupabaseClient]:
    """SupabaseClient for the check, or None when credentials are missing."""
    try:
        return SupabaseClient(settings)
    except ConfigurationError as e:
        logger.warning(f"Health check: {e}")
        return None


@router.get("/health")
def health_check(
    settings: Settings = Depends(get_settings),
    budget: GlobalRequestBudget = Depends(get_request_budget),
    supabase: Optional[SupabaseClient] = Depends(get_health_supabase),
):
    """Report Redis and Supabase reachability plus the incremental export budget."""
    redis_ok = budget.ping()

    if supabase is None:
        supabase_state = "unconfigured"
    elif supabase.check_table(settings.tenants_table):
        supabase_state = "ok"
    else:
        supabase_state = "unavailable"

    healthy = redis_ok and supabase_state == "ok"
    body = {
        "status": "healthy" if healthy else "degraded",
        "redis": "ok" if redis_ok else "unavailable",
        "supabase": supabase_state,
    }
    if redis_ok:
        body["request_budget"] = budget.get_status(settings.incremental_export_max_per_minute)

    return JSONResponse(status_code=200 if healthy else 503, content=body)
