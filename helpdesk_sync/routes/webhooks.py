"""
Webhook routes — inbound proxy trigger for external automation.

POST /webhooks/proxy forwards one helpdesk API call through the same
rate-limit gate as the sync tasks. get/delete run inline and relay the
helpdesk status and body; put/post/patch are queued and answered with 202.

Authentication: X-Webhook-Secret must equal WEBHOOKS_PROXY_SECRET.
Version: 1.0.0
"""
import hmac
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse, Response

from helpdesk_sync.celery_app.tasks.proxy import execute_proxy_call, proxy_request
from helpdesk_sync.core.config import Settings, get_settings
from helpdesk_sync.core.constants.sync import QUEUE_PROXY
from helpdesk_sync.core.exceptions import (
    RetryableError,
    ValidationConflictError,
    ValidationError,
)
from helpdesk_sync.db.tenant_store import TenantStore, get_tenant_store
from helpdesk_sync.schemas.proxy import ProxyAcceptedResponse, ProxyRequest
from helpdesk_sync.services.proxy_service import validate_proxy_request

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_webhook_secret(
    x_webhook_secret: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless X-Webhook-Secret matches the configured secret."""
    expected = settings.webhooks_proxy_secret
    if not expected:
        logger.error("WEBHOOKS_PROXY_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook authentication not configured")

    if not x_webhook_secret:
        raise HTTPException(status_code=401, detail="X-Webhook-Secret header required")

    if not hmac.compare_digest(x_webhook_secret.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.post("/proxy", dependencies=[Depends(verify_webhook_secret)])
def proxy_webhook(
    payload: ProxyRequest,
    tenant_store: TenantStore = Depends(get_tenant_store),
):
    """
    Proxy one helpdesk API call for an active tenant.

    Plain def: the inline path blocks on rate-limit waits and runs the
    async client in its own event loop, so it executes in the threadpool.
    """
    try:
        call = validate_proxy_request(payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    tenant = tenant_store.get_tenant_by_domain(call.domain, active_only=True)
    if tenant is None:
        raise HTTPException(status_code=404, detail=f"No active tenant found for domain {call.domain}")

    if not call.is_sync:
        result = proxy_request.apply_async(
            args=[call.domain, call.method, call.resource, call.resource_id, call.body],
            queue=QUEUE_PROXY,
        )
        logger.info(f"Queued proxy {call.method.upper()} {call.path} for {call.domain} (task {result.id})")
        return JSONResponse(
            status_code=202,
            content=ProxyAcceptedResponse(task_id=result.id).model_dump(),
        )

    try:
        status, body = execute_proxy_call(call, tenant, tenant_store)
    except ValidationConflictError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"error": str(e), "error_class": "ValidationConflict", "details": e.details},
        )
    except (RetryableError, httpx.HTTPError) as e:
        logger.error(f"Proxy {call.method.upper()} {call.path} failed for {call.domain}: {e}")
        return JSONResponse(status_code=503, content={"error": "Proxy request failed"})

    if status == 204:
        return Response(status_code=204)
    return JSONResponse(status_code=status, content=body)
