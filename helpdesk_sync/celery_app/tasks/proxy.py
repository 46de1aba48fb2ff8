"""
Proxy tasks — forwards ad-hoc helpdesk API calls through the rate-limit gate.

Tasks:
- proxy_request: Executes a queued put/post/patch (or any verb) for a tenant

get/delete are executed inline by the webhook route via execute_proxy_call
so the caller receives (status, body) directly. The ticket store is never
written from here.
Version: 1.0.0
"""
import logging
from typing import Any, Dict, Optional, Tuple

from helpdesk_sync.celery_app.celery_config import celery_app
from helpdesk_sync.celery_app.tasks.base import (
    BaseTask,
    run_async,
    get_settings,
    get_tenant_store,
    get_helpdesk_client,
)
from helpdesk_sync.core.exceptions import (
    RateLimitError,
    TenantNotFoundError,
    ValidationConflictError,
    ValidationError,
)
from helpdesk_sync.schemas.tenant import Tenant
from helpdesk_sync.services.proxy_service import ProxyCall, build_path, normalize_body
from helpdesk_sync.utils.rate_limit import (
    call_with_rate_limit_retries,
    parse_response_body,
    response_status,
    wait_if_backed_off,
)

logger = logging.getLogger(__name__)

JOB_NAME = "HelpdeskProxy"


def execute_proxy_call(call: ProxyCall, tenant: Tenant, tenant_store=None, settings=None) -> Tuple[int, Any]:
    """
    Run one proxied call and return (status, body).

    Raises:
        RateLimitError: still rate limited after the retry budget
        ValidationConflictError: the helpdesk API answered 422
    """
    tenant_store = tenant_store or get_tenant_store()
    settings = settings or get_settings()

    tenant = wait_if_backed_off(tenant, tenant_store, JOB_NAME)
    client = get_helpdesk_client(tenant)
    path = call.path
    payload = call.body if call.method not in ("get", "delete") else None

    response = call_with_rate_limit_retries(
        lambda: run_async(client.request(call.method, path, json=payload)),
        tenant,
        tenant_store,
        max_retries=settings.sync_max_retries,
        headroom_percent=settings.rate_limit_headroom_percent,
        resource_id=path,
        job_name=JOB_NAME,
    )

    status = response_status(response)
    body = parse_response_body(response)

    if status == 422:
        logger.warning(f"[{JOB_NAME}] {call.method.upper()} {path} rejected with 422 for {tenant.domain}")
        message = body.get("description") or body.get("error") or "Validation failed"
        raise ValidationConflictError(str(message), status_code=422, details=body)

    logger.info(f"[{JOB_NAME}] {call.method.upper()} {path} completed with status {status}")
    return status, body


@celery_app.task(
    bind=True,
    base=BaseTask,
    name="tasks.proxy.proxy_request",
    max_retries=0
)
def proxy_request(
    self,
    domain: str,
    method: str,
    resource: str,
    resource_id: Optional[int] = None,
    body: Optional[Dict[str, Any]] = None,
):
    """
    Execute one proxied helpdesk call for the tenant owning domain.

    Unknown or inactive tenants, validation problems and rate-limit
    exhaustion are logged; nothing is retried through Celery.
    """
    tenant_store = get_tenant_store()
    method = (method or "get").lower()

    try:
        tenant = tenant_store.get_tenant_by_domain(domain)
        if tenant is None:
            raise TenantNotFoundError(f"No tenant found for domain {domain}")
        if not tenant.active:
            raise TenantNotFoundError(f"Tenant {tenant.id} for domain {domain} is inactive")

        call = ProxyCall(
            domain=domain,
            method=method,
            resource=resource,
            resource_id=resource_id,
            body=normalize_body(body) if body is not None else None,
        )
        build_path(call.method, call.resource, call.resource_id)

        status, _ = execute_proxy_call(call, tenant, tenant_store)
        return {"status": "completed", "http_status": status}

    except TenantNotFoundError as e:
        logger.warning(f"[{JOB_NAME}] {e}, skipping proxy request")
        return {"status": "skipped", "reason": "tenant_not_found"}

    except ValidationError as e:
        logger.error(f"[{JOB_NAME}] Invalid proxy request for {domain}: {e}")
        return {"status": "failed", "reason": "validation", "error": str(e)}

    except ValidationConflictError as e:
        logger.warning(f"[{JOB_NAME}] Helpdesk rejected {method.upper()} {resource} for {domain}: {e}")
        return {"status": "failed", "reason": "validation_conflict", "http_status": e.status_code, "details": e.details}

    except RateLimitError as e:
        logger.warning(f"[{JOB_NAME}] Giving up on {method.upper()} {resource} for {domain}: {e}")
        return {"status": "failed", "reason": "rate_limited"}

    except Exception as e:
        logger.exception(f"[{JOB_NAME}] Proxy request failed for {domain}: {e}")
        return {"status": "failed", "reason": "error", "error": str(e)}
