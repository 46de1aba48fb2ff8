"""
Incremental sync tasks — pulls one page of the ticket export for a tenant.

Tasks:
- sync_tenant_page: Fetches one incremental export page, upserts tickets,
  fans out detail fetches for updated tickets and advances the cursor

One invocation fetches exactly one page. A tenant with a large backlog is
picked up again by later scheduler ticks until its cursor catches up.
Version: 1.0.0
"""
import logging
from typing import Any, Dict, List, Tuple

from helpdesk_sync.celery_app.celery_config import celery_app
from helpdesk_sync.celery_app.tasks.base import (
    BaseTask,
    run_async,
    get_settings,
    get_tenant_store,
    get_ticket_store,
    get_helpdesk_client,
)
from helpdesk_sync.celery_app.tasks.ticket_details import fetch_ticket_comments, fetch_ticket_metrics
from helpdesk_sync.clients.helpdesk_client import ensure_success
from helpdesk_sync.core.constants.sync import PROGRESS_LOG_EVERY
from helpdesk_sync.core.exceptions import ConnectionTimeoutError, RateLimitError, TenantNotFoundError
from helpdesk_sync.db.ticket_store import UPSERT_CREATED, UPSERT_UPDATED, UPSERT_ERROR
from helpdesk_sync.schemas.tenant import Tenant
from helpdesk_sync.utils.rate_limit import (
    call_with_rate_limit_retries,
    parse_response_body,
    wait_if_backed_off,
)
from helpdesk_sync.utils.stagger import stagger_delay, metrics_delay, detail_routing
from helpdesk_sync.utils.sync_helpers import (
    build_user_lookup,
    enrich_ticket_with_users,
    unpack_incremental_page,
)

logger = logging.getLogger(__name__)

JOB_NAME = "IncrementalSync"


@celery_app.task(
    bind=True,
    base=BaseTask,
    name="tasks.incremental_sync.sync_tenant_page",
    max_retries=0
)
def sync_tenant_page(self, tenant_id: int):
    """
    Sync one incremental export page for a tenant.

    The tenant's in_flight flag is cleared on every exit path. Rate limits
    and API errors end the invocation with the cursor unchanged, so the
    next eligible tick retries the same window.

    Args:
        tenant_id: Tenant primary key

    Returns:
        Dict with status and created/updated/error counts
    """
    settings = get_settings()
    tenant_store = get_tenant_store()
    ticket_store = get_ticket_store()

    summary: Dict[str, Any] = {
        "status": "started",
        "tenant_id": tenant_id,
        "processed": 0,
        "created": 0,
        "updated": 0,
        "errors": 0,
        "details_scheduled": 0,
        "cursor_advanced": False,
    }

    try:
        tenant = tenant_store.get_tenant(tenant_id)
        tenant = wait_if_backed_off(tenant, tenant_store, JOB_NAME)

        start_time = tenant.cursor
        logger.info(f"[{JOB_NAME}] Starting for tenant {tenant.domain} (ID: {tenant_id}), cursor {start_time}")

        client = get_helpdesk_client(tenant)
        response = call_with_rate_limit_retries(
            lambda: run_async(client.fetch_incremental_tickets(start_time)),
            tenant,
            tenant_store,
            max_retries=settings.sync_max_retries,
            headroom_percent=settings.rate_limit_headroom_percent,
            resource_id="incremental",
            job_name=JOB_NAME,
        )
        ensure_success(response, "incremental export")

        tickets, users, end_time = unpack_incremental_page(parse_response_body(response))
        user_lookup = build_user_lookup(users)
        logger.info(f"[{JOB_NAME}] Received {len(tickets)} ticket(s) and {len(users)} user(s) for {tenant.domain}")

        updated_tickets = _upsert_page(tickets, user_lookup, tenant, ticket_store, summary)
        summary["details_scheduled"] = schedule_detail_fetches(updated_tickets, tenant, settings)

        if end_time is not None and end_time > 0 and end_time > start_time:
            summary["cursor_advanced"] = tenant_store.advance_cursor(tenant_id, end_time)
            logger.info(f"[{JOB_NAME}] Cursor for {tenant.domain} moved {start_time} -> {end_time}")
        else:
            logger.info(f"[{JOB_NAME}] Cursor not updated (end_time: {end_time}, start: {start_time})")

        summary["status"] = "completed"

    except TenantNotFoundError as e:
        logger.warning(f"[{JOB_NAME}] {e}, skipping")
        summary["status"] = "not_found"

    except RateLimitError as e:
        logger.warning(f"[{JOB_NAME}] Giving up on tenant {tenant_id} for this run: {e}")
        summary["status"] = "rate_limited"

    except ConnectionTimeoutError as e:
        logger.warning(f"[{JOB_NAME}] {e}, cursor for tenant {tenant_id} left for the next tick")
        summary["status"] = "timeout"

    except Exception as e:
        logger.exception(f"[{JOB_NAME}] Sync failed for tenant {tenant_id}: {e}")
        summary["status"] = "failed"
        summary["error"] = str(e)

    finally:
        tenant_store.clear_in_flight(tenant_id)
        logger.info(f"[{JOB_NAME}] Finished tenant {tenant_id}, in_flight released")

    return summary


def _upsert_page(
    tickets: List[Dict[str, Any]],
    user_lookup: Dict[Any, Dict[str, Any]],
    tenant: Tenant,
    ticket_store,
    summary: Dict[str, Any],
) -> List[Tuple[int, Dict[str, Any]]]:
    """Upsert every ticket of the page; returns (position, ticket) for the ones that already existed."""
    total = len(tickets)
    updated_tickets: List[Tuple[int, Dict[str, Any]]] = []

    for raw_ticket in tickets:
        ticket = enrich_ticket_with_users(raw_ticket, user_lookup) if isinstance(raw_ticket, dict) else raw_ticket

        try:
            result = ticket_store.upsert_ticket(ticket, tenant.domain)
        except Exception as e:
            ticket_id = ticket.get("id") if isinstance(ticket, dict) else None
            logger.error(f"[{JOB_NAME}] Upsert failed for ticket {ticket_id} ({tenant.domain}): {e}")
            result = UPSERT_ERROR

        summary["processed"] += 1
        if result == UPSERT_CREATED:
            summary["created"] += 1
        elif result == UPSERT_UPDATED:
            summary["updated"] += 1
            updated_tickets.append((summary["processed"], ticket))
        else:
            summary["errors"] += 1

        if summary["processed"] % PROGRESS_LOG_EVERY == 0:
            logger.info(
                f"[{JOB_NAME}] Processed {summary['processed']}/{total} tickets "
                f"(created: {summary['created']}, updated: {summary['updated']}, errors: {summary['errors']})"
            )

    logger.info(
        f"[{JOB_NAME}] Completed processing: {summary['processed']} total "
        f"(created: {summary['created']}, updated: {summary['updated']}, errors: {summary['errors']})"
    )
    return updated_tickets


def schedule_detail_fetches(updated_tickets: List[Tuple[int, Dict[str, Any]]], tenant: Tenant, settings) -> int:
    """
    Queue comment/metrics fetches for updated tickets, staggered by position.

    A ticket at 1-based page position n waits (n * stagger) mod cycle_max
    seconds; its metrics fetch waits past the comments fetch. Solved and
    closed tickets go to the *_closed queues. A failure to queue one fetch
    is logged and does not affect the others.

    Returns:
        Number of detail tasks queued
    """
    if not (tenant.fetch_comments or tenant.fetch_metrics):
        return 0

    scheduled = 0
    cycle_max = settings.stagger_cycle_max_seconds

    for index, ticket in updated_tickets:
        ticket_id = ticket.get("id")
        if ticket_id is None:
            continue
        status = ticket.get("status")
        args = [ticket_id, tenant.id, tenant.domain]

        comment_delay = stagger_delay(index, settings.comment_job_stagger_seconds, cycle_max)

        if tenant.fetch_comments:
            try:
                fetch_ticket_comments.apply_async(
                    args=args,
                    countdown=comment_delay,
                    **detail_routing("comments", status),
                )
                scheduled += 1
            except Exception as e:
                logger.error(f"[{JOB_NAME}] Failed to queue comments fetch for ticket {ticket_id}: {e}")

        if tenant.fetch_metrics:
            delay = metrics_delay(index, comment_delay, settings.metrics_job_stagger_seconds, cycle_max)
            try:
                fetch_ticket_metrics.apply_async(
                    args=args,
                    countdown=delay,
                    **detail_routing("metrics", status),
                )
                scheduled += 1
            except Exception as e:
                logger.error(f"[{JOB_NAME}] Failed to queue metrics fetch for ticket {ticket_id}: {e}")

    if scheduled:
        logger.info(f"[{JOB_NAME}] Queued {scheduled} detail fetch(es) for {tenant.domain}")
    return scheduled
