"""
Ticket detail tasks — best-effort enrichment of stored tickets.

Tasks:
- fetch_ticket_comments: Stores the ticket's comments under raw_data["comments"]
- fetch_ticket_metrics: Stores ticket metrics under raw_data["metrics"] and
  flattens them into metric columns

Both are queued by the incremental sync for tickets that already existed.
Any failure (missing ticket, exhausted rate-limit retries, API error) is
logged and the task still finishes successfully.
Version: 1.0.0
"""
import logging
import time
from typing import Any, Dict, Optional

from helpdesk_sync.celery_app.celery_config import celery_app
from helpdesk_sync.celery_app.tasks.base import (
    BaseTask,
    run_async,
    get_settings,
    get_tenant_store,
    get_ticket_store,
    get_helpdesk_client,
)
from helpdesk_sync.clients.helpdesk_client import ensure_success
from helpdesk_sync.core.exceptions import RateLimitError, TicketNotFoundError
from helpdesk_sync.utils.rate_limit import (
    call_with_rate_limit_retries,
    parse_response_body,
    wait_if_backed_off,
)
from helpdesk_sync.utils.ticket_fields import extract_metrics_fields

logger = logging.getLogger(__name__)


class TicketDetailFetcher:
    """
    Fetch one sub-resource of a ticket and persist it.

    Subclasses set resource_name, response_key and delay_setting, and
    implement api_path and persist.
    """

    job_name = "TicketDetailFetcher"
    resource_name = ""
    response_key = ""
    # Settings attribute holding the pre-call delay in seconds
    delay_setting = ""

    def __init__(self, settings=None, tenant_store=None, ticket_store=None, client_factory=None):
        self.settings = settings or get_settings()
        self.tenant_store = tenant_store or get_tenant_store()
        self.ticket_store = ticket_store or get_ticket_store()
        self.client_factory = client_factory or get_helpdesk_client

    def api_path(self, ticket_id: Any) -> str:
        raise NotImplementedError

    def empty_value(self) -> Any:
        return {}

    def persist(self, ticket_row: Dict[str, Any], data: Any) -> None:
        raise NotImplementedError

    def log_received(self, ticket_id: Any, data: Any) -> None:
        count = len(data) if isinstance(data, (list, dict)) else 1
        logger.info(f"[{self.job_name}] Received {count} {self.resource_name} item(s) for ticket {ticket_id}")

    def apply_throttle(self, ticket_id: Any, domain: str) -> float:
        """Fixed pre-call delay that desynchronizes concurrent detail fetches."""
        delay = float(getattr(self.settings, self.delay_setting, 0) or 0)
        if delay <= 0:
            return 0
        logger.info(
            f"[{self.job_name}] Applying throttle delay: {delay}s before API call "
            f"for ticket {ticket_id} (tenant: {domain})"
        )
        time.sleep(delay)
        return delay

    def run(self, ticket_id: Any, tenant_id: int, domain: str) -> Dict[str, Any]:
        """
        Fetch and store the sub-resource for one ticket.

        Returns:
            Dict with status: stored, empty, not_found, rate_limited or failed
        """
        try:
            ticket_row = self.ticket_store.get_ticket(ticket_id, domain)
            if not ticket_row:
                raise TicketNotFoundError(f"Ticket {ticket_id} not found for domain {domain}")

            tenant = self.tenant_store.get_tenant(tenant_id)
            tenant = wait_if_backed_off(tenant, self.tenant_store, self.job_name)
            self.apply_throttle(ticket_id, tenant.domain)

            client = self.client_factory(tenant)
            path = self.api_path(ticket_id)
            logger.info(f"[{self.job_name}] Fetching {self.resource_name} for ticket {ticket_id} (tenant: {tenant.domain})")

            response = call_with_rate_limit_retries(
                lambda: run_async(client.get(path)),
                tenant,
                self.tenant_store,
                max_retries=self.settings.sync_max_retries,
                headroom_percent=self.settings.rate_limit_headroom_percent,
                resource_id=ticket_id,
                job_name=self.job_name,
            )
            ensure_success(response, f"{self.resource_name} for ticket {ticket_id}")

            data = parse_response_body(response).get(self.response_key) or self.empty_value()
            if not data:
                logger.info(f"[{self.job_name}] No {self.resource_name} found for ticket {ticket_id} (tenant: {domain})")
                return {"status": "empty", "ticket_id": ticket_id}

            self.log_received(ticket_id, data)
            self.persist(ticket_row, data)
            logger.info(f"[{self.job_name}] Stored {self.resource_name} for ticket {ticket_id} (tenant: {domain})")
            return {"status": "stored", "ticket_id": ticket_id}

        except TicketNotFoundError:
            logger.warning(f"[{self.job_name}] Ticket {ticket_id} not found for domain {domain}, skipping")
            return {"status": "not_found", "ticket_id": ticket_id}

        except RateLimitError as e:
            logger.warning(
                f"[{self.job_name}] Max retries reached for ticket {ticket_id} (tenant: {domain}), "
                f"skipping {self.resource_name}: {e}"
            )
            return {"status": "rate_limited", "ticket_id": ticket_id}

        except Exception as e:
            logger.warning(
                f"[{self.job_name}] Error fetching {self.resource_name} for ticket {ticket_id} "
                f"(tenant: {domain}): {type(e).__name__}: {e}"
            )
            return {"status": "failed", "ticket_id": ticket_id, "error": str(e)}


class CommentsFetcher(TicketDetailFetcher):
    job_name = "FetchTicketComments"
    resource_name = "comments"
    response_key = "comments"
    delay_setting = "comment_job_delay_seconds"

    def api_path(self, ticket_id: Any) -> str:
        return f"/api/v2/tickets/{ticket_id}/comments.json"

    def empty_value(self) -> Any:
        return []

    def log_received(self, ticket_id: Any, data: Any) -> None:
        logger.info(f"[{self.job_name}] Retrieved {len(data)} comment(s) for ticket {ticket_id}")

    def persist(self, ticket_row: Dict[str, Any], data: Any) -> None:
        self.ticket_store.merge_raw_data(ticket_row, "comments", data)


class MetricsFetcher(TicketDetailFetcher):
    job_name = "FetchTicketMetrics"
    resource_name = "metrics"
    response_key = "ticket_metric"
    delay_setting = "metrics_job_delay_seconds"

    def api_path(self, ticket_id: Any) -> str:
        return f"/api/v2/tickets/{ticket_id}/metrics.json"

    def log_received(self, ticket_id: Any, data: Any) -> None:
        keys = ", ".join(data.keys()) if isinstance(data, dict) else ""
        logger.info(f"[{self.job_name}] Received metrics data for ticket {ticket_id}: {keys}")

    def persist(self, ticket_row: Dict[str, Any], data: Any) -> None:
        columns = extract_metrics_fields(data)
        self.ticket_store.merge_raw_data(ticket_row, "metrics", data, columns=columns)

        summary = _metrics_summary(columns)
        if summary:
            logger.info(f"[{self.job_name}] Extracted metrics for ticket {ticket_row.get('external_id')}: {summary}")


def _metrics_summary(columns: Dict[str, Any]) -> Optional[str]:
    parts = []
    for key, label in (
        ("first_reply_time_in_minutes", "first_reply_time"),
        ("first_resolution_time_in_minutes", "first_resolution_time"),
        ("full_resolution_time_in_minutes", "full_resolution_time"),
    ):
        if columns.get(key) is not None:
            parts.append(f"{label}: {columns[key]}min")
    for key in ("reopens", "replies"):
        if columns.get(key) is not None:
            parts.append(f"{key}: {columns[key]}")
    return ", ".join(parts) or None


# ============================================
# Tasks
# ============================================
@celery_app.task(
    bind=True,
    base=BaseTask,
    name="tasks.ticket_details.fetch_ticket_comments",
    max_retries=0
)
def fetch_ticket_comments(self, ticket_id, tenant_id: int, domain: str):
    """Fetch and store comments for one ticket."""
    return CommentsFetcher().run(ticket_id, tenant_id, domain)


@celery_app.task(
    bind=True,
    base=BaseTask,
    name="tasks.ticket_details.fetch_ticket_metrics",
    max_retries=0
)
def fetch_ticket_metrics(self, ticket_id, tenant_id: int, domain: str):
    """Fetch and store metrics for one ticket."""
    return MetricsFetcher().run(ticket_id, tenant_id, domain)
