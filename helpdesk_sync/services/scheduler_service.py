"""
Scheduler service — one tick of tenant selection and sync dispatch.

All methods are synchronous (tenant store and budget are synchronous).
Version: 1.0.0
"""
import logging
import time
from typing import Any, Callable, Dict

from helpdesk_sync.db.tenant_store import TenantStore
from helpdesk_sync.utils.request_budget import GlobalRequestBudget

logger = logging.getLogger(__name__)


class SchedulerService:
    def __init__(self, tenant_store: TenantStore, request_budget: GlobalRequestBudget) -> None:
        self._store = tenant_store
        self._budget = request_budget

    def run_tick(
        self,
        dispatch_callback: Callable[[int], Any],
        max_per_minute: int,
        ready_buffer_seconds: int,
        stuck_threshold_minutes: int,
    ) -> Dict[str, Any]:
        """
        Reclaim stuck tenants, then dispatch one sync per eligible tenant.

        Args:
            dispatch_callback: callable(tenant_id) that queues a sync task
            max_per_minute: Incremental export budget
            ready_buffer_seconds: Minimum cursor age before a tenant is polled again
            stuck_threshold_minutes: Age of an in_flight flag before it is reclaimed

        Returns:
            Dict with status and the reclaimed, eligible, dispatched,
            already_claimed and dispatch_failed counts
        """
        reclaimed = self._store.reset_stuck_in_flight(stuck_threshold_minutes=stuck_threshold_minutes)
        if reclaimed > 0:
            logger.info(f"[Scheduler] Reset {reclaimed} stuck in-flight flag(s)")

        self._budget.prune_old()

        if self._budget.at_cap(max_per_minute):
            logger.info("[Scheduler] Incremental export cap reached (last minute), skipping this run")
            return {
                "status": "skipped",
                "reason": "at_cap",
                "reclaimed": reclaimed,
                "eligible": 0,
                "dispatched": 0,
                "already_claimed": 0,
                "dispatch_failed": 0,
            }

        now = int(time.time())
        tenants = self._store.get_ready_tenants(now, ready_buffer_seconds)

        if not tenants:
            logger.info("[Scheduler] No ready tenants found")
            return {
                "status": "completed",
                "reclaimed": reclaimed,
                "eligible": 0,
                "dispatched": 0,
                "already_claimed": 0,
                "dispatch_failed": 0,
            }

        logger.info(f"[Scheduler] Found {len(tenants)} ready tenant(s)")

        dispatched = 0
        already_claimed = 0
        dispatch_failed = 0

        for tenant in tenants:
            if self._budget.at_cap(max_per_minute):
                logger.info("[Scheduler] Cap reached mid-tick, remaining tenants wait for the next tick")
                break

            if not self._store.mark_in_flight(tenant.id):
                already_claimed += 1
                logger.info(f"[Scheduler] Tenant {tenant.domain} already claimed by another tick, skipping")
                continue

            member = self._budget.record_request()

            logger.info(
                f"[Scheduler] Queuing sync for tenant {tenant.domain} "
                f"(ID: {tenant.id}, cursor: {tenant.cursor})"
            )
            try:
                dispatch_callback(tenant.id)
            except Exception as e:
                # Nothing was queued: release the claim and give the budget entry back
                self._store.clear_in_flight(tenant.id)
                self._budget.discard(member)
                dispatch_failed += 1
                logger.error(f"[Scheduler] Failed to queue sync for tenant {tenant.domain}: {type(e).__name__}: {e}")
                continue
            dispatched += 1

        logger.info(
            f"[Scheduler] Queued {dispatched} job(s), reclaimed {reclaimed}, dispatch failures {dispatch_failed}"
        )

        return {
            "status": "completed",
            "reclaimed": reclaimed,
            "eligible": len(tenants),
            "dispatched": dispatched,
            "already_claimed": already_claimed,
            "dispatch_failed": dispatch_failed,
        }
