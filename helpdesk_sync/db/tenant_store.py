"""
Tenant Database Store.

Provides database operations for the tenant scheduler:
- Tenant lookups by id and domain
- Eligibility query for the scheduler tick
- Stuck in-flight reclamation
- Narrow single-column updates for in_flight, backoff_until and cursor

Every write here is a targeted update of the columns it owns. None of them
round-trip the full tenant record, so an unrelated invalid field on the row
can never block persisting backoff or in-flight state.

Uses Supabase/PostgreSQL for persistence with the tenants table.
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import List, Optional

from supabase import Client

from helpdesk_sync.core.config import settings
from helpdesk_sync.core.exceptions import TenantNotFoundError
from helpdesk_sync.clients.supabase_client import SupabaseClient
from helpdesk_sync.schemas.tenant import Tenant

logger = logging.getLogger("tenant_store")

# PostgREST or-filter matching in_flight false or NULL
NOT_IN_FLIGHT = "in_flight.is.null,in_flight.is.false"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TenantStore:
    """Database operations for tenant scheduling state."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None, table: Optional[str] = None):
        """
        Initialize the tenant store.

        Args:
            supabase_client: Optional SupabaseClient instance (will create default if not provided)
            table: Table name override (defaults to settings.tenants_table)
        """
        self._supabase_client = supabase_client
        self._table = table or settings.tenants_table

    @property
    def client(self) -> Client:
        """Get or create Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = SupabaseClient(settings)
        return self._supabase_client.client

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_tenant(self, tenant_id: int) -> Tenant:
        """
        Load a tenant by id.

        Raises:
            TenantNotFoundError: if no row exists
        """
        result = self.client.table(self._table) \
            .select("*") \
            .eq("id", tenant_id) \
            .limit(1) \
            .execute()

        if not result.data:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")
        return Tenant.from_row(result.data[0])

    def reload(self, tenant: Tenant) -> Tenant:
        """Re-read a tenant; another worker may have changed it."""
        return self.get_tenant(tenant.id)

    def get_tenant_by_domain(self, domain: str, active_only: bool = False) -> Optional[Tenant]:
        """Find a tenant by its unique domain, or None."""
        query = self.client.table(self._table) \
            .select("*") \
            .eq("domain", domain)
        if active_only:
            query = query.eq("active", True)

        result = query.limit(1).execute()
        if not result.data:
            return None
        return Tenant.from_row(result.data[0])

    def get_ready_tenants(self, now: int, buffer_seconds: int) -> List[Tenant]:
        """
        Tenants eligible for an incremental sync.

        active AND NOT in_flight AND backoff_until < now AND cursor <= now - buffer,
        ordered by cursor descending. NULL in_flight, backoff_until and cursor
        read as false, 0 and 0, the same defaults Tenant.from_row applies.

        Args:
            now: Current unix time
            buffer_seconds: Minimum age of the cursor before polling again

        Returns:
            List of Tenant records
        """
        result = self.client.table(self._table) \
            .select("*") \
            .eq("active", True) \
            .or_(NOT_IN_FLIGHT) \
            .or_(f"backoff_until.is.null,backoff_until.lt.{int(now)}") \
            .or_(f"cursor.is.null,cursor.lte.{int(now - buffer_seconds)}") \
            .order("cursor", desc=True) \
            .execute()

        return [Tenant.from_row(row) for row in (result.data or [])]

    # ------------------------------------------------------------------
    # In-flight flag
    # ------------------------------------------------------------------

    def reset_stuck_in_flight(self, stuck_threshold_minutes: int = 5) -> int:
        """
        Clear in_flight on active tenants whose sync task appears lost.

        Args:
            stuck_threshold_minutes: Minutes since updated_at before a flag is stale

        Returns:
            Number of tenants reclaimed
        """
        try:
            threshold = datetime.now(timezone.utc) - timedelta(minutes=stuck_threshold_minutes)

            result = self.client.table(self._table) \
                .update({
                    "in_flight": False,
                    "updated_at": _utc_now_iso(),
                }) \
                .eq("in_flight", True) \
                .eq("active", True) \
                .lt("updated_at", threshold.isoformat()) \
                .execute()

            count = len(result.data) if result.data else 0
            if count > 0:
                logger.info(f"Reclaimed {count} stuck in-flight tenant(s)")
            return count

        except Exception as e:
            logger.error(f"Error resetting stuck in-flight tenants: {e}")
            return 0

    def mark_in_flight(self, tenant_id: int) -> bool:
        """
        Compare-and-set in_flight from false to true.

        Returns:
            True if this caller flipped the flag, False if it was already set
            (another tick claimed the tenant first)
        """
        result = self.client.table(self._table) \
            .update({
                "in_flight": True,
                "updated_at": _utc_now_iso(),
            }) \
            .eq("id", tenant_id) \
            .or_(NOT_IN_FLIGHT) \
            .execute()

        return bool(result.data)

    def clear_in_flight(self, tenant_id: int) -> bool:
        """Set in_flight back to false without touching any other scheduling column."""
        try:
            self.client.table(self._table) \
                .update({
                    "in_flight": False,
                    "updated_at": _utc_now_iso(),
                }) \
                .eq("id", tenant_id) \
                .execute()
            return True
        except Exception as e:
            logger.error(f"Error clearing in_flight for tenant {tenant_id}: {e}")
            return False

    # ------------------------------------------------------------------
    # Backoff / cursor
    # ------------------------------------------------------------------

    def set_backoff_until(self, tenant_id: int, backoff_until: int) -> None:
        """Persist backoff_until as a single-column update."""
        self.client.table(self._table) \
            .update({"backoff_until": int(backoff_until)}) \
            .eq("id", tenant_id) \
            .execute()
        logger.debug(f"Tenant {tenant_id} backoff_until set to {backoff_until}")

    def advance_cursor(self, tenant_id: int, new_cursor: int) -> bool:
        """
        Move the cursor forward.

        The update is conditional on the stored cursor being smaller (or
        NULL), so a stale writer can never move it backward.

        Returns:
            True if the stored cursor changed
        """
        if new_cursor is None or new_cursor <= 0:
            return False

        result = self.client.table(self._table) \
            .update({"cursor": int(new_cursor)}) \
            .eq("id", tenant_id) \
            .or_(f"cursor.is.null,cursor.lt.{int(new_cursor)}") \
            .execute()

        return bool(result.data)


# Singleton instance
_tenant_store: Optional[TenantStore] = None


def get_tenant_store() -> TenantStore:
    """
    Get or create the singleton TenantStore instance.

    Returns:
        TenantStore instance
    """
    global _tenant_store

    if _tenant_store is None:
        _tenant_store = TenantStore()

    return _tenant_store


def reset_tenant_store() -> None:
    """Reset the singleton instance (for testing)."""
    global _tenant_store
    _tenant_store = None
