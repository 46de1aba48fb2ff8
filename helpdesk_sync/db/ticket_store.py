"""
Ticket Database Store.

Idempotent persistence for tickets pulled from the helpdesk API:
- Upsert keyed by (external_id, domain), reporting created vs updated
- Lookups for detail fetch tasks
- Shallow merges of comments/metrics into raw_data

Uses Supabase/PostgreSQL for persistence with the tickets table.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from postgrest.exceptions import APIError
from supabase import Client

from helpdesk_sync.core.config import settings
from helpdesk_sync.core.exceptions import ExternalAPIError, TicketNotFoundError, ValidationError
from helpdesk_sync.clients.supabase_client import SupabaseClient
from helpdesk_sync.utils.ticket_fields import extract_ticket_fields

logger = logging.getLogger("ticket_store")

UPSERT_CREATED = "created"
UPSERT_UPDATED = "updated"
UPSERT_ERROR = "error"


class TicketStore:
    """Database operations for synchronized tickets."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None, table: Optional[str] = None):
        self._supabase_client = supabase_client
        self._table = table or settings.tickets_table

    @property
    def client(self) -> Client:
        """Get or create Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = SupabaseClient(settings)
        return self._supabase_client.client

    def get_ticket(self, external_id: Any, domain: str) -> Optional[Dict[str, Any]]:
        """Fetch one stored ticket, or None."""
        result = self.client.table(self._table) \
            .select("*") \
            .eq("external_id", str(external_id)) \
            .eq("domain", domain) \
            .limit(1) \
            .execute()

        return result.data[0] if result.data else None

    def upsert_ticket(self, ticket: Dict[str, Any], domain: str) -> str:
        """
        Insert or update a ticket keyed by (external_id, domain).

        The stored raw_data is shallow-merged with the new payload so keys
        added by detail fetches (comments, metrics) survive later syncs.

        Args:
            ticket: Raw ticket payload (requester/assignee already enriched)
            domain: Tenant domain

        Returns:
            "created" or "updated"

        Raises:
            ValidationError: if the ticket has no id
        """
        external_id = ticket.get("id", ticket.get("external_id"))
        if external_id is None:
            raise ValidationError(f"Ticket for {domain} has no id")

        existing = self.client.table(self._table) \
            .select("id,raw_data") \
            .eq("external_id", str(external_id)) \
            .eq("domain", domain) \
            .limit(1) \
            .execute()

        existing_row = existing.data[0] if existing.data else None
        raw_data = dict((existing_row or {}).get("raw_data") or {})
        raw_data.update(ticket)

        row = {
            "external_id": str(external_id),
            "domain": domain,
            **extract_ticket_fields(ticket),
            "raw_data": raw_data,
            "synced_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            self.client.table(self._table) \
                .upsert(row, on_conflict="external_id,domain") \
                .execute()
        except APIError as e:
            logger.error("supabase error table=%s external_id=%s detail=%s", self._table, external_id, str(e))
            raise ExternalAPIError("supabase", f"ticket upsert failed: {e}")

        return UPSERT_UPDATED if existing_row else UPSERT_CREATED

    def merge_raw_data(
        self,
        ticket: Dict[str, Any],
        key: str,
        data: Any,
        columns: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Store data under raw_data[key], keeping every other raw_data key.

        raw_data is re-read right before the write, so keys stored by other
        detail tasks since the caller loaded the row are kept.

        Args:
            ticket: Stored ticket row (as returned by get_ticket)
            key: raw_data key to set ("comments", "metrics")
            data: Value to store
            columns: Extra flattened columns to write in the same update

        Raises:
            TicketNotFoundError: If the row no longer exists
        """
        try:
            current = self.get_ticket(ticket["external_id"], ticket["domain"])
            if current is None:
                raise TicketNotFoundError(
                    f"Ticket {ticket['external_id']} not found for domain {ticket['domain']}"
                )

            raw_data = dict(current.get("raw_data") or {})
            raw_data[key] = data

            payload = {"raw_data": raw_data}
            if columns:
                payload.update(columns)

            self.client.table(self._table) \
                .update(payload) \
                .eq("external_id", str(ticket["external_id"])) \
                .eq("domain", ticket["domain"]) \
                .execute()
        except APIError as e:
            logger.error("supabase error table=%s key=%s detail=%s", self._table, key, str(e))
            raise ExternalAPIError("supabase", f"raw_data merge failed: {e}")


# Singleton instance
_ticket_store: Optional[TicketStore] = None


def get_ticket_store() -> TicketStore:
    """Get or create the singleton TicketStore instance."""
    global _ticket_store

    if _ticket_store is None:
        _ticket_store = TicketStore()

    return _ticket_store


def reset_ticket_store() -> None:
    """Reset the singleton instance (for testing)."""
    global _ticket_store
    _ticket_store = None
