"""
Incremental Sync Helper Functions.

Provides utility functions for the incremental export page:
- Sideloaded user lookup (include=users)
- Requester/assignee enrichment of raw tickets
- Page body unpacking (tickets, users, end_time)

Tickets in an incremental export page only carry requester_id and
assignee_id; the users themselves arrive once per page in a separate
"users" array. Enrichment copies the matching user object onto the
ticket so field extraction can read names and emails.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from helpdesk_sync.utils.type_converters import to_int

logger = logging.getLogger("sync_helpers")


def build_user_lookup(users: Any) -> Dict[Any, Dict[str, Any]]:
    """
    Map user id -> user object for one page of sideloaded users.

    Non-list input yields an empty lookup; entries without an id are skipped.
    """
    if not isinstance(users, list):
        return {}

    lookup: Dict[Any, Dict[str, Any]] = {}
    for user in users:
        if not isinstance(user, dict):
            continue
        user_id = user.get("id")
        if user_id is not None:
            lookup[user_id] = user
    return lookup


def enrich_ticket_with_users(ticket: Dict[str, Any], user_lookup: Dict[Any, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Attach requester/assignee user objects to a copy of the ticket.

    A nested object already embedded in the ticket is left untouched; only
    bare ids are resolved through the lookup.
    """
    enriched = dict(ticket)

    for id_key, object_key in (("requester_id", "requester"), ("assignee_id", "assignee")):
        if isinstance(enriched.get(object_key), dict):
            continue
        user_id = enriched.get(id_key)
        if user_id is None:
            continue
        user = user_lookup.get(user_id)
        if user is not None:
            enriched[object_key] = user

    return enriched


def unpack_incremental_page(body: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]], Optional[int]]:
    """
    Split an incremental export body into (tickets, users, end_time).

    Missing or malformed arrays become empty lists; end_time is None when
    absent or not numeric.
    """
    tickets = body.get("tickets") or []
    users = body.get("users") or []

    if not isinstance(tickets, list):
        logger.warning(f"Unexpected tickets payload type: {type(tickets).__name__}")
        tickets = []
    if not isinstance(users, list):
        users = []

    return tickets, users, to_int(body.get("end_time"))
