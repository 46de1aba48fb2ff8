"""
Ticket field extraction — flattens raw helpdesk payloads into table columns.

The full payload is always kept under raw_data; the columns here are the
ones queried directly.
Version: 1.0.0
"""
from typing import Any, Dict, Optional

from helpdesk_sync.utils.type_converters import to_int

# Top-level ticket keys copied as-is (source key -> column)
TICKET_FIELD_MAP: Dict[str, str] = {
    "subject": "subject",
    "status": "status",
    "priority": "priority",
    "type": "ticket_type",
    "url": "url",
    "group_id": "group_id",
    "organization_id": "organization_id",
    "created_at": "created_at",
    "updated_at": "updated_at",
    "generated_timestamp": "generated_timestamp",
    "due_at": "due_date",
}

REQUESTER_FIELD_MAP: Dict[str, str] = {
    "name": "req_name",
    "email": "req_email",
    "id": "req_id",
    "external_id": "req_external_id",
}

ASSIGNEE_FIELD_MAP: Dict[str, str] = {
    "name": "assignee_name",
    "id": "assignee_id",
    "external_id": "assignee_external_id",
}

# Nested {calendar, business} minute metrics (source key -> column)
MINUTE_METRICS_MAP: Dict[str, str] = {
    "reply_time_in_minutes": "first_reply_time_in_minutes",
    "first_resolution_time_in_minutes": "first_resolution_time_in_minutes",
    "full_resolution_time_in_minutes": "full_resolution_time_in_minutes",
    "agent_wait_time_in_minutes": "agent_wait_time_in_minutes",
    "requester_wait_time_in_minutes": "requester_wait_time_in_minutes",
    "on_hold_time_in_minutes": "on_hold_time_in_minutes",
}

METRIC_TIMESTAMP_FIELDS = ("assigned_at", "solved_at", "initially_assigned_at")

# Stored as text columns
METRIC_COUNT_FIELDS = ("reopens", "replies", "assignee_stations", "group_stations")


def extract_hash_fields(source: Any, field_mappings: Dict[str, str]) -> Dict[str, Any]:
    """
    Copy mapped keys out of a dict, skipping missing/None values.

    external_id values are always stored as strings.
    """
    if not isinstance(source, dict):
        return {}

    extracted = {}
    for source_key, target in field_mappings.items():
        value = source.get(source_key)
        if value is None:
            continue
        if "external_id" in source_key:
            value = str(value)
        extracted[target] = value
    return extracted


def extract_ticket_fields(ticket: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten a raw ticket (already enriched with requester/assignee) to columns.

    Args:
        ticket: Ticket payload from the incremental export

    Returns:
        Dict of column -> value, without external_id/domain/raw_data
    """
    fields = extract_hash_fields(ticket, TICKET_FIELD_MAP)

    requester = ticket.get("requester")
    if isinstance(requester, dict):
        fields.update(extract_hash_fields(requester, REQUESTER_FIELD_MAP))
    elif ticket.get("requester_id") is not None:
        fields["req_id"] = ticket["requester_id"]

    assignee = ticket.get("assignee")
    if isinstance(assignee, dict):
        fields.update(extract_hash_fields(assignee, ASSIGNEE_FIELD_MAP))
    elif ticket.get("assignee_id") is not None:
        fields["assignee_id"] = ticket["assignee_id"]

    tags = ticket.get("tags")
    if isinstance(tags, list):
        fields["current_tags"] = ",".join(str(t) for t in tags)

    via = ticket.get("via")
    if isinstance(via, dict) and via.get("channel"):
        fields["via"] = str(via["channel"])
    elif isinstance(via, str):
        fields["via"] = via

    satisfaction = ticket.get("satisfaction_rating")
    if isinstance(satisfaction, dict) and satisfaction.get("score") is not None:
        fields["satisfaction_score"] = str(satisfaction["score"])

    return fields


def _minute_value(metric: Any, kind: str) -> Optional[int]:
    if isinstance(metric, dict):
        return to_int(metric.get(kind))
    return None


def extract_metrics_fields(metrics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten a ticket metrics payload to columns.

    Calendar minutes go to the main column and business minutes to the
    *_within_business_hours column. Count fields are stored as strings.
    """
    fields: Dict[str, Any] = {}
    if not isinstance(metrics, dict):
        return fields

    for source_key, column in MINUTE_METRICS_MAP.items():
        metric = metrics.get(source_key)
        calendar = _minute_value(metric, "calendar")
        business = _minute_value(metric, "business")
        if calendar is not None:
            fields[column] = calendar
        if business is not None:
            fields[f"{column}_within_business_hours"] = business

    for key in METRIC_TIMESTAMP_FIELDS:
        if metrics.get(key):
            fields[key] = metrics[key]

    for key in METRIC_COUNT_FIELDS:
        if metrics.get(key) is not None:
            fields[key] = str(metrics[key])

    return fields
