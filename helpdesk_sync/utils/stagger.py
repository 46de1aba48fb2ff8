"""
Stagger helpers — delays and queue routing for per-ticket detail fetches.

A batch of N updated tickets spreads its follow-up calls over a bounded
cycle instead of bursting proportionally to the batch size.
Version: 1.0.0
"""
from typing import Any, Dict, Optional

from helpdesk_sync.core.constants.sync import (
    TERMINAL_TICKET_STATUSES,
    QUEUE_COMMENTS,
    QUEUE_COMMENTS_CLOSED,
    QUEUE_METRICS,
    QUEUE_METRICS_CLOSED,
    PRIORITY_DETAIL,
    PRIORITY_DETAIL_CLOSED,
)


def stagger_delay(index: int, stagger_seconds: float, cycle_max_seconds: float) -> float:
    """(index * stagger_seconds) mod cycle_max_seconds, rounded to milliseconds."""
    if cycle_max_seconds <= 0:
        return 0.0
    delay = round((index * stagger_seconds) % cycle_max_seconds, 3)
    # float error can leave 4.9999... which rounds up to the cycle length
    return 0.0 if delay >= cycle_max_seconds else delay


def metrics_delay(
    index: int,
    comment_delay: float,
    stagger_seconds: float,
    cycle_max_seconds: float,
) -> float:
    """Metrics run after the comments fetch for the same ticket."""
    return round(comment_delay + stagger_delay(index, stagger_seconds, cycle_max_seconds), 3)


def is_terminal_status(status: Optional[Any]) -> bool:
    return str(status or "").lower() in TERMINAL_TICKET_STATUSES


def detail_routing(kind: str, status: Optional[Any]) -> Dict[str, Any]:
    """
    Celery apply_async routing options for a detail fetch.

    Args:
        kind: "comments" or "metrics"
        status: Ticket status; solved/closed go to the *_closed queues

    Returns:
        Dict with queue and priority
    """
    closed = is_terminal_status(status)
    if kind == "comments":
        queue = QUEUE_COMMENTS_CLOSED if closed else QUEUE_COMMENTS
    elif kind == "metrics":
        queue = QUEUE_METRICS_CLOSED if closed else QUEUE_METRICS
    else:
        raise ValueError(f"Unknown detail kind: {kind}")

    return {
        "queue": queue,
        "priority": PRIORITY_DETAIL_CLOSED if closed else PRIORITY_DETAIL,
    }
