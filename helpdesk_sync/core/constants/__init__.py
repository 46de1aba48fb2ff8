"""
Constants package — re-exports from domain-specific modules.

Usage:
    from helpdesk_sync.core.constants.sync import QUEUE_INCREMENTAL
    # or import everything:
    from helpdesk_sync.core.constants import sync, proxy
Version: 1.0.0
"""

from helpdesk_sync.core.constants import sync, proxy
from helpdesk_sync.core.constants.sync import (
    DEFAULT_RETRY_AFTER_SECONDS,
    BUDGET_WINDOW_SECONDS,
    BUDGET_RETENTION_SECONDS,
    TERMINAL_TICKET_STATUSES,
)
from helpdesk_sync.core.constants.proxy import (
    RESOURCE_CONFIGS,
    PROXY_METHODS,
)

__all__ = [
    "sync",
    "proxy",
    "DEFAULT_RETRY_AFTER_SECONDS",
    "BUDGET_WINDOW_SECONDS",
    "BUDGET_RETENTION_SECONDS",
    "TERMINAL_TICKET_STATUSES",
    "RESOURCE_CONFIGS",
    "PROXY_METHODS",
]
