"""
Sync constants — queue names, ticket statuses, rate-limit defaults.
Version: 1.0.0
"""

# Default wait when a 429 carries no usable Retry-After header
DEFAULT_RETRY_AFTER_SECONDS: int = 10

# Extra second added after the rate-limit reset window before resuming
RATE_LIMIT_RESET_OFFSET: int = 1

# Sliding window for the incremental export budget, and how long entries are kept
BUDGET_WINDOW_SECONDS: int = 60
BUDGET_RETENTION_SECONDS: int = 2 * BUDGET_WINDOW_SECONDS

# Ticket statuses whose detail fetches go to the low-priority queues
TERMINAL_TICKET_STATUSES: frozenset = frozenset({"solved", "closed"})

# Queue names
QUEUE_DEFAULT: str = "default"
QUEUE_INCREMENTAL: str = "incremental"
QUEUE_COMMENTS: str = "comments"
QUEUE_COMMENTS_CLOSED: str = "comments_closed"
QUEUE_METRICS: str = "metrics"
QUEUE_METRICS_CLOSED: str = "metrics_closed"
QUEUE_PROXY: str = "proxy"

# Task priorities (lower runs first)
PRIORITY_INCREMENTAL: int = 0
PRIORITY_DETAIL: int = 5
PRIORITY_DETAIL_CLOSED: int = 9

# Log a progress line every N tickets
PROGRESS_LOG_EVERY: int = 10

# Incremental export endpoint
INCREMENTAL_TICKETS_PATH: str = "/api/v2/incremental/tickets.json"
