"""
Custom exception hierarchy for Helpdesk Sync.

Exceptions are categorized as:
- RetryableError: Transient errors (rate limits, network, 5xx) that are
  handled inside a task invocation and never abort the pipeline
- NonRetryableError: Definitive errors that are surfaced to synchronous
  callers and only logged for asynchronous ones
"""


class HelpdeskSyncException(Exception):
    """Base exception for Helpdesk Sync."""
    pass


# ============================================
# RETRYABLE ERRORS
# ============================================
class RetryableError(HelpdeskSyncException):
    """
    Base class for transient errors.

    Use this where waiting and trying again might succeed:
    - Network timeouts
    - Rate limits (with backoff)
    - Temporary service unavailability
    """
    pass


class ExternalAPIError(RetryableError):
    """
    Error from the helpdesk API (5xx or unexpected status).

    Typically transient - the tenant cursor is left alone so the next
    eligible tick fetches the same window again.
    """
    def __init__(self, service: str, message: str, status_code: int = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service} API error: {message}")


class RateLimitError(RetryableError):
    """
    Rate limit exceeded (429).

    Carries the response so Retry-After can be read from it.
    """
    def __init__(self, service: str, retry_after: int = 10, response=None):
        self.service = service
        self.retry_after = retry_after
        self.response = response
        super().__init__(f"{service} rate limited (429). Retry after {retry_after}s")


class ConnectionTimeoutError(RetryableError):
    """Connection or timeout error - typically transient."""
    pass


# ============================================
# NON-RETRYABLE ERRORS
# ============================================
class NonRetryableError(HelpdeskSyncException):
    """
    Base class for errors that should NOT be retried.

    - Validation failures
    - Unknown tenants or tickets
    - Missing configuration
    """
    pass


class ValidationError(NonRetryableError):
    """Invalid input data - retrying won't help."""
    pass


class ValidationConflictError(NonRetryableError):
    """
    The helpdesk API rejected the request as invalid (422).

    Example: creating a user whose email is already taken.
    """
    def __init__(self, message: str, status_code: int = 422, details=None):
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class TenantNotFoundError(NonRetryableError):
    """Unknown tenant domain/id, or tenant inactive for a proxy call."""
    pass


class TicketNotFoundError(NonRetryableError):
    """Ticket not stored for this tenant."""
    pass


class ConfigurationError(NonRetryableError):
    """
    Required configuration is missing.

    Needs a config fix, never degrades silently.
    """
    pass
