"""
Helpdesk rate-limit handling shared by every outbound call.

Two independent signals are honoured:

- Account-level token bucket, reported on successful responses through
  X-Rate-Limit / X-Rate-Limit-Remaining / ratelimit-reset. When remaining
  quota drops under the configured headroom the task sleeps until reset
  (throttle_if_low).
- 429 responses carrying Retry-After. The tenant's backoff_until is
  persisted so every other task for that tenant waits too
  (on_rate_limited), and the call is retried a bounded number of times
  (call_with_rate_limit_retries).

Headers may arrive on an httpx response, on an env-style dict
({"response_headers": {...}} or {"headers": {...}}), or on an exception
carrying the response. Header extraction never raises: anything malformed
is treated as "no rate-limit signal".

Usage:
    from helpdesk_sync.utils.rate_limit import call_with_rate_limit_retries

    response = call_with_rate_limit_retries(send, tenant, tenant_store, max_retries=3)
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional

import httpx

from helpdesk_sync.core.constants.sync import DEFAULT_RETRY_AFTER_SECONDS, RATE_LIMIT_RESET_OFFSET
from helpdesk_sync.core.exceptions import ExternalAPIError, RateLimitError
from helpdesk_sync.schemas.tenant import Tenant
from helpdesk_sync.utils.type_converters import to_int

logger = logging.getLogger("rate_limit")

LIMIT_HEADERS = ("x-rate-limit", "ratelimit-limit")
REMAINING_HEADERS = ("x-rate-limit-remaining", "ratelimit-remaining")
RESET_HEADERS = ("ratelimit-reset",)
RETRY_AFTER_HEADERS = ("retry-after",)


@dataclass
class RateLimitInfo:
    limit: int
    remaining: int
    reset: Optional[int] = None

    @property
    def percentage(self) -> float:
        return round(self.remaining / self.limit * 100, 1)


# ============================================
# Header shapes
# ============================================
def _headers_attr(source: Any) -> Optional[Mapping]:
    """Headers exposed directly on a response object."""
    if isinstance(source, (dict, BaseException)):
        return None
    headers = getattr(source, "headers", None)
    return headers if headers else None


def _env_headers(source: Any) -> Optional[Mapping]:
    """Headers nested in an env-style dict."""
    if not isinstance(source, dict):
        return None
    return source.get("response_headers") or source.get("headers") or None


def _error_headers(source: Any) -> Optional[Mapping]:
    """Headers on the response attached to an exception."""
    if not isinstance(source, BaseException):
        return None
    response = response_from_error(source)
    if response is None:
        return None
    return _headers_attr(response) or _env_headers(response)


# Tried in order; the first shape that yields headers wins.
HEADER_SHAPES = (_headers_attr, _env_headers, _error_headers)


def response_from_error(error: BaseException) -> Any:
    """The response carried by an exception, if any."""
    try:
        return getattr(error, "response", None)
    except Exception:
        # httpx raises RuntimeError when .response was never set
        return None


def extract_headers(source: Any) -> Optional[Mapping]:
    if source is None:
        return None
    for shape in HEADER_SHAPES:
        try:
            headers = shape(source)
        except Exception:
            headers = None
        if headers:
            return headers
    return None


def _normalize_key(key: Any) -> str:
    return str(key).strip().lower().replace("_", "-")


def extract_header_value(headers: Optional[Mapping], possible_keys: Iterable[str]) -> Optional[str]:
    """Case-insensitive lookup tolerant of header_name / Header-Name spellings."""
    if not headers:
        return None
    try:
        normalized = {_normalize_key(k): v for k, v in headers.items()}
    except Exception:
        return None
    for key in possible_keys:
        value = normalized.get(_normalize_key(key))
        if value is not None and value != "":
            return value
    return None


# ============================================
# Extraction
# ============================================
def extract_rate_limit_info(response: Any, job_name: str = "rate_limit") -> Optional[RateLimitInfo]:
    """
    Read limit / remaining / reset from whichever header shape is present.

    Returns None when limit or remaining cannot be found. Never raises.
    """
    headers = extract_headers(response)
    if not headers:
        return None

    limit = to_int(extract_header_value(headers, LIMIT_HEADERS))
    remaining = to_int(extract_header_value(headers, REMAINING_HEADERS))
    reset = to_int(extract_header_value(headers, RESET_HEADERS))

    if limit is None or remaining is None or limit <= 0:
        return None

    info = RateLimitInfo(limit=limit, remaining=remaining, reset=reset)

    message = f"[{job_name}] Rate limit: {remaining}/{limit} remaining ({info.percentage}%)"
    if reset is not None:
        message += f" (resets in {reset}s)"

    if info.percentage < 10:
        logger.warning(message)
    elif info.percentage < 25:
        logger.info(message)
    else:
        logger.debug(message)

    return info


def extract_retry_after(response_or_error: Any, default_seconds: int = DEFAULT_RETRY_AFTER_SECONDS) -> int:
    """Retry-After in seconds, or default_seconds when absent or non-positive."""
    retry_after = to_int(extract_header_value(extract_headers(response_or_error), RETRY_AFTER_HEADERS))
    if retry_after is None and isinstance(response_or_error, RateLimitError):
        retry_after = response_or_error.retry_after
    if retry_after is None or retry_after <= 0:
        logger.warning(f"Retry-After header not found, defaulting to {default_seconds} seconds")
        return default_seconds
    return retry_after


def response_status(response_or_error: Any) -> Optional[int]:
    """HTTP status from a response, env dict, or error carrying a response."""
    if response_or_error is None:
        return None
    if isinstance(response_or_error, dict):
        return to_int(response_or_error.get("status"))
    if isinstance(response_or_error, BaseException):
        status = to_int(getattr(response_or_error, "status_code", None))
        if status is not None:
            return status
        response = response_from_error(response_or_error)
        return response_status(response) if response is not None else None
    return to_int(getattr(response_or_error, "status_code", None))


def is_rate_limited(response_or_error: Any) -> bool:
    """True for 429 responses and for errors that represent a 429."""
    if isinstance(response_or_error, RateLimitError):
        return True
    if response_status(response_or_error) == 429:
        return True
    if isinstance(response_or_error, BaseException):
        return "429" in str(response_or_error)
    return False


def parse_response_body(response: Any) -> dict:
    """
    Decode a response body that may already be structured.

    Raises:
        ExternalAPIError: if the body is a string that is not JSON
    """
    if response is None:
        return {}
    if isinstance(response, dict):
        return response
    body = response
    if isinstance(response, httpx.Response):
        body = response.text
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        if not body.strip():
            return {}
        try:
            body = json.loads(body)
        except ValueError as e:
            raise ExternalAPIError("helpdesk", f"invalid JSON body: {e}")
    return body if isinstance(body, dict) else {}


# ============================================
# Waiting
# ============================================
def throttle_if_low(response: Any, headroom_percent: float, job_name: str = "rate_limit") -> float:
    """
    Back off until reset when remaining quota is under the headroom.

    Returns:
        Seconds slept (0 when no throttle was needed)
    """
    info = extract_rate_limit_info(response, job_name)
    if info is None:
        return 0
    if info.percentage >= headroom_percent:
        return 0
    if not info.reset or info.reset <= 0:
        return 0

    wait_seconds = info.reset + RATE_LIMIT_RESET_OFFSET
    logger.info(
        f"[{job_name}] Rate limit low ({info.percentage}% remaining), "
        f"backing off {wait_seconds}s until reset"
    )
    time.sleep(wait_seconds)
    return wait_seconds


def wait_if_backed_off(tenant: Tenant, tenant_store, job_name: str = "rate_limit") -> Tenant:
    """
    Sleep out an active backoff window, then re-read the tenant.

    Returns:
        The (possibly refreshed) tenant
    """
    now = int(time.time())
    if not tenant.backoff_until or tenant.backoff_until <= now:
        return tenant

    wait_seconds = tenant.backoff_until - now
    logger.info(
        f"[{job_name}] Tenant {tenant.domain} rate-limited, waiting {wait_seconds}s "
        f"(until {tenant.backoff_until})"
    )
    time.sleep(wait_seconds)
    return tenant_store.reload(tenant)


def on_rate_limited(
    response_or_error: Any,
    tenant: Tenant,
    retry_count: int,
    max_retries: int,
    tenant_store,
    resource_id: Any = None,
    job_name: str = "rate_limit",
) -> int:
    """
    Handle a 429: persist backoff_until for the tenant, then sleep it out.

    wait = Retry-After + retry_count (at least 1 second). The caller decides
    whether to retry.

    Returns:
        Seconds waited
    """
    retry_after = extract_retry_after(response_or_error)
    wait_seconds = max(retry_after + retry_count, 1)

    backoff_until = int(time.time()) + wait_seconds
    tenant_store.set_backoff_until(tenant.id, backoff_until)
    tenant.backoff_until = backoff_until

    logger.warning(
        f"[{job_name}] Rate limit (429) for tenant {tenant.domain} resource {resource_id}, "
        f"waiting {wait_seconds}s (Retry-After: {retry_after}s, retry {retry_count + 1}/{max_retries})"
    )
    time.sleep(wait_seconds)
    return wait_seconds


def call_with_rate_limit_retries(
    send: Callable[[], Any],
    tenant: Tenant,
    tenant_store,
    max_retries: int,
    headroom_percent: float,
    resource_id: Any = None,
    job_name: str = "rate_limit",
) -> Any:
    """
    Issue a call, retrying in place on 429 up to max_retries times.

    Every response passes through throttle_if_low. Errors that are not rate
    limits propagate unchanged.

    Returns:
        The first non-429 response

    Raises:
        RateLimitError: when the call is still rate limited after max_retries retries
    """
    retry_count = 0
    while True:
        try:
            response = send()
        except Exception as e:
            if not is_rate_limited(e):
                raise
            limited = e
        else:
            throttle_if_low(response, headroom_percent, job_name)
            if response_status(response) != 429:
                return response
            limited = response

        on_rate_limited(limited, tenant, retry_count, max_retries, tenant_store, resource_id, job_name)

        if retry_count >= max_retries:
            logger.warning(f"[{job_name}] Max retries reached after 429 for tenant {tenant.domain}, giving up")
            raise RateLimitError(
                "helpdesk",
                retry_after=extract_retry_after(limited),
                response=limited if not isinstance(limited, BaseException) else response_from_error(limited),
            )

        retry_count += 1
        logger.info(f"[{job_name}] Retrying after 429 (attempt {retry_count}/{max_retries})")
