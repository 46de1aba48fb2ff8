"""
Helpdesk HTTP client — per-tenant REST calls with basic token auth.

Responses are returned as-is (no raise on 4xx/5xx) so callers can read the
rate-limit headers of a 429 and decide how to back off. No retries happen
here; retry policy lives in utils/rate_limit.py.
Version: 1.0.0
"""
import logging
from typing import Any, Dict, Optional

import httpx

from helpdesk_sync.core.config import Settings
from helpdesk_sync.core.constants.sync import INCREMENTAL_TICKETS_PATH
from helpdesk_sync.core.exceptions import ConfigurationError, ConnectionTimeoutError, ExternalAPIError
from helpdesk_sync.schemas.tenant import Tenant

logger = logging.getLogger("helpdesk_client")


class HelpdeskClient:
    def __init__(self, tenant: Tenant, settings: Settings) -> None:
        self._domain = self._normalize_domain(tenant.domain)
        self._user = tenant.api_user
        self._token = tenant.api_token
        self._timeout = settings.helpdesk_api_timeout_seconds

    @staticmethod
    def _normalize_domain(domain: Optional[str]) -> Optional[str]:
        """Strip protocol and trailing slashes from a tenant domain."""
        if not domain:
            return domain
        domain = domain.replace("https://", "").replace("http://", "")
        return domain.rstrip("/")

    def _base_url(self) -> str:
        if not self._domain:
            raise ConfigurationError("Tenant domain is missing")
        return f"https://{self._domain}"

    def _auth(self) -> httpx.BasicAuth:
        if not (self._user and self._token):
            raise ConfigurationError(f"API credentials missing for {self._domain}")
        return httpx.BasicAuth(f"{self._user}/token", self._token)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        url = f"{self._base_url()}{path}"
        logger.info("helpdesk request method=%s domain=%s path=%s params=%s", method.upper(), self._domain, path, params)

        headers = {"Accept": "application/json"}
        if json is not None:
            headers["Content-Type"] = "application/json"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, auth=self._auth()) as client:
                resp = await client.request(method=method.upper(), url=url, headers=headers, params=params, json=json)
        except httpx.TimeoutException as e:
            logger.warning("helpdesk timeout method=%s domain=%s path=%s error=%s", method.upper(), self._domain, path, type(e).__name__)
            raise ConnectionTimeoutError(f"helpdesk {method.upper()} {path} timed out after {self._timeout}s") from e

        logger.info("helpdesk response status=%s domain=%s path=%s", resp.status_code, self._domain, path)
        return resp

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        return await self.request("GET", path, params=params)

    async def fetch_incremental_tickets(self, start_time: int) -> httpx.Response:
        """One page of the incremental ticket export with sideloaded users."""
        return await self.get(
            INCREMENTAL_TICKETS_PATH,
            params={"start_time": start_time, "include": "users"},
        )


def ensure_success(response: httpx.Response, context: str = "") -> httpx.Response:
    """
    Raise ExternalAPIError for any 4xx/5xx response, return it otherwise.

    429 never reaches here: the rate-limit retry loop has consumed it.
    """
    status = response.status_code
    if status >= 400:
        detail = response.text[:200] if response.text else ""
        raise ExternalAPIError("helpdesk", f"{context} returned status {status}: {detail}".strip(), status_code=status)
    return response
