"""
Supabase access for the tenants and tickets tables.

Every store built from the same settings shares one supabase-py client,
cached per (url, service role key). Only the project host is ever logged.
Version: 1.0.0
"""
import logging
from typing import Dict, List, Tuple
from urllib.parse import urlparse

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from helpdesk_sync.core.config import Settings
from helpdesk_sync.core.exceptions import ConfigurationError

logger = logging.getLogger("supabase_client")

_clients: Dict[Tuple[str, str], Client] = {}


def _missing_credentials(settings: Settings) -> List[str]:
    missing = []
    if not settings.supabase_url:
        missing.append("SUPABASE_URL")
    if not settings.supabase_service_role_key:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    return missing


class SupabaseClient:
    """Service-role connection used by TenantStore and TicketStore."""

    def __init__(self, settings: Settings) -> None:
        missing = _missing_credentials(settings)
        if missing:
            raise ConfigurationError(f"{' and '.join(missing)} must be set for tenant and ticket storage")

        self._url = settings.supabase_url
        self._key = settings.supabase_service_role_key

    @property
    def host(self) -> str:
        return urlparse(self._url).netloc or self._url

    @property
    def client(self) -> Client:
        """supabase-py client for these credentials, created on first use."""
        cache_key = (self._url, self._key)
        sdk_client = _clients.get(cache_key)
        if sdk_client is None:
            sdk_client = create_client(self._url, self._key)
            _clients[cache_key] = sdk_client
            logger.info("supabase client initialized host=%s", self.host)
        return sdk_client

    def check_table(self, table: str) -> bool:
        """
        Read at most one row from table.

        Returns:
            True if the query succeeded, False on a PostgREST or transport error
        """
        try:
            self.client.table(table).select("id").limit(1).execute()
            return True
        except (APIError, httpx.HTTPError) as e:
            logger.warning("supabase check failed host=%s table=%s detail=%s", self.host, table, str(e))
            return False


def reset_supabase_clients() -> None:
    """Drop cached SDK clients (for testing)."""
    _clients.clear()
