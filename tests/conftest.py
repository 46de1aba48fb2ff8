"""
Pytest configuration and shared fixtures for Helpdesk Sync tests.

Provides settings, tenants, mocked stores, chained Supabase table mocks and
httpx response builders.
Version: 1.0.0
"""
import os

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")

import pytest
from unittest.mock import MagicMock, patch

from helpdesk_sync.core.config import Settings
from helpdesk_sync.schemas.tenant import Tenant
from http_helpers import make_response


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_settings():
    """Settings object with test defaults (no real credentials)."""
    return Settings(
        supabase_url="https://test.supabase.co",
        supabase_service_role_key="test-service-role-key",
        redis_url="redis://localhost:6379/15",
        sync_enabled=True,
        incremental_export_max_per_minute=10,
        rate_limit_headroom_percent=40,
        sync_max_retries=3,
        comment_job_stagger_seconds=0.2,
        metrics_job_stagger_seconds=0.2,
        stagger_cycle_max_seconds=5.0,
        comment_job_delay_seconds=0.5,
        metrics_job_delay_seconds=0.5,
        tenant_ready_buffer_seconds=300,
        stuck_in_flight_minutes=5,
        webhooks_proxy_secret="test-webhook-secret",
    )


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------

@pytest.fixture
def tenant():
    """Active tenant with both detail toggles enabled."""
    return Tenant(
        id=7,
        domain="acme.helpdesk.test",
        api_user="agent@acme.test",
        api_token="test-api-token",
        active=True,
        in_flight=True,
        cursor=1000,
        backoff_until=0,
        fetch_comments=True,
        fetch_metrics=True,
    )


@pytest.fixture
def mock_tenant_store(tenant):
    """Mocked TenantStore returning the tenant fixture."""
    store = MagicMock()
    store.get_tenant = MagicMock(return_value=tenant)
    store.reload = MagicMock(side_effect=lambda t: t)
    store.get_tenant_by_domain = MagicMock(return_value=tenant)
    store.get_ready_tenants = MagicMock(return_value=[])
    store.reset_stuck_in_flight = MagicMock(return_value=0)
    store.mark_in_flight = MagicMock(return_value=True)
    store.clear_in_flight = MagicMock(return_value=True)
    store.set_backoff_until = MagicMock()
    store.advance_cursor = MagicMock(return_value=True)
    return store


@pytest.fixture
def mock_ticket_store():
    """Mocked TicketStore."""
    store = MagicMock()
    store.get_ticket = MagicMock(return_value=None)
    store.upsert_ticket = MagicMock(return_value="created")
    store.merge_raw_data = MagicMock()
    return store


@pytest.fixture
def mock_request_budget():
    """Mocked GlobalRequestBudget that is never at cap."""
    budget = MagicMock()
    budget.prune_old = MagicMock(return_value=0)
    budget.at_cap = MagicMock(return_value=False)
    budget.record_request = MagicMock()
    return budget


# ---------------------------------------------------------------------------
# Supabase (mocked)
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_supabase_table():
    """Build a chained mock table builder for Supabase."""
    mock_table = MagicMock()
    for method in ("select", "insert", "upsert", "update", "delete", "eq", "lt", "lte", "or_", "limit", "order"):
        getattr(mock_table, method).return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=[])
    return mock_table


@pytest.fixture
def mock_supabase_client(mock_supabase_table):
    """Mocked SupabaseClient whose .client.table() returns the chained table."""
    client = MagicMock()
    client.client.table.return_value = mock_supabase_table
    return client


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def http_response():
    """Factory fixture for httpx responses."""
    return make_response


@pytest.fixture
def no_sleep():
    """Patch time.sleep everywhere (all modules call time.sleep through the time module)."""
    with patch("time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def mock_helpdesk_client():
    """Helpdesk client whose coroutine methods are replaced per test."""
    return MagicMock()
