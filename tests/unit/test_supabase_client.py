"""
Unit tests for SupabaseClient — credential checks, shared SDK clients, table checks.

Tests cover:
- Constructor names every missing credential in ConfigurationError
- One SDK client per (url, key), shared by every SupabaseClient
- Only the project host is logged
- check_table reports PostgREST and transport failures as False

Version: 1.0.0
"""
import logging

import httpx
import pytest
from unittest.mock import MagicMock, patch
from postgrest.exceptions import APIError

from helpdesk_sync.clients.supabase_client import SupabaseClient, reset_supabase_clients
from helpdesk_sync.core.exceptions import ConfigurationError

CREATE_CLIENT = "helpdesk_sync.clients.supabase_client.create_client"


@pytest.fixture(autouse=True)
def clean_client_cache():
    reset_supabase_clients()
    yield
    reset_supabase_clients()


def _settings(url="https://abcd.supabase.co", key="service-role-key"):
    settings = MagicMock()
    settings.supabase_url = url
    settings.supabase_service_role_key = key
    return settings


@pytest.mark.unit
class TestCredentials:

    def test_host_from_url(self):
        assert SupabaseClient(_settings()).host == "abcd.supabase.co"

    def test_missing_url(self):
        with pytest.raises(ConfigurationError, match="^SUPABASE_URL must be set"):
            SupabaseClient(_settings(url=""))

    def test_missing_key(self):
        with pytest.raises(ConfigurationError, match="^SUPABASE_SERVICE_ROLE_KEY must be set"):
            SupabaseClient(_settings(key=None))

    def test_both_missing_are_named(self):
        with pytest.raises(ConfigurationError, match="SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"):
            SupabaseClient(_settings(url=None, key=""))


@pytest.mark.unit
class TestSharedClient:

    @patch(CREATE_CLIENT)
    def test_same_credentials_share_one_client(self, mock_create):
        mock_create.return_value = MagicMock()

        first = SupabaseClient(_settings()).client
        second = SupabaseClient(_settings()).client

        assert first is second
        mock_create.assert_called_once_with("https://abcd.supabase.co", "service-role-key")

    @patch(CREATE_CLIENT)
    def test_other_credentials_get_their_own_client(self, mock_create):
        mock_create.side_effect = lambda url, key: MagicMock(name=url)

        first = SupabaseClient(_settings()).client
        second = SupabaseClient(_settings(url="https://wxyz.supabase.co")).client

        assert first is not second
        assert mock_create.call_count == 2

    @patch(CREATE_CLIENT)
    def test_key_never_logged(self, mock_create, caplog):
        with caplog.at_level(logging.INFO, logger="supabase_client"):
            SupabaseClient(_settings()).client

        assert "host=abcd.supabase.co" in caplog.text
        assert "service-role-key" not in caplog.text


@pytest.mark.unit
class TestCheckTable:

    @patch(CREATE_CLIENT)
    def test_reachable_table(self, mock_create, mock_supabase_table):
        mock_create.return_value.table.return_value = mock_supabase_table

        assert SupabaseClient(_settings()).check_table("tenants") is True
        mock_create.return_value.table.assert_called_once_with("tenants")
        mock_supabase_table.limit.assert_called_once_with(1)

    @pytest.mark.parametrize("error", [
        APIError({"message": "relation does not exist", "code": "42P01"}),
        httpx.ConnectError("connection refused"),
    ])
    @patch(CREATE_CLIENT)
    def test_failures_return_false(self, mock_create, mock_supabase_table, error):
        mock_create.return_value.table.return_value = mock_supabase_table
        mock_supabase_table.execute.side_effect = error

        assert SupabaseClient(_settings()).check_table("tenants") is False
