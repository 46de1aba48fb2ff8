"""
Unit tests for ticket detail fetchers (comments and metrics).

Tests cover:
- Missing ticket row skips the API call
- Comments stored under raw_data["comments"]
- Metrics stored with flattened columns
- Empty responses store nothing
- 429 exhaustion and API errors finish without raising
- Backoff window and fixed pre-call delay are honoured
- Overlapping comments and metrics fetches keep both raw_data keys
Version: 1.0.0
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from helpdesk_sync.celery_app.tasks.ticket_details import CommentsFetcher, MetricsFetcher
from helpdesk_sync.core.exceptions import TicketNotFoundError
from helpdesk_sync.db.ticket_store import TicketStore
from http_helpers import make_response
from supabase_fakes import fake_supabase


TICKET_ROW = {"id": 1, "external_id": "42", "domain": "acme.helpdesk.test", "raw_data": {"id": 42}}


@pytest.fixture
def client():
    return MagicMock()


def _fetcher(cls, mock_settings, mock_tenant_store, mock_ticket_store, client):
    return cls(
        settings=mock_settings,
        tenant_store=mock_tenant_store,
        ticket_store=mock_ticket_store,
        client_factory=lambda tenant: client,
    )


@pytest.fixture
def comments_fetcher(mock_settings, mock_tenant_store, mock_ticket_store, client):
    return _fetcher(CommentsFetcher, mock_settings, mock_tenant_store, mock_ticket_store, client)


@pytest.fixture
def metrics_fetcher(mock_settings, mock_tenant_store, mock_ticket_store, client):
    return _fetcher(MetricsFetcher, mock_settings, mock_tenant_store, mock_ticket_store, client)


@pytest.mark.unit
class TestCommentsFetcher:

    def test_ticket_not_found_skips_call(self, comments_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = None

        result = comments_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "not_found"
        client.get.assert_not_called()
        no_sleep.assert_not_called()

    def test_comments_stored(self, comments_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        comments = [{"id": 1, "body": "hi"}, {"id": 2, "body": "there"}]
        client.get = AsyncMock(return_value=make_response(200, json={"comments": comments}))

        result = comments_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result == {"status": "stored", "ticket_id": 42}
        client.get.assert_awaited_once_with("/api/v2/tickets/42/comments.json")
        mock_ticket_store.merge_raw_data.assert_called_once_with(TICKET_ROW, "comments", comments)

    def test_pre_call_delay_applied(self, comments_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        client.get = AsyncMock(return_value=make_response(200, json={"comments": []}))

        comments_fetcher.run(42, 7, "acme.helpdesk.test")

        no_sleep.assert_called_once_with(0.5)

    def test_empty_comments_not_stored(self, comments_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        client.get = AsyncMock(return_value=make_response(200, json={"comments": []}))

        result = comments_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "empty"
        mock_ticket_store.merge_raw_data.assert_not_called()

    def test_rate_limit_exhaustion_does_not_raise(
        self, comments_fetcher, mock_ticket_store, mock_tenant_store, client, mock_settings, no_sleep
    ):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        client.get = AsyncMock(return_value=make_response(429, headers={"Retry-After": "2"}))

        result = comments_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "rate_limited"
        assert client.get.await_count == mock_settings.sync_max_retries + 1
        mock_tenant_store.set_backoff_until.assert_called()
        mock_ticket_store.merge_raw_data.assert_not_called()

    def test_api_error_does_not_raise(self, comments_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        client.get = AsyncMock(return_value=make_response(404, text="not found"))

        result = comments_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "failed"
        mock_ticket_store.merge_raw_data.assert_not_called()

    def test_waits_out_tenant_backoff(
        self, comments_fetcher, mock_ticket_store, mock_tenant_store, tenant, client, no_sleep
    ):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        client.get = AsyncMock(return_value=make_response(200, json={"comments": [{"id": 1}]}))

        with patch("helpdesk_sync.utils.rate_limit.time.time", return_value=1_000_000):
            tenant.backoff_until = 1_000_030
            comments_fetcher.run(42, 7, "acme.helpdesk.test")

        assert no_sleep.call_args_list[0][0][0] == 30
        mock_tenant_store.reload.assert_called_once()


@pytest.mark.unit
class TestMetricsFetcher:

    def test_metrics_stored_with_columns(self, metrics_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        metric = {
            "reopens": 1,
            "replies": 3,
            "reply_time_in_minutes": {"calendar": 12, "business": 8},
            "first_resolution_time_in_minutes": {"calendar": 90},
        }
        client.get = AsyncMock(return_value=make_response(200, json={"ticket_metric": metric}))

        result = metrics_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "stored"
        client.get.assert_awaited_once_with("/api/v2/tickets/42/metrics.json")
        row, key, data = mock_ticket_store.merge_raw_data.call_args[0]
        columns = mock_ticket_store.merge_raw_data.call_args.kwargs["columns"]
        assert row is TICKET_ROW
        assert key == "metrics"
        assert data == metric
        assert columns["reopens"] == "1"
        assert columns["replies"] == "3"

    def test_missing_metric_key_is_empty(self, metrics_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        client.get = AsyncMock(return_value=make_response(200, json={}))

        result = metrics_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "empty"
        mock_ticket_store.merge_raw_data.assert_not_called()

    def test_store_failure_does_not_raise(self, metrics_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        mock_ticket_store.merge_raw_data.side_effect = RuntimeError("db down")
        client.get = AsyncMock(return_value=make_response(200, json={"ticket_metric": {"reopens": 0}}))

        result = metrics_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "failed"

    def test_row_deleted_before_write_is_not_found(self, metrics_fetcher, mock_ticket_store, client, no_sleep):
        mock_ticket_store.get_ticket.return_value = TICKET_ROW
        mock_ticket_store.merge_raw_data.side_effect = TicketNotFoundError("gone")
        client.get = AsyncMock(return_value=make_response(200, json={"ticket_metric": {"reopens": 0}}))

        result = metrics_fetcher.run(42, 7, "acme.helpdesk.test")

        assert result == {"status": "not_found", "ticket_id": 42}


@pytest.mark.unit
class TestOverlappingDetailFetches:

    def test_comments_stored_during_metrics_delay_survive(self, mock_settings, mock_tenant_store, no_sleep):
        rows = []
        store = TicketStore(supabase_client=fake_supabase(rows), table="tickets")
        store.upsert_ticket({"id": 42, "status": "open"}, "acme.helpdesk.test")

        comments_client = MagicMock()
        comments_client.get = AsyncMock(
            return_value=make_response(200, json={"comments": [{"id": 1, "body": "hi"}]})
        )
        metrics_client = MagicMock()
        metrics_client.get = AsyncMock(
            return_value=make_response(200, json={"ticket_metric": {"reopens": 1}})
        )
        comments = CommentsFetcher(
            settings=mock_settings,
            tenant_store=mock_tenant_store,
            ticket_store=store,
            client_factory=lambda tenant: comments_client,
        )
        metrics = MetricsFetcher(
            settings=mock_settings,
            tenant_store=mock_tenant_store,
            ticket_store=store,
            client_factory=lambda tenant: metrics_client,
        )
        # The comments task finishes while metrics sits in its pre-call delay.
        metrics.apply_throttle = lambda ticket_id, domain: comments.run(42, 7, "acme.helpdesk.test")

        assert metrics.run(42, 7, "acme.helpdesk.test")["status"] == "stored"

        raw = rows[0]["raw_data"]
        assert raw["comments"] == [{"id": 1, "body": "hi"}]
        assert raw["metrics"] == {"reopens": 1}
        assert raw["status"] == "open"
        assert rows[0]["reopens"] == "1"


@pytest.mark.unit
class TestDetailTasks:

    def test_comments_task_delegates_to_fetcher(self):
        from helpdesk_sync.celery_app.tasks.ticket_details import fetch_ticket_comments

        with patch("helpdesk_sync.celery_app.tasks.ticket_details.CommentsFetcher") as MockFetcher:
            MockFetcher.return_value.run.return_value = {"status": "stored", "ticket_id": 42}
            result = fetch_ticket_comments.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "stored"
        MockFetcher.return_value.run.assert_called_once_with(42, 7, "acme.helpdesk.test")

    def test_metrics_task_delegates_to_fetcher(self):
        from helpdesk_sync.celery_app.tasks.ticket_details import fetch_ticket_metrics

        with patch("helpdesk_sync.celery_app.tasks.ticket_details.MetricsFetcher") as MockFetcher:
            MockFetcher.return_value.run.return_value = {"status": "empty", "ticket_id": 42}
            result = fetch_ticket_metrics.run(42, 7, "acme.helpdesk.test")

        assert result["status"] == "empty"
