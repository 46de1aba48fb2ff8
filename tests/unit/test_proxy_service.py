"""
Unit tests for proxy request validation and path building.
Version: 1.0.0
"""
import pytest

from helpdesk_sync.core.exceptions import ValidationError
from helpdesk_sync.schemas.proxy import ProxyRequest
from helpdesk_sync.services.proxy_service import (
    ProxyCall,
    build_path,
    normalize_body,
    validate_proxy_request,
)


pytestmark = pytest.mark.unit


class TestValidateProxyRequest:

    def test_get_ticket(self):
        call = validate_proxy_request(ProxyRequest(domain="x.test", method="GET", resource="tickets", ticket_id="42"))

        assert call == ProxyCall(domain="x.test", method="get", resource="tickets", resource_id=42, body=None)
        assert call.is_sync is True
        assert call.path == "/api/v2/tickets/42.json"

    def test_method_defaults_to_get(self):
        call = validate_proxy_request(ProxyRequest(domain="x.test", resource="users", user_id=5))
        assert call.method == "get"
        assert call.path == "/api/v2/users/5.json"

    def test_post_user_with_body_string(self):
        call = validate_proxy_request(ProxyRequest(
            domain="x.test",
            method="post",
            resource="users",
            body='{"user": {"name": "Ada", "email": "ada@example.test"}}',
        ))

        assert call.is_sync is False
        assert call.body == {"user": {"name": "Ada", "email": "ada@example.test"}}
        assert call.path == "/api/v2/users.json"

    def test_put_ticket(self):
        call = validate_proxy_request(ProxyRequest(
            domain="x.test", method="put", resource="tickets", ticket_id=9, body={"ticket": {"status": "solved"}},
        ))
        assert call.path == "/api/v2/tickets/9.json"
        assert call.body == {"ticket": {"status": "solved"}}

    @pytest.mark.parametrize("payload, message", [
        ({"resource": "tickets", "ticket_id": 1}, "domain is required"),
        ({"domain": "x.test"}, "resource is required"),
        ({"domain": "x.test", "resource": "orgs"}, "resource must be one of: tickets, users"),
        ({"domain": "x.test", "resource": "tickets", "method": "head"}, "method must be get, put, post, patch, or delete"),
        ({"domain": "x.test", "resource": "tickets", "method": "put", "ticket_id": 1}, "body is required for put/post/patch"),
        ({"domain": "x.test", "resource": "tickets", "method": "delete"}, "ticket_id is required for delete"),
        ({"domain": "x.test", "resource": "users", "user_id": "abc"}, "user_id must be an integer"),
        (
            {"domain": "x.test", "resource": "tickets", "method": "post", "body": {"subject": "no wrapper"}},
            "body must contain a 'ticket' object",
        ),
        (
            {"domain": "x.test", "resource": "users", "method": "post", "body": "not json"},
            "body must be a JSON object",
        ),
    ])
    def test_rejections(self, payload, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_proxy_request(ProxyRequest(**payload))
        assert message in str(exc_info.value)

    def test_post_ignores_missing_id(self):
        call = validate_proxy_request(ProxyRequest(
            domain="x.test", method="post", resource="tickets", body={"ticket": {"subject": "Hi"}},
        ))
        assert call.resource_id is None


class TestBuildPath:

    def test_post_has_no_id(self):
        assert build_path("post", "tickets", 5) == "/api/v2/tickets.json"

    def test_delete_requires_id(self):
        with pytest.raises(ValidationError):
            build_path("delete", "users")

    def test_unknown_resource(self):
        with pytest.raises(ValidationError):
            build_path("get", "groups", 1)


class TestNormalizeBody:

    def test_none_is_empty(self):
        assert normalize_body(None) == {}

    def test_blank_string_is_empty(self):
        assert normalize_body("   ") == {}

    def test_json_array_rejected(self):
        with pytest.raises(ValidationError):
            normalize_body("[1, 2]")

    def test_other_types_rejected(self):
        with pytest.raises(ValidationError):
            normalize_body(42)
