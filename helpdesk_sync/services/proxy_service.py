"""
Proxy service — validation and request shaping for proxied helpdesk calls.

Turns an inbound proxy payload into a ProxyCall (verb, resource, id, body)
and maps it onto the helpdesk REST path. Nothing here performs I/O; the
proxy task executes the call through the rate-limit gate.

Rules per verb:
- get/delete need a resource id and run synchronously
- put/patch need an id and a body, post needs a body only
- write bodies must carry the resource wrapper object ({"ticket": {...}})
Version: 1.0.0
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from helpdesk_sync.core.constants.proxy import (
    RESOURCE_CONFIGS,
    PROXY_METHODS,
    SYNC_METHODS,
    WRITE_METHODS,
    ID_METHODS,
)
from helpdesk_sync.core.exceptions import ValidationError
from helpdesk_sync.schemas.proxy import ProxyRequest

logger = logging.getLogger(__name__)


@dataclass
class ProxyCall:
    domain: str
    method: str
    resource: str
    resource_id: Optional[int] = None
    body: Optional[Dict[str, Any]] = None

    @property
    def is_sync(self) -> bool:
        return self.method in SYNC_METHODS

    @property
    def path(self) -> str:
        return build_path(self.method, self.resource, self.resource_id)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, (str, dict, list)) and len(value) == 0)


def normalize_body(body: Any) -> Dict[str, Any]:
    """
    Coerce a proxy body into a dict.

    Raises:
        ValidationError: if a string body is not a JSON object
    """
    if body is None:
        return {}
    if isinstance(body, dict):
        return body
    if isinstance(body, str):
        if not body.strip():
            return {}
        try:
            parsed = json.loads(body)
        except ValueError:
            raise ValidationError("body must be a JSON object")
        if not isinstance(parsed, dict):
            raise ValidationError("body must be a JSON object")
        return parsed
    raise ValidationError("body must be a JSON object")


def build_path(method: str, resource: str, resource_id: Any = None) -> str:
    """
    Helpdesk REST path for a proxied call.

    post creates a resource and never carries an id.

    Raises:
        ValidationError: unknown resource/method, or missing id
    """
    method = (method or "").lower()
    if resource not in RESOURCE_CONFIGS:
        raise ValidationError(f"resource must be one of: {', '.join(RESOURCE_CONFIGS)}")
    if method not in PROXY_METHODS:
        raise ValidationError("method must be get, put, post, patch, or delete")

    if method == "post":
        return f"/api/v2/{resource}.json"

    if _blank(resource_id):
        raise ValidationError(f"{RESOURCE_CONFIGS[resource]['id_param']} is required for {method}")
    return f"/api/v2/{resource}/{resource_id}.json"


def validate_proxy_request(request: ProxyRequest) -> ProxyCall:
    """
    Validate an inbound proxy payload.

    Returns:
        ProxyCall ready to execute

    Raises:
        ValidationError: with a message suitable for a 422 response
    """
    domain = (request.domain or "").strip()
    method = (request.method or "get").strip().lower()
    resource = (request.resource or "").strip().lower()

    if not domain:
        raise ValidationError("domain is required")
    if not resource:
        raise ValidationError("resource is required (e.g., 'tickets', 'users')")
    if resource not in RESOURCE_CONFIGS:
        raise ValidationError(f"resource must be one of: {', '.join(RESOURCE_CONFIGS)}")
    if method not in PROXY_METHODS:
        raise ValidationError("method must be get, put, post, patch, or delete")

    config = RESOURCE_CONFIGS[resource]
    id_param = config["id_param"]
    raw_id = getattr(request, id_param, None)

    if method in WRITE_METHODS and _blank(request.body):
        raise ValidationError("body is required for put/post/patch")

    if method in ID_METHODS and _blank(raw_id):
        raise ValidationError(f"{id_param} is required for {method}")

    resource_id = None
    if not _blank(raw_id):
        try:
            resource_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValidationError(f"{id_param} must be an integer")

    body = None
    if method in WRITE_METHODS:
        body = normalize_body(request.body)
        wrapper = config["body_wrapper"]
        if not isinstance(body.get(wrapper), dict):
            raise ValidationError(f"body must contain a '{wrapper}' object")

    return ProxyCall(domain=domain, method=method, resource=resource, resource_id=resource_id, body=body)
