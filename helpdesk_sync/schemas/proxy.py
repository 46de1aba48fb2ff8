"""
Proxy schemas — inbound proxy trigger and its responses.
Version: 1.0.0
"""
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel


class ProxyRequest(BaseModel):
    """Inbound proxy trigger payload (POST /webhooks/proxy)."""
    domain: Optional[str] = None
    method: str = "get"
    resource: Optional[str] = None
    ticket_id: Optional[Union[int, str]] = None
    user_id: Optional[Union[int, str]] = None
    body: Optional[Union[Dict[str, Any], str]] = None


class ProxyAcceptedResponse(BaseModel):
    status: str = "accepted"
    message: str = "Request queued for processing"
    task_id: Optional[str] = None
