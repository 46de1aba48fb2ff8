"""
Tenant schemas — one row per synchronized helpdesk account.
Version: 1.0.0
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Tenant(BaseModel):
    """
    Tenant record as read from the tenants table.

    cursor and backoff_until are unix seconds. cursor only moves forward,
    and no outbound call is made while now < backoff_until.
    """
    id: int
    domain: str
    api_user: Optional[str] = None
    api_token: Optional[str] = Field(default=None, repr=False)
    active: bool = False
    in_flight: bool = False
    cursor: int = 0
    backoff_until: int = 0
    fetch_comments: bool = False
    fetch_metrics: bool = False
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Tenant":
        """Build a Tenant from a table row, treating NULL counters as 0."""
        data = dict(row)
        for key in ("cursor", "backoff_until"):
            if data.get(key) is None:
                data[key] = 0
        for key in ("active", "in_flight", "fetch_comments", "fetch_metrics"):
            if data.get(key) is None:
                data[key] = False
        return cls(**data)
