"""Audit entry model for the append-only compliance trail."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.base import new_id, utc_now


class AuditEntry(BaseModel):
    """An immutable record of a compliance-relevant event.

    Entries outlive the meeting data they describe; no deletion flow
    removes them.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    meeting_id: str | None = None
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    policy: str | None = None
    occurred_at: datetime = Field(default_factory=utc_now)
