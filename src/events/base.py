"""Base class for meeting lifecycle events."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.models.base import utc_now


class EventKind(str, Enum):
    """Closed set of domain event kinds published on the bus."""

    MEETING_CONSENT = "meeting.consent"
    DECISION_FINALIZED = "decision.finalized"
    ACTION_CREATED = "action.created"
    MEETING_SUMMARY = "meeting.summary"


class MeetingEvent(BaseModel):
    """Base class for all meeting events.

    Events are immutable records of things that happened to a meeting.
    Each subclass fixes ``kind`` and carries one typed payload, so
    subscribers can rely on the payload shape for the kind they
    subscribed to.

    Attributes:
        event_id: Unique identifier for this event instance
        kind: Which lifecycle event this is
        meeting_id: Meeting the event belongs to
        occurred_at: When the event occurred
        correlation_id: Optional request/trace correlation
    """

    model_config = ConfigDict(
        frozen=True,  # Events are immutable
        str_strip_whitespace=True,
    )

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier",
    )
    kind: EventKind
    meeting_id: str = Field(min_length=1, description="Meeting the event belongs to")
    occurred_at: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred",
    )
    correlation_id: str | None = Field(default=None)

    @property
    def payload(self) -> dict[str, Any]:
        """Return the event payload as JSON-compatible data."""
        return self.model_dump(
            mode="json",
            exclude={"event_id", "kind", "meeting_id", "occurred_at", "correlation_id"},
        )
