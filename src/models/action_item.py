"""ActionItem model for tasks committed to in meetings."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from src.models.base import BaseEntity


class ActionItemStatus(str, Enum):
    """Status of an action item."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    OVERDUE = "overdue"


class ActionSource(str, Enum):
    """Where the action item came from."""

    SPEECH = "speech"
    CHAT = "chat"
    DECISION_CARD = "decision-card"


class ActionItem(BaseEntity):
    """An action item owned by a meeting participant.

    Action items are commitments made during meetings with:
    - A title and description of what needs to be done
    - An owner (email or display name)
    - An optional due date that opens the nudge window
    - Status and acknowledgement tracking
    """

    meeting_id: str = Field(description="Meeting this action item belongs to")
    title: str = Field(min_length=1, max_length=200, description="Short title")
    description: str = Field(
        default="",
        max_length=2000,
        description="What needs to be done",
    )
    owner: str = Field(description="Owner email or display name")
    due_date: datetime | None = Field(
        default=None,
        description="When the action item is due",
    )
    source: ActionSource = Field(default=ActionSource.SPEECH)
    status: ActionItemStatus = Field(
        default=ActionItemStatus.OPEN,
        description="Current status",
    )
    acknowledged_at: datetime | None = Field(
        default=None,
        description="When the owner acknowledged the action",
    )

    @property
    def is_settled(self) -> bool:
        """Check if no further reminders are needed."""
        return self.status == ActionItemStatus.DONE or self.acknowledged_at is not None
