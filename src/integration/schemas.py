"""Notification schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NotificationKind = Literal["action-nudge", "decision-notice", "brief"]

USER_NOT_FOUND = "user_not_found"


class NotificationResult(BaseModel):
    """Result of a notification attempt."""

    model_config = ConfigDict(str_strip_whitespace=True)

    success: bool = Field(description="Whether notification was sent successfully")
    recipient_email: str = Field(description="Email address of the recipient")
    recipient_slack_id: str | None = Field(
        default=None, description="Slack user ID if found"
    )
    message_ts: str | None = Field(default=None, description="Slack message timestamp")
    error: str | None = Field(default=None, description="Error message if failed")

    @property
    def recipient_unknown(self) -> bool:
        """Check if the failure was an unresolvable recipient."""
        return self.error == USER_NOT_FOUND


class NotificationRecord(BaseModel):
    """Delivery log record for a notification attempt."""

    model_config = ConfigDict(str_strip_whitespace=True)

    recipient_email: str = Field(description="Email address of the recipient")
    kind: NotificationKind = Field(description="What the notification was about")
    subject: str = Field(description="Action title, decision headline or brief subject")
    meeting_id: str | None = Field(default=None)
    sent_at: datetime = Field(description="When notification was sent")
    success: bool = Field(description="Whether notification succeeded")
    error: str | None = Field(default=None, description="Error if notification failed")
