"""Notification service for meeting follow-up messages.

Sends Slack DMs to action owners, decision owners and meeting
organizers, keeping a delivery log of every attempt.
"""

from datetime import UTC, datetime

import structlog
from slack_sdk.errors import SlackApiError

from src.adapters.slack_adapter import SlackAdapter
from src.integration.schemas import (
    USER_NOT_FOUND,
    NotificationKind,
    NotificationRecord,
    NotificationResult,
)
from src.models.action_item import ActionItem
from src.models.brief import MeetingBrief
from src.models.decision import DecisionCard
from src.models.meeting import Meeting

logger = structlog.get_logger()


class NotificationService:
    """Service for sending and logging follow-up notifications.

    Looks up users by email, sends Slack DMs, and maintains a
    delivery log of all notification attempts.
    """

    def __init__(self, slack_adapter: SlackAdapter):
        """Initialize with Slack adapter.

        Args:
            slack_adapter: Configured SlackAdapter for sending DMs
        """
        self._slack = slack_adapter
        self._delivery_log: list[NotificationRecord] = []

    async def send_action_nudge(self, action: ActionItem, tier: int) -> NotificationResult:
        """Remind an action owner that the action is still open.

        Args:
            action: The open action item
            tier: 0 for the first reminder, higher for escalations
        """
        return await self._deliver(
            action.owner,
            kind="action-nudge",
            subject=action.title,
            meeting_id=action.meeting_id,
            message=self._format_nudge(action, tier),
        )

    async def send_decision_notice(
        self, decision: DecisionCard, text: str
    ) -> NotificationResult:
        """Tell a decision owner that the decision was finalized.

        Args:
            decision: The finalized decision
            text: Redacted notice body
        """
        return await self._deliver(
            decision.owner,
            kind="decision-notice",
            subject=decision.headline,
            meeting_id=decision.meeting_id,
            message=f"*Decision finalized:* {decision.headline}\n{text}",
        )

    async def send_brief(self, meeting: Meeting, brief: MeetingBrief) -> NotificationResult:
        """Send a meeting brief to the organizer."""
        return await self._deliver(
            meeting.organizer_email,
            kind="brief",
            subject=brief.subject,
            meeting_id=meeting.meeting_id,
            message=self._format_brief(brief),
        )

    async def _deliver(
        self,
        email: str,
        *,
        kind: NotificationKind,
        subject: str,
        meeting_id: str | None,
        message: str,
    ) -> NotificationResult:
        """Look up the recipient, send the DM and log the attempt."""
        try:
            user = await self._slack.lookup_user_by_email(email)
        except (SlackApiError, ValueError) as e:
            result = NotificationResult(
                success=False,
                recipient_email=email,
                error=str(e),
            )
            self._record(email, kind, subject, meeting_id, result)
            return result

        if not user:
            result = NotificationResult(
                success=False,
                recipient_email=email,
                error=USER_NOT_FOUND,
            )
            self._record(email, kind, subject, meeting_id, result)
            return result

        dm_result = await self._slack.send_dm(user["id"], message)
        result = NotificationResult(
            success=dm_result.get("success", False),
            recipient_email=email,
            recipient_slack_id=user["id"],
            message_ts=dm_result.get("ts"),
            error=dm_result.get("error"),
        )
        self._record(email, kind, subject, meeting_id, result)
        return result

    @staticmethod
    def _format_nudge(action: ActionItem, tier: int) -> str:
        heading = "*Reminder:*" if tier == 0 else f"*Follow-up #{tier}:*"
        parts = [
            f"{heading} this action item is still open",
            f"> {action.title}",
        ]
        if action.due_date:
            parts.append(f"*Due:* {action.due_date.date().isoformat()}")
        return "\n".join(parts)

    @staticmethod
    def _format_brief(brief: MeetingBrief) -> str:
        parts = [f"*{brief.subject}*"]
        if brief.headline:
            parts.append(brief.headline)
        parts.extend(f"- {point}" for point in brief.key_points)
        return "\n".join(parts)

    def _record(
        self,
        email: str,
        kind: NotificationKind,
        subject: str,
        meeting_id: str | None,
        result: NotificationResult,
    ) -> None:
        record = NotificationRecord(
            recipient_email=email,
            kind=kind,
            subject=subject,
            meeting_id=meeting_id,
            sent_at=datetime.now(UTC),
            success=result.success,
            error=result.error,
        )
        self._delivery_log.append(record)
        logger.info(
            "notification recorded",
            email=email,
            kind=kind,
            success=result.success,
        )

    def get_delivery_log(self) -> list[NotificationRecord]:
        """Return copy of delivery log."""
        return list(self._delivery_log)

    def clear_delivery_log(self) -> None:
        self._delivery_log.clear()
