"""Typed event definitions for meeting lifecycle events.

These events represent things that happen to a meeting:
- ConsentGranted: Participants accepted a consent profile
- DecisionFinalized: A decision card was finalized
- ActionCreated: An action item was created and stored
- MeetingSummarized: A finished meeting was summarized
"""

from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src.errors import ValidationError
from src.events.base import EventKind, MeetingEvent
from src.models.action_item import ActionItem
from src.models.brief import MeetingSummary
from src.models.consent import ConsentRecord
from src.models.decision import DecisionCard


class ConsentGranted(MeetingEvent):
    """Emitted when consent for a meeting is recorded or replaced."""

    kind: Literal[EventKind.MEETING_CONSENT] = EventKind.MEETING_CONSENT
    consent: ConsentRecord

    @property
    def payload(self) -> dict[str, Any]:
        return self.consent.model_dump(mode="json")


class DecisionFinalized(MeetingEvent):
    """Emitted when a decision card is finalized."""

    kind: Literal[EventKind.DECISION_FINALIZED] = EventKind.DECISION_FINALIZED
    decision: DecisionCard

    @property
    def payload(self) -> dict[str, Any]:
        return self.decision.model_dump(mode="json")


class ActionCreated(MeetingEvent):
    """Emitted when an action item has been stored."""

    kind: Literal[EventKind.ACTION_CREATED] = EventKind.ACTION_CREATED
    action: ActionItem

    @property
    def payload(self) -> dict[str, Any]:
        return self.action.model_dump(mode="json")


class MeetingSummarized(MeetingEvent):
    """Emitted when a finished meeting has been summarized."""

    kind: Literal[EventKind.MEETING_SUMMARY] = EventKind.MEETING_SUMMARY
    summary: MeetingSummary

    @property
    def payload(self) -> dict[str, Any]:
        return self.summary.model_dump(mode="json")


AnyMeetingEvent = Annotated[
    ConsentGranted | DecisionFinalized | ActionCreated | MeetingSummarized,
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter[AnyMeetingEvent] = TypeAdapter(AnyMeetingEvent)


def parse_event(data: dict[str, Any]) -> MeetingEvent:
    """Build the typed event for a raw ``{"kind": ..., ...}`` mapping.

    Raises:
        ValidationError: If the kind is unknown or the payload is malformed
    """
    try:
        return _event_adapter.validate_python(data)
    except PydanticValidationError as e:
        msg = f"Invalid meeting event: {e.error_count()} error(s)"
        raise ValidationError(msg) from e
