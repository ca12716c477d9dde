"""Meeting metadata, transcript segments and the meeting read model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.action_item import ActionItem
from src.models.brief import MeetingBrief
from src.models.consent import ConsentRecord
from src.models.decision import DecisionCard


class TranscriptSegment(BaseModel):
    """A single speech segment from a meeting transcript."""

    model_config = ConfigDict(frozen=True)

    speaker: str = Field(description="Speaker name/label from transcript")
    text: str = Field(description="What was said")
    start_time: str = Field(description="ISO 8601 start timestamp")
    end_time: str = Field(description="ISO 8601 end timestamp")
    language: str | None = Field(default=None)


class Meeting(BaseModel):
    """Metadata for a meeting the agent attends."""

    model_config = ConfigDict(str_strip_whitespace=True)

    meeting_id: str
    title: str = Field(min_length=1, max_length=500)
    start_time: datetime
    end_time: datetime | None = None
    organizer_email: str
    attendees: list[str] = Field(default_factory=list)
    agenda: str | None = None


class MeetingDetail(BaseModel):
    """Everything currently stored for one meeting."""

    meeting: Meeting
    consent: ConsentRecord | None = None
    actions: list[ActionItem] = Field(default_factory=list)
    decisions: list[DecisionCard] = Field(default_factory=list)
    briefs: list[MeetingBrief] = Field(default_factory=list)
    transcript: list[TranscriptSegment] = Field(default_factory=list)

    @property
    def open_actions(self) -> list[ActionItem]:
        """Actions that still need attention."""
        return [a for a in self.actions if not a.is_settled]
