"""Meeting brief and summary models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.base import BaseEntity, utc_now


class MeetingBrief(BaseEntity):
    """A pre- or post-meeting briefing."""

    meeting_id: str
    kind: Literal["pre", "post"] = "pre"
    generated_at: datetime = Field(default_factory=utc_now)
    subject: str
    headline: str = ""
    key_points: list[str] = Field(default_factory=list)
    content: str = ""


class MeetingSummary(BaseModel):
    """Outcome of a finished meeting, as produced by the summarizer.

    Summaries are not stored on their own; they travel with the
    ``meeting.summary`` event into the post-brief job.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    meeting_id: str = Field(min_length=1)
    highlights: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
