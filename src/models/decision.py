"""Decision card model for decisions finalized in meetings."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.base import BaseEntity, utc_now


class DecisionAlternative(BaseModel):
    """An option that was considered."""

    model_config = ConfigDict(str_strip_whitespace=True)

    label: str
    description: str = ""


class DecisionCard(BaseEntity):
    """A decision made during a meeting.

    Decisions are captured to:
    - Provide audit trail for why things were done
    - Track alternatives that were considered
    - Notify the owner that the decision is final
    """

    meeting_id: str = Field(description="Meeting this decision was made in")
    headline: str = Field(min_length=1, max_length=500, description="What was decided")
    problem: str = Field(default="", max_length=2000)
    recommendation: str = Field(default="", max_length=2000)
    owner: str = Field(description="Decision owner email or display name")
    decided_at: datetime = Field(default_factory=utc_now)
    alternatives: list[DecisionAlternative] = Field(default_factory=list)
    consequences: list[str] = Field(default_factory=list)
