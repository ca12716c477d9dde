"""Meetings API endpoints: scheduling, decisions, transcripts and summaries."""

from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from src.api.deps import get_orchestration
from src.bootstrap import OrchestrationContext
from src.errors import NotFoundError
from src.models.decision import DecisionAlternative, DecisionCard
from src.models.brief import MeetingSummary
from src.models.meeting import Meeting, MeetingDetail, TranscriptSegment

router = APIRouter(prefix="/meetings", tags=["meetings"])


class MeetingScheduledResponse(BaseModel):
    """Response for a stored meeting."""

    meeting_id: str
    pre_brief_job_id: str | None = Field(
        default=None, description="Set when a pre-brief was scheduled"
    )


class DecisionRequest(BaseModel):
    """Request body for finalizing a decision."""

    model_config = ConfigDict(str_strip_whitespace=True)

    headline: str = Field(min_length=1, max_length=500)
    owner: str
    problem: str = ""
    recommendation: str = ""
    decided_at: datetime | None = None
    alternatives: list[DecisionAlternative] = Field(default_factory=list)
    consequences: list[str] = Field(default_factory=list)


class TranscriptRequest(BaseModel):
    """Request body for transcript segments."""

    segments: list[TranscriptSegment] = Field(min_length=1)


class TranscriptResponse(BaseModel):
    meeting_id: str
    stored: int


class SummaryRequest(BaseModel):
    """Request body for a finished meeting's summary."""

    highlights: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)


class SummaryResponse(BaseModel):
    meeting_id: str
    accepted: bool = True


@router.post("", response_model=MeetingScheduledResponse, status_code=status.HTTP_201_CREATED)
async def schedule_meeting(
    meeting: Meeting,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> MeetingScheduledResponse:
    """Store meeting metadata and schedule its pre-brief."""
    await ctx.meetings.save_meeting(meeting)
    job_id = await ctx.briefing.schedule_pre_brief(meeting)
    return MeetingScheduledResponse(meeting_id=meeting.meeting_id, pre_brief_job_id=job_id)


@router.get("/{meeting_id}", response_model=MeetingDetail)
async def get_meeting(
    meeting_id: str,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> MeetingDetail:
    """Everything currently stored for a meeting."""
    detail = await ctx.meetings.get_meeting_detail(meeting_id)
    if detail is None:
        msg = f"Meeting {meeting_id} not found"
        raise NotFoundError(msg)
    return detail


@router.post(
    "/{meeting_id}/decisions",
    response_model=DecisionCard,
    status_code=status.HTTP_201_CREATED,
)
async def finalize_decision(
    meeting_id: str,
    request: DecisionRequest,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> DecisionCard:
    """Store a finalized decision and notify its owner."""
    fields = request.model_dump(exclude_none=True)
    decision = DecisionCard(meeting_id=meeting_id, **fields)
    return await ctx.action_router.finalize_decision(decision)


@router.post("/{meeting_id}/transcript", response_model=TranscriptResponse)
async def add_transcript(
    meeting_id: str,
    request: TranscriptRequest,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> TranscriptResponse:
    """Redact and store transcript segments (requires transcript consent)."""
    stored = await ctx.ingestor.ingest(meeting_id, request.segments)
    return TranscriptResponse(meeting_id=meeting_id, stored=stored)


@router.post(
    "/{meeting_id}/summary",
    response_model=SummaryResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def record_summary(
    meeting_id: str,
    request: SummaryRequest,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> SummaryResponse:
    """Announce a meeting summary; its post-brief is queued in the background."""
    summary = MeetingSummary(meeting_id=meeting_id, **request.model_dump())
    await ctx.briefing.record_summary(summary)
    return SummaryResponse(meeting_id=meeting_id)
