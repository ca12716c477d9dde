"""Action item endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from src.api.deps import get_orchestration
from src.bootstrap import OrchestrationContext
from src.models.action_item import ActionItem, ActionSource

router = APIRouter(tags=["actions"])


class ActionCreateRequest(BaseModel):
    """Request body for creating an action item."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    owner: str
    description: str = ""
    due_date: datetime | None = None
    source: ActionSource = ActionSource.SPEECH


class NudgeCancelResponse(BaseModel):
    action_id: str
    cancelled: int


@router.post(
    "/meetings/{meeting_id}/actions",
    response_model=ActionItem,
    status_code=status.HTTP_201_CREATED,
)
async def create_action(
    meeting_id: str,
    request: ActionCreateRequest,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> ActionItem:
    """Store an action item and schedule its nudges.

    Returns 403 when the meeting's consent doesn't cover actions.
    """
    action = ActionItem(meeting_id=meeting_id, **request.model_dump())
    return await ctx.action_router.record_action(action)


@router.post("/actions/{action_id}/acknowledge", response_model=ActionItem)
async def acknowledge_action(
    action_id: str,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> ActionItem:
    """Acknowledge an action and cancel its outstanding nudges."""
    return await ctx.action_router.acknowledge(action_id)


@router.delete("/actions/{action_id}/nudges", response_model=NudgeCancelResponse)
async def cancel_nudges(
    action_id: str,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> NudgeCancelResponse:
    """Cancel outstanding nudges without acknowledging."""
    cancelled = await ctx.action_router.cancel(action_id)
    return NudgeCancelResponse(action_id=action_id, cancelled=cancelled)
