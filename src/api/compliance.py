"""Compliance endpoints: consent, audit trail and erasure."""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from src.api.deps import get_orchestration
from src.bootstrap import OrchestrationContext
from src.models.audit import AuditEntry
from src.models.consent import ConsentProfile, ConsentReceipt

logger = structlog.get_logger()
router = APIRouter(prefix="/meetings", tags=["compliance"])


class ConsentRequest(BaseModel):
    """Request body for granting consent."""

    profile: ConsentProfile
    accepted_at: datetime | None = None


class DeleteAllRequest(BaseModel):
    """Request body for erasing a meeting."""

    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str = Field(min_length=1, max_length=500)


@router.post("/{meeting_id}/consent", response_model=ConsentReceipt)
async def grant_consent(
    meeting_id: str,
    request: ConsentRequest,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> ConsentReceipt:
    """Record consent for a meeting and return a signed receipt."""
    return await ctx.auditor.grant_consent(meeting_id, request.profile, request.accepted_at)


@router.get("/{meeting_id}/audit", response_model=list[AuditEntry])
async def get_audit(
    meeting_id: str,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> list[AuditEntry]:
    """Audit trail of a meeting, oldest first."""
    return await ctx.auditor.list_for_meeting(meeting_id)


@router.post("/{meeting_id}/delete-all", response_model=AuditEntry)
async def delete_all(
    meeting_id: str,
    request: DeleteAllRequest,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> AuditEntry:
    """Erase all data of a meeting; the audit trail is kept."""
    entry = await ctx.auditor.delete_all(meeting_id, request.reason)
    logger.info("delete-all requested", meeting_id=meeting_id)
    return entry
