"""Queue monitoring and dead-letter endpoints."""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.api.deps import get_orchestration
from src.bootstrap import OrchestrationContext
from src.jobs.models import ALL_QUEUES, DeadLetterRecord, QueueCounts

router = APIRouter(prefix="/queues", tags=["queues"])


class QueueStatsResponse(BaseModel):
    """Counts per named queue and their sum."""

    queues: dict[str, QueueCounts]
    total: QueueCounts


class RetryResponse(BaseModel):
    """Response for a dead-letter retry."""

    record_id: str
    job_id: str = Field(description="Id of the re-submitted job")


@router.get("/stats", response_model=QueueStatsResponse)
async def queue_stats(
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> QueueStatsResponse:
    """Job counts for the five named queues.

    For the dead-letter queue, ``waiting`` is the number of records.
    """
    queues = {name: await ctx.queue.get_counts(name) for name in ALL_QUEUES}
    return QueueStatsResponse(
        queues=queues,
        total=await ctx.queue.get_aggregate_counts(ALL_QUEUES),
    )


@router.get("/dead-letter", response_model=list[DeadLetterRecord])
async def list_dead_letter(
    limit: int = Query(default=50, ge=1, le=500, description="Maximum records"),
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> list[DeadLetterRecord]:
    """Dead-letter records, most recent failure first."""
    return await ctx.queue.list_dead_letter(limit)


@router.post("/dead-letter/{record_id}/retry", response_model=RetryResponse)
async def retry_dead_letter(
    record_id: str,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> RetryResponse:
    """Re-submit a dead-lettered job to its original queue."""
    job_id = await ctx.queue.retry_dead_letter(record_id)
    return RetryResponse(record_id=record_id, job_id=job_id)
