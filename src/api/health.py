"""Health check endpoints for monitoring and orchestration."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.bootstrap import OrchestrationContext
from src.config import settings
from src.jobs.models import DEAD_LETTER

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: datetime
    version: str
    environment: str


class LivenessResponse(BaseModel):
    """Response model for liveness probe."""

    status: str


class ReadinessResponse(BaseModel):
    """Response model for readiness probe."""

    status: str
    checks: dict[str, str]
    dead_letter: int | None = Field(
        default=None,
        description="Dead-letter records awaiting inspection; informational only",
    )


async def _check_database(ctx: OrchestrationContext | None) -> str:
    if ctx is None:
        return "not_configured"
    return "ok" if await ctx.db.is_healthy() else "failed"


def _check_queue(ctx: OrchestrationContext | None) -> str:
    if ctx is None:
        return "not_configured"
    return "ok" if ctx.queue.is_running else "stopped"


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=settings.app_version,
        environment=settings.app_env,
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe - app is running."""
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> ReadinessResponse:
    """Readiness probe - app can serve traffic.

    Checks:
    - Database is connected and healthy
    - Queue workers are running

    A non-empty dead-letter queue does not make the app unready.
    """
    ctx: OrchestrationContext | None = getattr(request.app.state, "orchestration", None)
    checks = {
        "api": "ok",
        "database": await _check_database(ctx),
        "queue": _check_queue(ctx),
    }

    dead_letter = None
    if ctx is not None and checks["database"] == "ok":
        dead_letter = (await ctx.queue.get_counts(DEAD_LETTER)).waiting

    status = "ready" if all(v == "ok" for v in checks.values()) else "not_ready"
    return ReadinessResponse(status=status, checks=checks, dead_letter=dead_letter)
