"""Provider webhook endpoint."""

from typing import Any

from fastapi import APIRouter, Depends, Request

from src.api.deps import get_orchestration
from src.bootstrap import OrchestrationContext

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    ctx: OrchestrationContext = Depends(get_orchestration),
) -> dict[str, Any]:
    """Receive a meeting provider webhook.

    The raw body is needed for signature verification, so it is read
    directly rather than parsed by FastAPI.
    """
    raw_body = await request.body()
    return await ctx.ingress.handle(provider, raw_body, request.headers)
