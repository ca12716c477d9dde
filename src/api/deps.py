"""Shared FastAPI dependencies."""

from fastapi import HTTPException, Request

from src.bootstrap import OrchestrationContext


def get_orchestration(request: Request) -> OrchestrationContext:
    """Dependency to get the orchestration context from app state."""
    ctx = getattr(request.app.state, "orchestration", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="Orchestration not initialized")
    return ctx
