"""API router aggregation."""

from fastapi import APIRouter

from src.api.actions import router as actions_router
from src.api.compliance import router as compliance_router
from src.api.health import router as health_router
from src.api.meetings import router as meetings_router
from src.api.queues import router as queues_router
from src.api.webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(meetings_router)
# Consent, audit and erasure live under /meetings as well
api_router.include_router(compliance_router)
api_router.include_router(actions_router)
api_router.include_router(queues_router)
api_router.include_router(webhooks_router)
