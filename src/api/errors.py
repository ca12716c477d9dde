"""Mapping of orchestration errors to HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.errors import (
    NotFoundError,
    PersistenceError,
    PolicyDeniedError,
    ValidationError,
)
from src.ingress.webhooks import InvalidSignatureError

logger = structlog.get_logger()


async def _policy_denied(request: Request, exc: PolicyDeniedError) -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={
            "detail": str(exc),
            "policy": exc.decision.policy,
            "reason": exc.decision.reason,
        },
    )


async def _invalid_signature(request: Request, exc: InvalidSignatureError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


async def _validation(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _persistence(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("persistence failure", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on an application."""
    app.add_exception_handler(PolicyDeniedError, _policy_denied)
    app.add_exception_handler(InvalidSignatureError, _invalid_signature)
    app.add_exception_handler(ValidationError, _validation)
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(PersistenceError, _persistence)
