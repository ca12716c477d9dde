"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.api.errors import register_exception_handlers
from src.api.router import api_router
from src.bootstrap import initialize_orchestration, shutdown_orchestration
from src.config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Connect the database and create schemas
    - Wire bus, queue, routers and auditor
    - Start queue workers

    Shutdown:
    - Stop workers and drain event handlers
    - Close database connection
    """
    logger.info(f"Starting {settings.app_name}...")
    ctx = await initialize_orchestration(settings)
    app.state.orchestration = ctx
    logger.info(f"Database connected: {ctx.db.url}")

    try:
        yield
    finally:
        logger.info(f"Shutting down {settings.app_name}...")
        await shutdown_orchestration(ctx)
        del app.state.orchestration


app = FastAPI(
    title=settings.app_name,
    description="Consent-aware orchestration of meeting follow-up work",
    version=settings.app_version,
    lifespan=lifespan,
)

register_exception_handlers(app)
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
