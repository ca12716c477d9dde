"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from src.bootstrap import (
    OrchestrationContext,
    initialize_orchestration,
    shutdown_orchestration,
)
from src.config import Settings
from src.db.turso import TursoClient
from src.integration.notification_service import NotificationService
from src.integration.schemas import NotificationResult
from src.main import app
from src.repositories.audit_repo import AuditRepository
from src.repositories.meeting_repo import MeetingRepository


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=UTC))


@pytest.fixture
async def db_client(tmp_path: Path) -> AsyncIterator[TursoClient]:
    """Create a temp file database client for testing."""
    db_path = tmp_path / "test_orchestrator.db"
    client = TursoClient(url=f"file:{db_path}")
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
async def meeting_repo(db_client: TursoClient) -> MeetingRepository:
    repo = MeetingRepository(db_client)
    await repo.init_schema()
    return repo


@pytest.fixture
async def audit_repo(db_client: TursoClient) -> AuditRepository:
    repo = AuditRepository(db_client)
    await repo.init_schema()
    return repo


@pytest.fixture
def mock_notifier() -> MagicMock:
    """NotificationService whose sends all succeed."""
    notifier = MagicMock(spec=NotificationService)
    delivered = NotificationResult(
        success=True, recipient_email="owner@example.com", message_ts="1700000000.1"
    )
    notifier.send_action_nudge = AsyncMock(return_value=delivered)
    notifier.send_decision_notice = AsyncMock(return_value=delivered)
    notifier.send_brief = AsyncMock(return_value=delivered)
    return notifier


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        queue_backend="memory",
        consent_receipt_secret="test-receipt-secret",
        slack_bot_token=None,
        webex_webhook_secret=None,
        zoom_webhook_secret_token="zoom-secret",
        teams_webhook_secret="teams-secret",
        google_meet_webhook_secret=None,
    )


@pytest.fixture
async def orchestration(
    test_settings: Settings,
    db_client: TursoClient,
    mock_notifier: MagicMock,
) -> AsyncIterator[OrchestrationContext]:
    """Wired orchestration core without running workers.

    Tests drive job execution through ``queue.process_next``.
    """
    ctx = await initialize_orchestration(
        test_settings,
        db=db_client,
        notifier=mock_notifier,
        start_workers=False,
    )
    yield ctx
    await shutdown_orchestration(ctx)


@pytest.fixture
async def client(orchestration: OrchestrationContext) -> AsyncIterator[AsyncClient]:
    """Create async test client for the FastAPI app."""
    app.state.orchestration = orchestration

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.orchestration
