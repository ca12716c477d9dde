"""Integration tests for queue, webhook and health endpoints."""

import hashlib
import hmac
import json

from httpx import AsyncClient

from src.bootstrap import OrchestrationContext
from src.jobs import ALL_QUEUES, DEAD_LETTER, MEETING_PROCESSING
from src.main import app


def _teams_headers(body: bytes) -> dict[str, str]:
    signature = hmac.new(b"teams-secret", body, hashlib.sha256).hexdigest()
    return {"X-Teams-Signature": signature, "Content-Type": "application/json"}


def _transcript_webhook() -> bytes:
    return json.dumps(
        {
            "meetingId": "m-1",
            "event": "meeting.transcript_completed",
            "data": {"segments": [{"speaker": "A", "text": "Hej"}]},
        }
    ).encode()


async def _dead_letter_one(client: AsyncClient, ctx: OrchestrationContext) -> None:
    """Transcript without consent ends up in the dead-letter queue."""
    body = _transcript_webhook()
    response = await client.post(
        "/webhooks/microsoft-teams", content=body, headers=_teams_headers(body)
    )
    assert response.status_code == 200
    await ctx.queue.process_next(MEETING_PROCESSING)


class TestWebhooks:
    """Tests for POST /webhooks/{provider}."""

    async def test_signed_webhook_accepted(
        self, client: AsyncClient, orchestration: OrchestrationContext
    ) -> None:
        body = json.dumps({"meetingId": "m-1", "event": "meeting.ended"}).encode()

        response = await client.post(
            "/webhooks/microsoft-teams", content=body, headers=_teams_headers(body)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        job = await orchestration.queue.backend.get_job(data["job_id"])
        assert job.payload["event"] == "meeting.ended"

    async def test_bad_signature_returns_403(self, client: AsyncClient) -> None:
        body = json.dumps({"meetingId": "m-1", "event": "meeting.ended"}).encode()

        response = await client.post(
            "/webhooks/microsoft-teams",
            content=body,
            headers={"X-Teams-Signature": "0" * 64},
        )

        assert response.status_code == 403

    async def test_zoom_challenge(self, client: AsyncClient) -> None:
        body = {"event": "endpoint.url_validation", "payload": {"plainToken": "tok"}}

        response = await client.post("/webhooks/zoom", json=body)

        assert response.status_code == 200
        assert response.json()["plainToken"] == "tok"
        assert response.json()["encryptedToken"]

    async def test_unknown_provider_returns_422(self, client: AsyncClient) -> None:
        response = await client.post("/webhooks/skype", json={"meetingId": "m-1", "event": "x"})
        assert response.status_code == 422

    async def test_malformed_body_returns_422(self, client: AsyncClient) -> None:
        response = await client.post("/webhooks/google-meet", content=b"not json")
        assert response.status_code == 422


class TestQueueStats:
    """Tests for GET /queues/stats."""

    async def test_stats_cover_all_queues(self, client: AsyncClient) -> None:
        response = await client.get("/queues/stats")

        assert response.status_code == 200
        data = response.json()
        assert set(data["queues"]) == set(ALL_QUEUES)
        assert data["total"]["waiting"] == 0

    async def test_stats_count_dead_letters(
        self, client: AsyncClient, orchestration: OrchestrationContext
    ) -> None:
        await _dead_letter_one(client, orchestration)

        data = (await client.get("/queues/stats")).json()

        assert data["queues"][DEAD_LETTER]["waiting"] == 1
        assert data["queues"][MEETING_PROCESSING]["failed"] == 1


class TestDeadLetter:
    """Tests for dead-letter listing and retry."""

    async def test_list_and_retry(
        self, client: AsyncClient, orchestration: OrchestrationContext
    ) -> None:
        await _dead_letter_one(client, orchestration)

        [record] = (await client.get("/queues/dead-letter")).json()
        assert record["original_queue"] == MEETING_PROCESSING
        assert record["failure_reason"] == "Policy denied: consent.required"

        response = await client.post(f"/queues/dead-letter/{record['id']}/retry")

        assert response.status_code == 200
        job = await orchestration.queue.backend.get_job(response.json()["job_id"])
        assert job.attempts == 0
        assert (await client.get("/queues/dead-letter")).json() == []

    async def test_limit_validated(self, client: AsyncClient) -> None:
        response = await client.get("/queues/dead-letter", params={"limit": 0})
        assert response.status_code == 422

    async def test_retry_unknown_record_returns_404(self, client: AsyncClient) -> None:
        response = await client.post("/queues/dead-letter/missing/retry")
        assert response.status_code == 404


class TestHealth:
    """Tests for health endpoints."""

    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    async def test_liveness(self, client: AsyncClient) -> None:
        response = await client.get("/health/live")
        assert response.json() == {"status": "alive"}

    async def test_readiness_reports_stopped_workers(self, client: AsyncClient) -> None:
        response = await client.get("/health/ready")

        data = response.json()
        assert data["checks"] == {"api": "ok", "database": "ok", "queue": "stopped"}
        assert data["status"] == "not_ready"
        assert data["dead_letter"] == 0

    async def test_readiness_with_running_workers(
        self, client: AsyncClient, orchestration: OrchestrationContext
    ) -> None:
        await orchestration.queue.start()

        data = (await client.get("/health/ready")).json()

        assert data["status"] == "ready"

    async def test_uninitialized_app_returns_503(self, client: AsyncClient) -> None:
        ctx = app.state.orchestration
        del app.state.orchestration
        try:
            response = await client.get("/queues/stats")
        finally:
            app.state.orchestration = ctx

        assert response.status_code == 503
