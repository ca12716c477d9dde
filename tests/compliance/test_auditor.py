"""Tests for ComplianceAuditor."""

import random
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from tenacity import wait_none

from src.compliance.auditor import DELETE_ALL_EVENT, RETENTION_PURGE_JOB, ComplianceAuditor
from src.errors import PersistenceError, ValidationError
from src.events import ActionCreated, DecisionFinalized, EventBus
from src.jobs import MEETING_PROCESSING, InMemoryQueueBackend, JobQueue, JobState
from src.models import (
    ActionItem,
    AuditEntry,
    ConsentProfile,
    DecisionCard,
    Meeting,
    MeetingBrief,
    TranscriptSegment,
)
from src.repositories.audit_repo import AuditRepository


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def queue(clock) -> JobQueue:
    return JobQueue(InMemoryQueueBackend(), clock=clock, rng=random.Random(0))


@pytest.fixture
def auditor(bus, queue, audit_repo, meeting_repo, clock) -> ComplianceAuditor:
    auditor = ComplianceAuditor(
        bus,
        audit_repo,
        meeting_repo,
        queue,
        receipt_secret="receipt-key",
        retry_wait=wait_none(),
        clock=clock,
    )
    auditor.register()
    return auditor


async def _populate(meeting_repo, clock, meeting_id: str = "m-1") -> None:
    await meeting_repo.save_meeting(
        Meeting(
            meeting_id=meeting_id,
            title="Vendor review",
            start_time=clock.now,
            organizer_email="lead@example.com",
        )
    )
    await meeting_repo.upsert_action(ActionItem(meeting_id=meeting_id, title="Call", owner="x"))
    await meeting_repo.upsert_action(ActionItem(meeting_id=meeting_id, title="Mail", owner="y"))
    await meeting_repo.upsert_decision(
        DecisionCard(meeting_id=meeting_id, headline="Switch vendor", owner="z")
    )
    await meeting_repo.add_brief(MeetingBrief(meeting_id=meeting_id, subject="Brief"))
    await meeting_repo.add_transcript_segments(
        meeting_id,
        [
            TranscriptSegment(speaker="A", text="Hej", start_time="0", end_time="1"),
            TranscriptSegment(speaker="B", text="Hej hej", start_time="1", end_time="2"),
        ],
    )


class TestAuditTrail:
    async def test_events_are_audited(self, auditor, bus, audit_repo, clock):
        action = ActionItem(meeting_id="m-1", title="Call", owner="x")
        decision = DecisionCard(meeting_id="m-1", headline="Go", owner="y")
        await bus.publish(ActionCreated(meeting_id="m-1", occurred_at=clock.now, action=action))
        await bus.publish(
            DecisionFinalized(
                meeting_id="m-1",
                occurred_at=clock.now + timedelta(seconds=1),
                decision=decision,
            )
        )
        await bus.drain()

        entries = await audit_repo.list_for_meeting("m-1")
        assert [(e.event, e.policy) for e in entries] == [
            ("action.created", "action"),
            ("decision.finalized", "decision"),
        ]
        assert entries[0].payload["title"] == "Call"

    async def test_best_effort_write_swallows_final_failure(
        self, bus, queue, meeting_repo, clock
    ):
        failing = MagicMock(spec=AuditRepository)
        failing.record = AsyncMock(side_effect=PersistenceError("db locked"))
        auditor = ComplianceAuditor(
            bus,
            failing,
            meeting_repo,
            queue,
            receipt_secret="k",
            write_attempts=3,
            retry_wait=wait_none(),
            clock=clock,
        )

        written = await auditor.record_best_effort(AuditEntry(meeting_id="m-1", event="x"))

        assert written is False
        assert failing.record.await_count == 3

    async def test_transient_write_failure_is_retried(self, bus, queue, meeting_repo, clock):
        entry = AuditEntry(meeting_id="m-1", event="x")
        flaky = MagicMock(spec=AuditRepository)
        flaky.record = AsyncMock(side_effect=[PersistenceError("busy"), entry])
        auditor = ComplianceAuditor(
            bus, flaky, meeting_repo, queue, receipt_secret="k", retry_wait=wait_none()
        )

        assert await auditor.record_best_effort(entry) is True
        assert flaky.record.await_count == 2


class TestConsent:
    async def test_grant_consent_stores_audits_and_signs(
        self, auditor, bus, meeting_repo, audit_repo, clock
    ):
        receipt = await auditor.grant_consent("m-1", ConsentProfile.PLUS)
        await bus.drain()

        stored = await meeting_repo.get_consent("m-1")
        assert stored.profile == ConsentProfile.PLUS
        assert stored.accepted_at == clock.now
        assert receipt.consent == stored
        assert auditor.verify_receipt(receipt) is True

        [entry] = await audit_repo.list_for_meeting("m-1")
        assert entry.event == "meeting.consent"
        assert entry.policy == "consent"

    async def test_tampered_receipt_fails_verification(self, auditor):
        receipt = await auditor.grant_consent("m-1", ConsentProfile.BAS)
        forged = receipt.model_copy(
            update={
                "consent": receipt.consent.model_copy(
                    update={"profile": ConsentProfile.JURIDIK}
                )
            }
        )
        assert auditor.verify_receipt(forged) is False

    async def test_consent_schedules_retention_purge(self, auditor, bus, queue, clock):
        await auditor.grant_consent("m-1", ConsentProfile.BAS)
        await bus.drain()

        [job] = await queue.backend.list_jobs(MEETING_PROCESSING, JobState.WAITING)
        assert job.job_name == RETENTION_PURGE_JOB
        assert job.payload["meeting_id"] == "m-1"
        assert job.eligible_at == clock.now + timedelta(days=30)

    async def test_new_consent_supersedes_retention(self, auditor, bus, queue, clock):
        await auditor.grant_consent("m-1", ConsentProfile.BAS)
        await bus.drain()
        await auditor.grant_consent("m-1", ConsentProfile.JURIDIK)
        await bus.drain()

        [job] = await queue.backend.list_jobs(MEETING_PROCESSING, JobState.WAITING)
        assert job.eligible_at == clock.now + timedelta(days=180)


class TestDeleteAll:
    async def test_erases_meeting_data_and_keeps_trail(
        self, auditor, bus, meeting_repo, audit_repo, clock
    ):
        await auditor.grant_consent("m-1", ConsentProfile.PLUS)
        await bus.drain()
        await _populate(meeting_repo, clock)
        await _populate(meeting_repo, clock, meeting_id="m-2")

        entry = await auditor.delete_all("m-1", "participant request")

        assert entry.event == DELETE_ALL_EVENT
        assert entry.policy == "compliance"
        assert entry.payload["reason"] == "participant request"
        assert entry.payload["deleted"] == {
            "actions": 2,
            "decisions": 1,
            "briefs": 1,
            "transcript_segments": 2,
            "consent": 1,
            "meeting": 1,
        }
        assert len(entry.payload["audit_hash"]) == 64

        assert await meeting_repo.get_meeting_detail("m-1") is None
        assert await meeting_repo.get_consent("m-1") is None
        assert await meeting_repo.count_artifacts("m-1") == {
            "actions": 0,
            "decisions": 0,
            "briefs": 0,
            "transcript_segments": 0,
        }
        # Other meetings untouched
        assert (await meeting_repo.count_artifacts("m-2"))["actions"] == 2

        trail = await audit_repo.list_for_meeting("m-1")
        assert [e.event for e in trail] == ["meeting.consent", DELETE_ALL_EVENT]

    async def test_delete_cancels_retention_purge(self, auditor, bus, queue):
        await auditor.grant_consent("m-1", ConsentProfile.BAS)
        await bus.drain()

        await auditor.delete_all("m-1", "closed")

        assert await queue.backend.list_jobs(MEETING_PROCESSING, JobState.WAITING) == []

    async def test_delete_of_unknown_meeting_still_audited(self, auditor, audit_repo):
        entry = await auditor.delete_all("m-404", "cleanup")

        assert set(entry.payload["deleted"].values()) == {0}
        assert await audit_repo.count_for_meeting("m-404") == 1

    async def test_reason_required(self, auditor, audit_repo):
        with pytest.raises(ValidationError):
            await auditor.delete_all("m-1", "   ")
        assert await audit_repo.count_for_meeting("m-1") == 0

    async def test_terminal_entry_failure_raises(self, bus, queue, meeting_repo, clock):
        failing = MagicMock(spec=AuditRepository)
        failing.record = AsyncMock(side_effect=PersistenceError("db gone"))
        auditor = ComplianceAuditor(
            bus,
            failing,
            meeting_repo,
            queue,
            receipt_secret="k",
            write_attempts=2,
            retry_wait=wait_none(),
            clock=clock,
        )

        with pytest.raises(PersistenceError):
            await auditor.delete_all("m-1", "request")
        assert failing.record.await_count == 2


class TestRetentionPurge:
    async def test_expired_consent_purges_meeting(
        self, auditor, bus, queue, meeting_repo, audit_repo, clock
    ):
        await auditor.grant_consent("m-1", ConsentProfile.BAS)
        await bus.drain()
        await _populate(meeting_repo, clock)

        clock.advance(days=30)
        assert await queue.process_next(MEETING_PROCESSING) is True

        assert await meeting_repo.get_meeting("m-1") is None
        trail = await audit_repo.list_for_meeting("m-1")
        assert trail[-1].event == DELETE_ALL_EVENT
        assert trail[-1].payload["reason"] == "retention expired"

    async def test_renewed_consent_is_not_purged(
        self, auditor, bus, queue, meeting_repo, clock
    ):
        await auditor.grant_consent("m-1", ConsentProfile.BAS)
        await bus.drain()
        await _populate(meeting_repo, clock)
        # Renewed out of band without rescheduling the purge
        clock.advance(days=10)
        await meeting_repo.save_consent(
            (await meeting_repo.get_consent("m-1")).model_copy(update={"accepted_at": clock.now})
        )

        clock.advance(days=20)
        await queue.process_next(MEETING_PROCESSING)

        assert await meeting_repo.get_meeting("m-1") is not None

    async def test_missing_consent_skips_purge(self, auditor, queue, meeting_repo, clock):
        await queue.enqueue(MEETING_PROCESSING, RETENTION_PURGE_JOB, {"meeting_id": "m-1"})
        await _populate(meeting_repo, clock)

        await queue.process_next(MEETING_PROCESSING)

        assert await meeting_repo.get_meeting("m-1") is not None
        assert (await queue.get_counts(MEETING_PROCESSING)).completed == 1
