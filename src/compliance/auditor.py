"""Compliance auditor: audit trail, erasure and retention.

Every consent, decision and action event is written to the append-only
audit trail. These writes are best-effort: they are retried a bounded
number of times and a final failure is logged, never raised into the
event bus. The terminal ``DELETE_ALL`` entry of an erasure is the
exception; its failure is raised to the caller.
"""

import hashlib
import hmac
import json
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.errors import PersistenceError, ValidationError
from src.events.base import EventKind, MeetingEvent
from src.events.bus import EventBus
from src.events.types import ConsentGranted
from src.jobs.job_queue import JobQueue
from src.jobs.models import MEETING_PROCESSING, Job
from src.models.audit import AuditEntry
from src.models.base import utc_now
from src.models.consent import ConsentProfile, ConsentReceipt, ConsentRecord
from src.policy.engine import build_consent
from src.repositories.audit_repo import AuditRepository
from src.repositories.meeting_repo import MeetingRepository

logger = structlog.get_logger()

DELETE_ALL_EVENT = "DELETE_ALL"
RETENTION_PURGE_JOB = "retention-purge"

_POLICY_TAGS: dict[EventKind, str] = {
    EventKind.MEETING_CONSENT: "consent",
    EventKind.DECISION_FINALIZED: "decision",
    EventKind.ACTION_CREATED: "action",
}


class ComplianceAuditor:
    """Maintains the audit trail and erases meeting data on request.

    Audit entries for a meeting are never removed: ``delete_all``
    erases the meeting's data and then appends to its trail.
    """

    def __init__(
        self,
        bus: EventBus,
        audit_repo: AuditRepository,
        meeting_repo: MeetingRepository,
        queue: JobQueue,
        *,
        receipt_secret: str,
        write_attempts: int = 3,
        retry_wait: wait_base | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize auditor.

        Args:
            bus: Event bus to subscribe on
            audit_repo: Append-only audit storage
            meeting_repo: Meeting data to erase
            queue: Job queue for retention purges
            receipt_secret: Key for consent receipt signatures
            write_attempts: Attempts per audit write
            retry_wait: Tenacity wait strategy between attempts
            clock: Source of the current UTC time
        """
        self._bus = bus
        self._audit = audit_repo
        self._meetings = meeting_repo
        self._queue = queue
        self._receipt_key = receipt_secret.encode()
        self._write_attempts = write_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.1, max=2)
        self._clock = clock

    def register(self) -> None:
        """Subscribe to audited events and register the purge handler."""
        for kind in _POLICY_TAGS:
            self._bus.subscribe(kind, self.on_event)
        self._queue.register(
            MEETING_PROCESSING, RETENTION_PURGE_JOB, self.handle_retention_purge
        )

    # Audit trail

    async def on_event(self, event: MeetingEvent) -> None:
        entry = AuditEntry(
            meeting_id=event.meeting_id,
            event=event.kind.value,
            payload=event.payload,
            policy=_POLICY_TAGS.get(event.kind),
            occurred_at=event.occurred_at,
        )
        await self.record_best_effort(entry)
        if isinstance(event, ConsentGranted):
            await self.schedule_retention(event.consent)

    async def _write(self, entry: AuditEntry) -> AuditEntry:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._write_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(PersistenceError),
            reraise=True,
        ):
            with attempt:
                return await self._audit.record(entry)
        msg = f"Audit entry {entry.event} was not written"
        raise PersistenceError(msg)

    async def record_best_effort(self, entry: AuditEntry) -> bool:
        """Write an entry, logging instead of raising on final failure.

        Returns:
            True if the entry was written
        """
        try:
            await self._write(entry)
        except PersistenceError as e:
            logger.error(
                "audit write failed",
                meeting_id=entry.meeting_id,
                audit_event=entry.event,
                attempts=self._write_attempts,
                error=str(e),
            )
            return False
        return True

    async def list_for_meeting(self, meeting_id: str) -> list[AuditEntry]:
        """Audit trail of a meeting, oldest first."""
        return await self._audit.list_for_meeting(meeting_id)

    # Consent

    async def grant_consent(
        self,
        meeting_id: str,
        profile: ConsentProfile,
        accepted_at: datetime | None = None,
    ) -> ConsentReceipt:
        """Replace a meeting's consent with the one ``profile`` implies.

        Publishes ``meeting.consent`` and returns a signed receipt.
        """
        consent = build_consent(meeting_id, profile, accepted_at or self._clock())
        await self._meetings.save_consent(consent)
        await self._bus.publish(
            ConsentGranted(
                meeting_id=meeting_id,
                occurred_at=consent.accepted_at,
                consent=consent,
            )
        )
        logger.info("consent granted", meeting_id=meeting_id, profile=profile.value)
        return self.consent_receipt(meeting_id, consent)

    def _sign(self, meeting_id: str, consent: ConsentRecord) -> str:
        message = f"{meeting_id}:{consent.accepted_at.isoformat()}:{consent.profile.value}"
        return hmac.new(self._receipt_key, message.encode(), hashlib.sha256).hexdigest()

    def consent_receipt(self, meeting_id: str, consent: ConsentRecord) -> ConsentReceipt:
        """Signed proof of the consent a meeting is recorded under."""
        return ConsentReceipt(
            meeting_id=meeting_id,
            consent=consent,
            issued_at=self._clock(),
            signature=self._sign(meeting_id, consent),
        )

    def verify_receipt(self, receipt: ConsentReceipt) -> bool:
        expected = self._sign(receipt.meeting_id, receipt.consent)
        return hmac.compare_digest(expected, receipt.signature)

    # Erasure

    async def delete_all(self, meeting_id: str, reason: str) -> AuditEntry:
        """Erase all stored data of a meeting and record the erasure.

        The audit trail itself is kept.

        Returns:
            The terminal DELETE_ALL audit entry

        Raises:
            ValidationError: Empty reason
            PersistenceError: The terminal entry could not be written
        """
        if not reason.strip():
            msg = "A deletion reason is required"
            raise ValidationError(msg)

        deleted = {
            "actions": await self._meetings.delete_actions(meeting_id),
            "decisions": await self._meetings.delete_decisions(meeting_id),
            "briefs": await self._meetings.delete_briefs(meeting_id),
            "transcript_segments": await self._meetings.delete_transcript(meeting_id),
            "consent": await self._meetings.delete_consent(meeting_id),
            "meeting": await self._meetings.delete_meeting(meeting_id),
        }
        await self._cancel_retention(meeting_id)

        deleted_at = self._clock()
        audit_hash = hashlib.sha256(
            json.dumps(
                {
                    "meeting_id": meeting_id,
                    "reason": reason,
                    "deleted": deleted,
                    "deleted_at": deleted_at.isoformat(),
                },
                sort_keys=True,
            ).encode()
        ).hexdigest()

        entry = AuditEntry(
            meeting_id=meeting_id,
            event=DELETE_ALL_EVENT,
            payload={"reason": reason, "deleted": deleted, "audit_hash": audit_hash},
            policy="compliance",
            occurred_at=deleted_at,
        )
        await self._write(entry)
        logger.info("meeting data deleted", meeting_id=meeting_id, reason=reason, **deleted)
        return entry

    # Retention

    async def _cancel_retention(self, meeting_id: str) -> int:
        return await self._queue.cancel_matching(
            MEETING_PROCESSING,
            RETENTION_PURGE_JOB,
            lambda payload: payload.get("meeting_id") == meeting_id,
        )

    async def schedule_retention(self, consent: ConsentRecord) -> str:
        """Schedule the purge for when ``consent`` expires.

        Supersedes any earlier purge scheduled for the meeting.
        """
        await self._cancel_retention(consent.meeting_id)
        expires_at = consent.accepted_at + timedelta(days=consent.retention_days)
        delay_ms = max(0, int((expires_at - self._clock()).total_seconds() * 1000))
        job_id = await self._queue.enqueue(
            MEETING_PROCESSING,
            RETENTION_PURGE_JOB,
            {"meeting_id": consent.meeting_id, "expires_at": expires_at.isoformat()},
            {"delay_ms": delay_ms},
        )
        logger.info(
            "retention purge scheduled",
            meeting_id=consent.meeting_id,
            expires_at=expires_at.isoformat(),
        )
        return job_id

    async def handle_retention_purge(self, job: Job) -> None:
        """Erase a meeting whose current consent has expired."""
        meeting_id = job.payload.get("meeting_id")
        if not isinstance(meeting_id, str) or not meeting_id:
            msg = f"Invalid retention payload: {job.payload}"
            raise ValidationError(msg)

        consent = await self._meetings.get_consent(meeting_id)
        if consent is None:
            logger.info("retention purge skipped, no consent", meeting_id=meeting_id)
            return

        expires_at = consent.accepted_at + timedelta(days=consent.retention_days)
        if self._clock() < expires_at:
            logger.info(
                "retention purge skipped, consent renewed",
                meeting_id=meeting_id,
                expires_at=expires_at.isoformat(),
            )
            return

        await self.delete_all(meeting_id, reason="retention expired")
