"""Processing of queued provider webhooks."""

from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from src.errors import ValidationError
from src.ingress.webhooks import PROVIDER_WEBHOOK_JOB
from src.jobs.job_queue import JobQueue
from src.jobs.models import MEETING_PROCESSING, Job
from src.models.meeting import TranscriptSegment
from src.policy.engine import ConsentPolicyEngine
from src.policy.schemas import DataClass, Operation, PolicyContext
from src.redaction.pipeline import RedactionOptions, RedactionPipeline
from src.repositories.meeting_repo import MeetingRepository

logger = structlog.get_logger()


def is_transcript_event(event: str) -> bool:
    return "transcript" in event.lower()


def parse_segments(data: Any) -> list[TranscriptSegment]:
    """Read transcript segments from a webhook ``data`` object.

    Accepts ``{"segments": [...]}`` with snake_case or camelCase time keys.

    Raises:
        ValidationError: If the data doesn't contain valid segments
    """
    if not isinstance(data, dict) or not isinstance(data.get("segments"), list):
        msg = "Transcript webhook data must contain a segments list"
        raise ValidationError(msg)

    segments = []
    for raw in data["segments"]:
        if not isinstance(raw, dict):
            msg = "Transcript segment must be an object"
            raise ValidationError(msg)
        try:
            segments.append(
                TranscriptSegment(
                    speaker=raw.get("speaker") or "Unknown",
                    text=raw["text"],
                    start_time=str(raw.get("start_time", raw.get("startTime", ""))),
                    end_time=str(raw.get("end_time", raw.get("endTime", ""))),
                    language=raw.get("language"),
                )
            )
        except (KeyError, PydanticValidationError) as e:
            msg = f"Invalid transcript segment: {e}"
            raise ValidationError(msg) from e
    return segments


class TranscriptIngestor:
    """Stores redacted transcripts delivered by provider webhooks.

    Transcript text is only stored when consent allows storing
    transcripts, and always after redaction.
    """

    def __init__(
        self,
        queue: JobQueue,
        repo: MeetingRepository,
        policy: ConsentPolicyEngine,
        redaction: RedactionPipeline,
        options: RedactionOptions | None = None,
    ):
        self._queue = queue
        self._repo = repo
        self._policy = policy
        self._redaction = redaction
        self._options = options or RedactionOptions()

    def register(self) -> None:
        self._queue.register(MEETING_PROCESSING, PROVIDER_WEBHOOK_JOB, self.handle_webhook)

    async def handle_webhook(self, job: Job) -> None:
        meeting_id = job.payload.get("meeting_id")
        event = job.payload.get("event")
        if not isinstance(meeting_id, str) or not meeting_id or not isinstance(event, str):
            msg = f"Invalid provider webhook payload: {job.payload}"
            raise ValidationError(msg)

        if not is_transcript_event(event):
            logger.info(
                "webhook acknowledged",
                provider=job.payload.get("provider"),
                meeting_id=meeting_id,
                webhook_event=event,
            )
            return

        stored = await self.ingest(meeting_id, parse_segments(job.payload.get("data")))
        logger.info("transcript stored", meeting_id=meeting_id, segments=stored)

    async def ingest(self, meeting_id: str, segments: list[TranscriptSegment]) -> int:
        """Redact and store transcript segments for a meeting.

        Raises:
            PolicyDeniedError: If consent doesn't allow storing transcripts
        """
        await self._policy.require(
            PolicyContext(
                meeting_id=meeting_id,
                data_class=DataClass.TRANSCRIPT,
                operation=Operation.STORE,
            )
        )
        redacted = self._redaction.redact_segments(segments, self._options)
        return await self._repo.add_transcript_segments(meeting_id, redacted)
