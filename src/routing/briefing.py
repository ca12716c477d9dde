"""Pre- and post-meeting briefs on the briefing queue.

A pre-brief fires a fixed lead time before the meeting starts. A
post-brief is queued as soon as a finished meeting has been summarized
(``meeting.summary``) and carries the summary in its job payload.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

import structlog
from pydantic import ValidationError as PydanticValidationError

from src.errors import TransientExecutionError, ValidationError
from src.events.base import EventKind
from src.events.bus import EventBus
from src.events.types import MeetingSummarized
from src.integration.notification_service import NotificationService
from src.jobs.job_queue import JobQueue
from src.jobs.models import BRIEFING, Job
from src.models.base import utc_now
from src.models.brief import MeetingBrief, MeetingSummary
from src.models.meeting import Meeting, MeetingDetail
from src.policy.engine import ConsentPolicyEngine
from src.policy.schemas import DataClass, Operation, PolicyContext
from src.repositories.meeting_repo import MeetingRepository

logger = structlog.get_logger()

PRE_BRIEF_JOB = "pre-brief"
POST_BRIEF_JOB = "post-brief"


class BriefComposer(Protocol):
    """Produces a brief from everything stored for a meeting.

    Without a summary the brief is a pre-brief; with one it is the
    post-brief of a finished meeting.
    """

    async def compose(
        self, detail: MeetingDetail, summary: MeetingSummary | None = None
    ) -> MeetingBrief: ...


class SummaryBriefComposer:
    """Composes briefs from stored decisions, open actions and the summary."""

    def __init__(self, max_points: int = 10):
        self._max_points = max_points

    async def compose(
        self, detail: MeetingDetail, summary: MeetingSummary | None = None
    ) -> MeetingBrief:
        if summary is not None:
            return self._compose_post(detail, summary)

        open_actions = detail.open_actions
        points = [f"Decision: {d.headline}" for d in detail.decisions]
        for action in open_actions:
            due = f", due {action.due_date.date().isoformat()}" if action.due_date else ""
            points.append(f"Open: {action.title} ({action.owner}{due})")

        return MeetingBrief(
            meeting_id=detail.meeting.meeting_id,
            kind="pre",
            subject=f"Brief: {detail.meeting.title}",
            headline=(
                f"{len(detail.decisions)} decision(s), "
                f"{len(open_actions)} open action(s)"
            ),
            key_points=points[: self._max_points],
            content=detail.meeting.agenda or "",
        )

    def _compose_post(self, detail: MeetingDetail, summary: MeetingSummary) -> MeetingBrief:
        # Stored artifacts fill in what the summarizer left empty
        decisions = summary.decisions or [d.headline for d in detail.decisions]
        next_steps = summary.next_steps or [
            f"{a.owner}: {a.title}" for a in detail.open_actions
        ]

        lines = ["Decisions:", *decisions, "", "Next steps:", *next_steps]
        if summary.risks:
            lines += ["", "Risks:", *summary.risks]

        return MeetingBrief(
            meeting_id=detail.meeting.meeting_id,
            kind="post",
            subject=f"Post-brief: {detail.meeting.title}",
            headline="Decisions and next steps",
            key_points=(summary.highlights or decisions)[: self._max_points],
            content="\n".join(lines),
        )


class BriefingScheduler:
    """Schedules and runs pre- and post-meeting briefs.

    One pre-brief and one post-brief job per meeting is waiting at a
    time; rescheduling a meeting or summarizing it again supersedes the
    earlier job.
    """

    def __init__(
        self,
        bus: EventBus,
        queue: JobQueue,
        repo: MeetingRepository,
        policy: ConsentPolicyEngine,
        notifier: NotificationService,
        composer: BriefComposer | None = None,
        *,
        lead_time: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utc_now,
    ):
        self._bus = bus
        self._queue = queue
        self._repo = repo
        self._policy = policy
        self._notifier = notifier
        self._composer = composer or SummaryBriefComposer()
        self._lead_time = lead_time
        self._clock = clock

    def register(self) -> None:
        """Subscribe to summaries and register the brief job handlers."""
        self._bus.subscribe(EventKind.MEETING_SUMMARY, self.on_meeting_summary)
        self._queue.register(BRIEFING, PRE_BRIEF_JOB, self.handle_pre_brief)
        self._queue.register(BRIEFING, POST_BRIEF_JOB, self.handle_post_brief)

    async def record_summary(self, summary: MeetingSummary) -> None:
        """Announce that a meeting has been summarized."""
        await self._bus.publish(
            MeetingSummarized(
                meeting_id=summary.meeting_id,
                occurred_at=self._clock(),
                summary=summary,
            )
        )
        logger.info("meeting summarized", meeting_id=summary.meeting_id)

    async def on_meeting_summary(self, event: MeetingSummarized) -> None:
        await self.schedule_post_brief(event.summary)

    async def _supersede(self, job_name: str, meeting_id: str) -> None:
        await self._queue.cancel_matching(
            BRIEFING,
            job_name,
            lambda payload: payload.get("meeting_id") == meeting_id,
        )

    async def schedule_pre_brief(self, meeting: Meeting) -> str | None:
        """Schedule the brief ``lead_time`` before the meeting starts.

        Returns:
            The job id, or None if the meeting has already started
        """
        now = self._clock()
        if meeting.start_time <= now:
            return None

        await self._supersede(PRE_BRIEF_JOB, meeting.meeting_id)
        fire_at = meeting.start_time - self._lead_time
        delay_ms = max(0, int((fire_at - now).total_seconds() * 1000))
        job_id = await self._queue.enqueue(
            BRIEFING,
            PRE_BRIEF_JOB,
            {"meeting_id": meeting.meeting_id},
            {"delay_ms": delay_ms},
        )
        logger.info(
            "pre-brief scheduled",
            meeting_id=meeting.meeting_id,
            fire_at=fire_at.isoformat(),
        )
        return job_id

    async def schedule_post_brief(self, summary: MeetingSummary) -> str:
        """Queue the post-brief for a summarized meeting right away."""
        await self._supersede(POST_BRIEF_JOB, summary.meeting_id)
        job_id = await self._queue.enqueue(
            BRIEFING,
            POST_BRIEF_JOB,
            {"meeting_id": summary.meeting_id, "summary": summary.model_dump(mode="json")},
        )
        logger.info("post-brief scheduled", meeting_id=summary.meeting_id, job_id=job_id)
        return job_id

    async def handle_pre_brief(self, job: Job) -> None:
        """Compose, store and deliver the brief for a meeting."""
        meeting_id = job.payload.get("meeting_id")
        if not isinstance(meeting_id, str) or not meeting_id:
            msg = f"Invalid pre-brief payload: {job.payload}"
            raise ValidationError(msg)
        await self._brief(job, meeting_id, None)

    async def handle_post_brief(self, job: Job) -> None:
        """Compose, store and deliver the post-brief of a summarized meeting."""
        try:
            summary = MeetingSummary.model_validate(job.payload.get("summary"))
        except PydanticValidationError as e:
            msg = f"Invalid post-brief payload: {e.error_count()} error(s)"
            raise ValidationError(msg) from e
        await self._brief(job, summary.meeting_id, summary)

    async def _brief(
        self, job: Job, meeting_id: str, summary: MeetingSummary | None
    ) -> None:
        kind = "post" if summary is not None else "pre"
        detail = await self._repo.get_meeting_detail(meeting_id)
        if detail is None:
            logger.info(f"{kind}-brief skipped", meeting_id=meeting_id)
            return

        await self._policy.require(
            PolicyContext(
                meeting_id=meeting_id,
                consent=detail.consent,
                data_class=DataClass.DOCUMENT,
                operation=Operation.PROCESS,
            )
        )
        brief = await self._composer.compose(detail, summary)
        # Retries of the same job overwrite one brief
        brief = brief.model_copy(update={"id": f"{kind}-{job.id}"})
        await self._repo.add_brief(brief)

        result = await self._notifier.send_brief(detail.meeting, brief)
        if not result.success and not result.recipient_unknown:
            msg = f"Brief delivery to {result.recipient_email} failed: {result.error}"
            raise TransientExecutionError(msg)
        logger.info(f"{kind}-brief delivered", meeting_id=meeting_id, success=result.success)
