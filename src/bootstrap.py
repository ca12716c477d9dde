"""Wiring of the orchestration core.

``initialize_orchestration`` builds every component once and returns
them in an explicit context object; nothing is kept in module globals.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from src.adapters.slack_adapter import SlackAdapter
from src.compliance.auditor import ComplianceAuditor
from src.config import Settings, get_settings
from src.db.turso import TursoClient
from src.events.bus import EventBus
from src.ingress.processor import TranscriptIngestor
from src.ingress.webhooks import WebhookIngress
from src.integration.notification_service import NotificationService
from src.jobs.backend import InMemoryQueueBackend, QueueBackend
from src.jobs.job_queue import JobQueue
from src.jobs.turso_backend import TursoQueueBackend
from src.policy.engine import ConsentPolicyEngine
from src.redaction.pipeline import RedactionPipeline
from src.repositories.audit_repo import AuditRepository
from src.repositories.meeting_repo import MeetingRepository
from src.routing.action_router import ActionRouter
from src.routing.briefing import BriefingScheduler

logger = logging.getLogger(__name__)


@dataclass
class OrchestrationContext:
    """All wired components of a running orchestrator."""

    settings: Settings
    db: TursoClient
    bus: EventBus
    queue: JobQueue
    meetings: MeetingRepository
    audit: AuditRepository
    policy: ConsentPolicyEngine
    redaction: RedactionPipeline
    notifier: NotificationService
    action_router: ActionRouter
    briefing: BriefingScheduler
    auditor: ComplianceAuditor
    ingress: WebhookIngress
    ingestor: TranscriptIngestor
    owns_db: bool = False


async def initialize_orchestration(
    settings: Settings | None = None,
    *,
    db: TursoClient | None = None,
    notifier: NotificationService | None = None,
    backend: QueueBackend | None = None,
    start_workers: bool = True,
) -> OrchestrationContext:
    """Build, register and optionally start the orchestration core.

    Args:
        settings: Configuration; defaults to the cached settings
        db: Connected database client; one is created from settings if omitted
        notifier: Notification delivery; defaults to Slack
        backend: Queue storage; chosen by ``settings.queue_backend`` if omitted
        start_workers: Start the queue worker pools

    Returns:
        The wired context, to be passed to ``shutdown_orchestration``
    """
    settings = settings or get_settings()

    owns_db = db is None
    if db is None:
        db = TursoClient(url=settings.turso_database_url, auth_token=settings.turso_auth_token)
        await db.connect()

    meetings = MeetingRepository(db)
    await meetings.init_schema()
    audit = AuditRepository(db)
    await audit.init_schema()

    if backend is None:
        if settings.queue_backend == "turso":
            backend = TursoQueueBackend(db)
            await backend.init_schema()
        else:
            backend = InMemoryQueueBackend()
    logger.info(f"Queue backend: {type(backend).__name__}")

    queue = JobQueue(
        backend,
        concurrency=settings.queue_concurrency(),
        job_timeout_s=settings.job_timeout_seconds,
        poll_interval_s=settings.queue_poll_interval_seconds,
    )
    bus = EventBus()
    policy = ConsentPolicyEngine(meetings.get_consent)
    redaction = RedactionPipeline()
    notifier = notifier or NotificationService(SlackAdapter(settings.slack_bot_token))

    # Audit trail subscribes first
    auditor = ComplianceAuditor(
        bus,
        audit,
        meetings,
        queue,
        receipt_secret=settings.consent_receipt_secret,
        write_attempts=settings.audit_write_attempts,
    )
    auditor.register()

    action_router = ActionRouter(
        bus,
        queue,
        meetings,
        policy,
        notifier,
        redaction,
        nudge_window=timedelta(hours=settings.nudge_window_hours),
        escalation_steps=settings.nudge_escalation_steps,
        escalation_window=timedelta(hours=settings.nudge_escalation_window_hours),
    )
    action_router.register()

    briefing = BriefingScheduler(
        bus,
        queue,
        meetings,
        policy,
        notifier,
        lead_time=timedelta(minutes=settings.pre_brief_lead_minutes),
    )
    briefing.register()

    ingestor = TranscriptIngestor(queue, meetings, policy, redaction)
    ingestor.register()
    ingress = WebhookIngress(queue, settings.webhook_secrets())

    if start_workers:
        await queue.start()
    logger.info("Orchestration initialized")

    return OrchestrationContext(
        settings=settings,
        db=db,
        bus=bus,
        queue=queue,
        meetings=meetings,
        audit=audit,
        policy=policy,
        redaction=redaction,
        notifier=notifier,
        action_router=action_router,
        briefing=briefing,
        auditor=auditor,
        ingress=ingress,
        ingestor=ingestor,
        owns_db=owns_db,
    )


async def shutdown_orchestration(ctx: OrchestrationContext) -> None:
    """Stop workers, let in-flight event handlers finish and close the db."""
    await ctx.queue.stop()
    await ctx.bus.drain()
    if ctx.owns_db:
        await ctx.db.close()
    logger.info("Orchestration shut down")
