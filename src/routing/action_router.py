"""Action router: nudges for open action items and decision notices.

Reacts to ``action.created`` by scheduling a delayed ``nudge-action`` job
and to ``decision.finalized`` by queueing a ``decision-notice``. Handlers
re-read the stored state when they fire, so cancellation never has to
race an executing job.
"""

import asyncio
import contextlib
from collections import Counter
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta

import structlog

from src.errors import NotFoundError, TransientExecutionError, ValidationError
from src.events.base import EventKind
from src.events.bus import EventBus
from src.events.types import ActionCreated, DecisionFinalized
from src.integration.notification_service import NotificationService
from src.integration.schemas import NotificationResult
from src.jobs.job_queue import JobQueue
from src.jobs.models import NOTIFICATIONS, NUDGING, Job
from src.models.action_item import ActionItem
from src.models.base import utc_now
from src.models.decision import DecisionCard
from src.policy.engine import ConsentPolicyEngine
from src.policy.schemas import DataClass, Operation, PolicyContext
from src.redaction.pipeline import RedactionPipeline
from src.repositories.meeting_repo import MeetingRepository

logger = structlog.get_logger()

NUDGE_JOB = "nudge-action"
DECISION_NOTICE_JOB = "decision-notice"


class ActionRouter:
    """Schedules, escalates and supersedes nudges for action items.

    At most one nudge job per action is waiting at any time: scheduling
    for an action first cancels the waiting ones, serialised per action
    id. The router never polls; all timing lives in the job queue.
    """

    def __init__(
        self,
        bus: EventBus,
        queue: JobQueue,
        repo: MeetingRepository,
        policy: ConsentPolicyEngine,
        notifier: NotificationService,
        redaction: RedactionPipeline,
        *,
        nudge_window: timedelta = timedelta(hours=48),
        escalation_steps: int = 2,
        escalation_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize router with its collaborators.

        Args:
            bus: Event bus to subscribe on
            queue: Job queue for nudge and notice jobs
            repo: Meeting data access
            policy: Consent gate
            notifier: Message delivery
            redaction: Scrubs decision text before it is sent
            nudge_window: Delay from action creation to the first nudge
            escalation_steps: Follow-up nudges after the first one
            escalation_window: Delay between escalation tiers
            clock: Source of the current UTC time
        """
        self._bus = bus
        self._queue = queue
        self._repo = repo
        self._policy = policy
        self._notifier = notifier
        self._redaction = redaction
        self._nudge_window = nudge_window
        self._escalation_steps = escalation_steps
        self._escalation_window = escalation_window
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    def register(self) -> None:
        """Subscribe to events and register job handlers."""
        self._bus.subscribe(EventKind.ACTION_CREATED, self.on_action_created)
        self._bus.subscribe(EventKind.DECISION_FINALIZED, self.on_decision_finalized)
        self._queue.register(NUDGING, NUDGE_JOB, self.handle_nudge)
        self._queue.register(NOTIFICATIONS, DECISION_NOTICE_JOB, self.handle_decision_notice)

    # Commands

    async def record_action(self, action: ActionItem) -> ActionItem:
        """Store a new action item and announce it.

        Raises:
            PolicyDeniedError: If consent doesn't allow storing actions
        """
        await self._policy.require(
            PolicyContext(
                meeting_id=action.meeting_id,
                data_class=DataClass.ACTION,
                operation=Operation.STORE,
            )
        )
        await self._repo.upsert_action(action)
        await self._bus.publish(
            ActionCreated(
                meeting_id=action.meeting_id,
                occurred_at=self._clock(),
                action=action,
            )
        )
        logger.info("action recorded", action_id=action.id, meeting_id=action.meeting_id)
        return action

    async def finalize_decision(self, decision: DecisionCard) -> DecisionCard:
        """Store a decision card and announce that it is final."""
        await self._repo.upsert_decision(decision)
        await self._bus.publish(
            DecisionFinalized(
                meeting_id=decision.meeting_id,
                occurred_at=self._clock(),
                decision=decision,
            )
        )
        logger.info(
            "decision finalized",
            decision_id=decision.id,
            meeting_id=decision.meeting_id,
        )
        return decision

    async def cancel(self, action_id: str) -> int:
        """Remove every waiting nudge for an action.

        Returns:
            Number of nudge jobs removed
        """
        async with self._action_lock(action_id):
            return await self._cancel_nudges(action_id)

    async def acknowledge(self, action_id: str) -> ActionItem:
        """Record the owner's acknowledgement and stop further nudges.

        Raises:
            NotFoundError: If the action doesn't exist
        """
        action = await self._repo.acknowledge_action(action_id, self._clock())
        if action is None:
            msg = f"Action {action_id} not found"
            raise NotFoundError(msg)
        cancelled = await self.cancel(action_id)
        logger.info("action acknowledged", action_id=action_id, nudges_cancelled=cancelled)
        return action

    # Event subscribers

    async def on_action_created(self, event: ActionCreated) -> None:
        await self.schedule_nudge(event.action, event.occurred_at)

    async def on_decision_finalized(self, event: DecisionFinalized) -> None:
        await self._queue.enqueue(
            NOTIFICATIONS,
            DECISION_NOTICE_JOB,
            {"decision_id": event.decision.id, "meeting_id": event.meeting_id},
        )

    async def schedule_nudge(self, action: ActionItem, occurred_at: datetime) -> str | None:
        """Schedule the first nudge, superseding any waiting one.

        Actions without a due date, or already done or acknowledged,
        get no nudge.

        Returns:
            The nudge job id, or None if no nudge was scheduled
        """
        if action.due_date is None or action.is_settled:
            return None
        fire_at = occurred_at + self._nudge_window
        return await self._schedule(action.id, tier=0, fire_at=fire_at)

    async def _schedule(self, action_id: str, *, tier: int, fire_at: datetime) -> str:
        delay_ms = max(0, int((fire_at - self._clock()).total_seconds() * 1000))
        async with self._action_lock(action_id):
            await self._cancel_nudges(action_id)
            job_id = await self._queue.enqueue(
                NUDGING,
                NUDGE_JOB,
                {"action_id": action_id, "tier": tier},
                {"delay_ms": delay_ms},
            )
        logger.info(
            "nudge scheduled",
            action_id=action_id,
            tier=tier,
            fire_at=fire_at.isoformat(),
        )
        return job_id

    @contextlib.asynccontextmanager
    async def _action_lock(self, action_id: str) -> AsyncIterator[None]:
        """Hold the action's lock; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(action_id, asyncio.Lock())
        self._lock_users[action_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[action_id] -= 1
            if not self._lock_users[action_id]:
                del self._lock_users[action_id]
                del self._locks[action_id]

    async def _cancel_nudges(self, action_id: str) -> int:
        return await self._queue.cancel_matching(
            NUDGING,
            NUDGE_JOB,
            lambda payload: payload.get("action_id") == action_id,
        )

    # Job handlers

    async def handle_nudge(self, job: Job) -> None:
        """Remind the owner of a still-open action, then escalate.

        Raises:
            ValidationError: Malformed payload
            PolicyDeniedError: Consent no longer covers actions
            TransientExecutionError: Delivery failed for a known recipient
        """
        action_id = job.payload.get("action_id")
        tier = job.payload.get("tier", 0)
        if not isinstance(action_id, str) or not action_id or not isinstance(tier, int):
            msg = f"Invalid nudge payload: {job.payload}"
            raise ValidationError(msg)

        action = await self._repo.get_action(action_id)
        if action is None or action.is_settled:
            logger.info("nudge skipped", action_id=action_id, tier=tier)
            return

        await self._policy.require(
            PolicyContext(
                meeting_id=action.meeting_id,
                data_class=DataClass.ACTION,
                operation=Operation.PROCESS,
            )
        )
        result = await self._notifier.send_action_nudge(action, tier)
        self._raise_for_delivery(result)

        if tier < self._escalation_steps:
            await self._schedule(
                action_id,
                tier=tier + 1,
                fire_at=self._clock() + self._escalation_window,
            )

    async def handle_decision_notice(self, job: Job) -> None:
        """Send the redacted decision summary to its owner."""
        decision_id = job.payload.get("decision_id")
        if not isinstance(decision_id, str) or not decision_id:
            msg = f"Invalid decision notice payload: {job.payload}"
            raise ValidationError(msg)

        decision = await self._repo.get_decision(decision_id)
        if decision is None:
            logger.info("decision notice skipped", decision_id=decision_id)
            return

        await self._policy.require(
            PolicyContext(
                meeting_id=decision.meeting_id,
                data_class=DataClass.TRANSCRIPT,
                operation=Operation.PROCESS,
            )
        )
        text = self._redaction.redact_text(self._decision_text(decision))
        result = await self._notifier.send_decision_notice(decision, text)
        self._raise_for_delivery(result)

    @staticmethod
    def _decision_text(decision: DecisionCard) -> str:
        lines = []
        if decision.problem:
            lines.append(f"*Problem:* {decision.problem}")
        if decision.recommendation:
            lines.append(f"*Recommendation:* {decision.recommendation}")
        lines.extend(f"- {consequence}" for consequence in decision.consequences)
        return "\n".join(lines)

    @staticmethod
    def _raise_for_delivery(result: NotificationResult) -> None:
        """Raise unless delivered or the recipient is unknown."""
        if result.success or result.recipient_unknown:
            return
        msg = f"Notification to {result.recipient_email} failed: {result.error}"
        raise TransientExecutionError(msg)
