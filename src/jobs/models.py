"""Job, dead-letter and counter models for the job queue."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.base import new_id

MEETING_PROCESSING = "meeting-processing"
BRIEFING = "briefing"
NOTIFICATIONS = "notifications"
NUDGING = "nudging"
DEAD_LETTER = "dead-letter"

WORK_QUEUES: tuple[str, ...] = (MEETING_PROCESSING, BRIEFING, NOTIFICATIONS, NUDGING)
ALL_QUEUES: tuple[str, ...] = (*WORK_QUEUES, DEAD_LETTER)


class JobState(str, Enum):
    """Lifecycle state of a job.

    waiting -> active -> completed
    active -> waiting          (retry after backoff)
    active -> dead-letter      (attempts exhausted, fatal or policy denied)
    active -> failed           (handler rejected the payload as malformed)
    """

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead-letter"


class BackoffStrategy(BaseModel):
    """How long a failed job waits before its next attempt."""

    model_config = ConfigDict(frozen=True)

    type: Literal["exponential", "fixed"] = "exponential"
    delay_ms: int = Field(default=1000, ge=0, description="Base delay")
    max_delay_ms: int = Field(default=15 * 60 * 1000, ge=0)
    jitter: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Fraction of the delay that is randomized",
    )


class JobOptions(BaseModel):
    """Per-enqueue options."""

    model_config = ConfigDict(frozen=True)

    delay_ms: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    backoff: BackoffStrategy = Field(default_factory=BackoffStrategy)
    timeout_ms: int | None = Field(
        default=None,
        gt=0,
        description="Overrides the queue's handler timeout",
    )


QUEUE_DEFAULTS: dict[str, JobOptions] = {
    MEETING_PROCESSING: JobOptions(
        max_attempts=3,
        backoff=BackoffStrategy(type="exponential", delay_ms=2000),
    ),
    BRIEFING: JobOptions(
        max_attempts=2,
        backoff=BackoffStrategy(type="fixed", delay_ms=5000),
    ),
    NOTIFICATIONS: JobOptions(
        max_attempts=3,
        backoff=BackoffStrategy(type="exponential", delay_ms=1000),
    ),
    NUDGING: JobOptions(
        max_attempts=3,
        backoff=BackoffStrategy(type="exponential", delay_ms=60_000),
    ),
}

# Failed and dead-lettered job rows kept per queue for inspection
FAILED_RETENTION: dict[str, int] = {
    MEETING_PROCESSING: 5,
    BRIEFING: 10,
    NOTIFICATIONS: 20,
    NUDGING: 10,
}


class Job(BaseModel):
    """A unit of delayed work owned by the queue."""

    id: str = Field(default_factory=new_id)
    queue_name: str
    job_name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    delay_ms: int = 0
    attempts: int = 0
    max_attempts: int = 3
    backoff: BackoffStrategy = Field(default_factory=BackoffStrategy)
    timeout_ms: int | None = None
    state: JobState = JobState.WAITING
    seq: int = Field(default=0, description="Enqueue order within the backend")
    enqueued_at: datetime
    eligible_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    last_error: str | None = None


class DeadLetterRecord(BaseModel):
    """Diagnostics for a job that will not be attempted again."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    original_job_id: str
    original_queue: str
    original_job_name: str
    original_data: dict[str, Any] = Field(default_factory=dict)
    failure_reason: str
    failed_at: datetime
    retry_count: int
    max_attempts: int = 3
    can_retry: bool = True


class QueueCounts(BaseModel):
    """Job counts by state for one queue or a sum of queues."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    stalled: int = 0

    def __add__(self, other: "QueueCounts") -> "QueueCounts":
        return QueueCounts(
            waiting=self.waiting + other.waiting,
            active=self.active + other.active,
            completed=self.completed + other.completed,
            failed=self.failed + other.failed,
            delayed=self.delayed + other.delayed,
            stalled=self.stalled + other.stalled,
        )
