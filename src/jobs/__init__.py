"""Delay-aware job queue."""

from src.jobs.backend import InMemoryQueueBackend, QueueBackend
from src.jobs.backoff import compute_backoff_ms
from src.jobs.job_queue import JobHandler, JobQueue
from src.jobs.models import (
    ALL_QUEUES,
    BRIEFING,
    DEAD_LETTER,
    FAILED_RETENTION,
    MEETING_PROCESSING,
    NOTIFICATIONS,
    NUDGING,
    QUEUE_DEFAULTS,
    WORK_QUEUES,
    BackoffStrategy,
    DeadLetterRecord,
    Job,
    JobOptions,
    JobState,
    QueueCounts,
)
from src.jobs.turso_backend import TursoQueueBackend

__all__ = [
    "ALL_QUEUES",
    "BRIEFING",
    "DEAD_LETTER",
    "FAILED_RETENTION",
    "MEETING_PROCESSING",
    "NOTIFICATIONS",
    "NUDGING",
    "QUEUE_DEFAULTS",
    "WORK_QUEUES",
    "BackoffStrategy",
    "DeadLetterRecord",
    "InMemoryQueueBackend",
    "Job",
    "JobHandler",
    "JobOptions",
    "JobQueue",
    "JobState",
    "QueueBackend",
    "QueueCounts",
    "TursoQueueBackend",
    "compute_backoff_ms",
]
