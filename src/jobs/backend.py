"""Storage interface for the job queue and its in-memory implementation.

The JobQueue only talks to a QueueBackend, so an in-memory store and a
durable database-backed store are interchangeable.
"""

import itertools
from collections import Counter
from datetime import datetime
from typing import Protocol, runtime_checkable

from src.errors import JobNotFoundError
from src.jobs.models import DeadLetterRecord, Job, JobState, QueueCounts

_FAILED_STATES = (JobState.FAILED, JobState.DEAD_LETTER)


@runtime_checkable
class QueueBackend(Protocol):
    """Protocol for job storage.

    Implementations must make ``claim_next_eligible`` atomic: a waiting
    job is handed to at most one caller.
    """

    async def enqueue(self, job: Job) -> Job:
        """Store a waiting job, assigning its enqueue sequence number."""
        ...

    async def claim_next_eligible(self, queue_name: str, now: datetime) -> Job | None:
        """Move the oldest eligible waiting job to active and return it."""
        ...

    async def ack(self, job_id: str, now: datetime) -> None:
        """Mark an active job completed."""
        ...

    async def fail_with_backoff(
        self, job_id: str, *, attempts: int, eligible_at: datetime, error: str
    ) -> None:
        """Return an active job to waiting until ``eligible_at``."""
        ...

    async def mark_failed(
        self, job_id: str, *, attempts: int, error: str, now: datetime, keep: int
    ) -> None:
        """Mark an active job permanently failed without dead-lettering.

        Only the ``keep`` most recent failed job rows of the queue are kept.
        """
        ...

    async def move_to_dead_letter(
        self, job_id: str, record: DeadLetterRecord, *, keep: int
    ) -> None:
        """Mark a job dead-lettered and store its diagnostic record.

        Prunes failed job rows like ``mark_failed``; the record itself stays.
        """
        ...

    async def remove(self, job_id: str) -> bool:
        """Delete a waiting job. Returns False if it is not waiting."""
        ...

    async def get_job(self, job_id: str) -> Job | None: ...

    async def list_jobs(
        self, queue_name: str, state: JobState | None = None
    ) -> list[Job]:
        """Jobs of a queue in enqueue order, optionally filtered by state."""
        ...

    async def next_eligible_at(self, queue_name: str) -> datetime | None:
        """Earliest eligibility time among waiting jobs of a queue."""
        ...

    async def get_counts(self, queue_name: str, now: datetime) -> QueueCounts:
        """Count jobs by state. Completed and failed are running totals."""
        ...

    async def list_dead_letter(self, limit: int) -> list[DeadLetterRecord]:
        """Dead-letter records, newest ``failed_at`` first."""
        ...

    async def get_dead_letter(self, record_id: str) -> DeadLetterRecord | None: ...

    async def delete_dead_letter(self, record_id: str) -> bool: ...

    async def count_dead_letter(self) -> int: ...


class InMemoryQueueBackend:
    """Process-local QueueBackend.

    Completed jobs are counted and then dropped; the most recent failed and
    dead-lettered jobs are kept for inspection. Every method runs without
    awaiting, so each call is atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._dead_letters: dict[str, DeadLetterRecord] = {}
        self._completed: Counter[str] = Counter()
        self._failed: Counter[str] = Counter()
        self._seq = itertools.count(1)

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            msg = f"Job {job_id} not found"
            raise JobNotFoundError(msg)
        return job

    async def enqueue(self, job: Job) -> Job:
        stored = job.model_copy(update={"seq": next(self._seq), "state": JobState.WAITING})
        self._jobs[stored.id] = stored
        return stored.model_copy()

    async def claim_next_eligible(self, queue_name: str, now: datetime) -> Job | None:
        eligible = [
            job
            for job in self._jobs.values()
            if job.queue_name == queue_name
            and job.state == JobState.WAITING
            and job.eligible_at <= now
        ]
        if not eligible:
            return None
        job = min(eligible, key=lambda j: j.seq)
        job.state = JobState.ACTIVE
        job.started_at = now
        return job.model_copy()

    async def ack(self, job_id: str, now: datetime) -> None:
        job = self._jobs.pop(job_id, None)
        if job is not None:
            self._completed[job.queue_name] += 1

    async def fail_with_backoff(
        self, job_id: str, *, attempts: int, eligible_at: datetime, error: str
    ) -> None:
        job = self._require(job_id)
        job.state = JobState.WAITING
        job.attempts = attempts
        job.eligible_at = eligible_at
        job.started_at = None
        job.last_error = error

    def _finish_failed(
        self,
        job: Job,
        state: JobState,
        attempts: int,
        error: str,
        now: datetime,
        keep: int,
    ) -> None:
        job.state = state
        job.attempts = attempts
        job.finished_at = now
        job.last_error = error
        self._failed[job.queue_name] += 1

        failed = sorted(
            (
                j
                for j in self._jobs.values()
                if j.queue_name == job.queue_name and j.state in _FAILED_STATES
            ),
            key=lambda j: (j.finished_at, j.seq),
        )
        for stale in failed[: max(0, len(failed) - keep)]:
            del self._jobs[stale.id]

    async def mark_failed(
        self, job_id: str, *, attempts: int, error: str, now: datetime, keep: int
    ) -> None:
        job = self._require(job_id)
        self._finish_failed(job, JobState.FAILED, attempts, error, now, keep)

    async def move_to_dead_letter(
        self, job_id: str, record: DeadLetterRecord, *, keep: int
    ) -> None:
        job = self._require(job_id)
        self._dead_letters[record.id] = record
        self._finish_failed(
            job,
            JobState.DEAD_LETTER,
            record.retry_count,
            record.failure_reason,
            record.failed_at,
            keep,
        )

    async def remove(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job.state != JobState.WAITING:
            return False
        del self._jobs[job_id]
        return True

    async def get_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy() if job else None

    async def list_jobs(
        self, queue_name: str, state: JobState | None = None
    ) -> list[Job]:
        jobs = [
            job.model_copy()
            for job in self._jobs.values()
            if job.queue_name == queue_name and (state is None or job.state == state)
        ]
        return sorted(jobs, key=lambda j: j.seq)

    async def next_eligible_at(self, queue_name: str) -> datetime | None:
        times = [
            job.eligible_at
            for job in self._jobs.values()
            if job.queue_name == queue_name and job.state == JobState.WAITING
        ]
        return min(times) if times else None

    async def get_counts(self, queue_name: str, now: datetime) -> QueueCounts:
        counts = QueueCounts(
            completed=self._completed[queue_name], failed=self._failed[queue_name]
        )
        for job in self._jobs.values():
            if job.queue_name != queue_name:
                continue
            if job.state == JobState.WAITING:
                if job.eligible_at > now:
                    counts.delayed += 1
                else:
                    counts.waiting += 1
            elif job.state == JobState.ACTIVE:
                counts.active += 1
        return counts

    async def list_dead_letter(self, limit: int) -> list[DeadLetterRecord]:
        records = sorted(
            self._dead_letters.values(), key=lambda r: r.failed_at, reverse=True
        )
        return records[:limit]

    async def get_dead_letter(self, record_id: str) -> DeadLetterRecord | None:
        return self._dead_letters.get(record_id)

    async def delete_dead_letter(self, record_id: str) -> bool:
        return self._dead_letters.pop(record_id, None) is not None

    async def count_dead_letter(self) -> int:
        return len(self._dead_letters)
