"""Delay-aware job queue with worker pools, retry backoff and dead-lettering.

Jobs are stored through a QueueBackend and executed by a fixed pool of
asyncio worker tasks per named queue. Handlers signal how a failure
should be treated through the exception they raise:

- FatalExecutionError, PolicyDeniedError -> dead-letter immediately
- ValidationError                        -> job marked failed, never retried
- timeout or any other exception         -> retried with backoff until
                                            max_attempts, then dead-letter
"""

import asyncio
import contextlib
import json
import random
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

import pydantic
import structlog

from src.errors import (
    FatalExecutionError,
    JobNotFoundError,
    PolicyDeniedError,
    ValidationError,
)
from src.jobs.backend import QueueBackend
from src.jobs.backoff import compute_backoff_ms
from src.jobs.models import (
    ALL_QUEUES,
    DEAD_LETTER,
    FAILED_RETENTION,
    QUEUE_DEFAULTS,
    WORK_QUEUES,
    DeadLetterRecord,
    Job,
    JobOptions,
    JobState,
    QueueCounts,
)
from src.models.base import utc_now

logger = structlog.get_logger()

JobHandler = Callable[[Job], Awaitable[Any]]


class JobQueue:
    """Named work queues backed by a QueueBackend.

    Workers sleep until the next job becomes eligible, an enqueue wakes
    them, or the poll interval elapses. Cancellation only ever removes
    waiting jobs; an executing handler is never preempted.
    """

    def __init__(
        self,
        backend: QueueBackend,
        *,
        concurrency: dict[str, int] | None = None,
        default_concurrency: int = 1,
        job_timeout_s: float = 30.0,
        poll_interval_s: float = 1.0,
        stall_after_s: float | None = None,
        failed_retention: dict[str, int] | None = None,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ):
        """Initialize queue.

        Args:
            backend: Job storage
            concurrency: Worker count per queue name
            default_concurrency: Worker count for queues not in ``concurrency``
            job_timeout_s: Handler timeout unless the job overrides it
            poll_interval_s: Longest a worker sleeps without a wake-up
            stall_after_s: Shortest age at which an active job counts as
                stalled. A job is never stalled before twice its own timeout.
            failed_retention: Failed job rows kept per queue name
            clock: Source of the current UTC time
            rng: Random source for backoff jitter
        """
        self._backend = backend
        self._concurrency = concurrency or {}
        self._default_concurrency = default_concurrency
        self._job_timeout_s = job_timeout_s
        self._poll_interval_s = poll_interval_s
        self._stall_after_s = stall_after_s or job_timeout_s * 2
        self._failed_retention = failed_retention or FAILED_RETENTION
        self._clock = clock
        self._rng = rng
        self._handlers: dict[tuple[str, str], JobHandler] = {}
        self._wakeups: dict[str, asyncio.Event] = {q: asyncio.Event() for q in WORK_QUEUES}
        self._workers: list[asyncio.Task[None]] = []
        self._executing: set[str] = set()

    @property
    def backend(self) -> QueueBackend:
        return self._backend

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    def register(self, queue_name: str, job_name: str, handler: JobHandler) -> None:
        """Register the handler executing ``job_name`` jobs on ``queue_name``."""
        self._check_queue(queue_name)
        self._handlers[(queue_name, job_name)] = handler
        logger.debug("job handler registered", queue=queue_name, job_name=job_name)

    @staticmethod
    def _check_queue(queue_name: str) -> None:
        if queue_name not in WORK_QUEUES:
            msg = f"Unknown queue: {queue_name}"
            raise ValidationError(msg)

    @staticmethod
    def _resolve_options(
        queue_name: str, options: JobOptions | dict[str, Any] | None
    ) -> JobOptions:
        """Overlay explicitly given options on the queue defaults."""
        defaults = QUEUE_DEFAULTS.get(queue_name, JobOptions())
        if options is None:
            return defaults
        if isinstance(options, JobOptions):
            overrides = options.model_dump(exclude_unset=True)
        else:
            overrides = dict(options)
        try:
            return JobOptions.model_validate({**defaults.model_dump(), **overrides})
        except pydantic.ValidationError as e:
            msg = f"Invalid job options: {e}"
            raise ValidationError(msg) from e

    async def enqueue(
        self,
        queue_name: str,
        job_name: str,
        payload: dict[str, Any] | None = None,
        options: JobOptions | dict[str, Any] | None = None,
    ) -> str:
        """Add a job to a queue.

        Args:
            queue_name: One of the work queues
            job_name: Name used to look up the handler
            payload: JSON-serialisable job data
            options: Delay, attempts, backoff and timeout overrides

        Returns:
            The new job id

        Raises:
            ValidationError: Unknown queue, bad payload or bad options.
                Nothing is stored in that case.
        """
        self._check_queue(queue_name)
        if not job_name:
            msg = "Job name is required"
            raise ValidationError(msg)
        payload = {} if payload is None else payload
        if not isinstance(payload, dict):
            msg = f"Job payload must be an object, got {type(payload).__name__}"
            raise ValidationError(msg)
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            msg = f"Job payload is not JSON-serialisable: {e}"
            raise ValidationError(msg) from e

        resolved = self._resolve_options(queue_name, options)
        now = self._clock()
        job = await self._backend.enqueue(
            Job(
                queue_name=queue_name,
                job_name=job_name,
                payload=payload,
                delay_ms=resolved.delay_ms,
                max_attempts=resolved.max_attempts,
                backoff=resolved.backoff,
                timeout_ms=resolved.timeout_ms,
                enqueued_at=now,
                eligible_at=now + timedelta(milliseconds=resolved.delay_ms),
            )
        )
        self._wakeups[queue_name].set()
        logger.info(
            "job enqueued",
            job_id=job.id,
            queue=queue_name,
            job_name=job_name,
            delay_ms=resolved.delay_ms,
        )
        return job.id

    async def cancel(self, job_id: str) -> bool:
        """Remove a waiting job. Returns False if it is not waiting."""
        removed = await self._backend.remove(job_id)
        if removed:
            logger.info("job cancelled", job_id=job_id)
        return removed

    async def cancel_matching(
        self,
        queue_name: str,
        job_name: str,
        predicate: Callable[[dict[str, Any]], bool],
    ) -> int:
        """Remove waiting ``job_name`` jobs whose payload satisfies ``predicate``.

        Returns:
            Number of jobs removed
        """
        self._check_queue(queue_name)
        removed = 0
        for job in await self._backend.list_jobs(queue_name, JobState.WAITING):
            if job.job_name == job_name and predicate(job.payload):
                if await self._backend.remove(job.id):
                    removed += 1
        if removed:
            logger.info(
                "jobs cancelled",
                queue=queue_name,
                job_name=job_name,
                count=removed,
            )
        return removed

    async def get_counts(self, queue_name: str) -> QueueCounts:
        """Job counts for one queue.

        For the dead-letter queue, ``waiting`` is the number of records.
        """
        if queue_name == DEAD_LETTER:
            return QueueCounts(waiting=await self._backend.count_dead_letter())
        self._check_queue(queue_name)
        now = self._clock()
        counts = await self._backend.get_counts(queue_name, now)
        active = await self._backend.list_jobs(queue_name, JobState.ACTIVE)
        counts.stalled = sum(1 for job in active if self._is_stalled(job, now))
        return counts

    async def get_aggregate_counts(
        self, queue_names: tuple[str, ...] = ALL_QUEUES
    ) -> QueueCounts:
        total = QueueCounts()
        for name in queue_names:
            total = total + await self.get_counts(name)
        return total

    async def list_dead_letter(self, limit: int = 50) -> list[DeadLetterRecord]:
        """Dead-letter records, most recent failure first."""
        if limit < 1:
            msg = "limit must be at least 1"
            raise ValidationError(msg)
        return await self._backend.list_dead_letter(limit)

    async def retry_dead_letter(self, record_id: str) -> str:
        """Re-submit a dead-lettered job to its original queue.

        The new job starts with zero attempts and the record is removed.

        Returns:
            The new job id

        Raises:
            JobNotFoundError: No such record
            ValidationError: The record is marked as not retryable
        """
        record = await self._backend.get_dead_letter(record_id)
        if record is None:
            msg = f"Dead-letter record {record_id} not found"
            raise JobNotFoundError(msg)
        if not record.can_retry:
            msg = f"Dead-letter record {record_id} cannot be retried"
            raise ValidationError(msg)

        job_id = await self.enqueue(
            record.original_queue,
            record.original_job_name,
            record.original_data,
            {"max_attempts": record.max_attempts},
        )
        await self._backend.delete_dead_letter(record_id)
        logger.info(
            "dead-letter job retried",
            record_id=record_id,
            original_job_id=record.original_job_id,
            job_id=job_id,
        )
        return job_id

    async def recover_stalled(self) -> int:
        """Treat stalled active jobs as failed attempts.

        Jobs currently executing in this process are left alone.

        Returns:
            Number of jobs recovered
        """
        now = self._clock()
        recovered = 0
        for queue_name in WORK_QUEUES:
            for job in await self._backend.list_jobs(queue_name, JobState.ACTIVE):
                if job.id in self._executing:
                    continue
                if not self._is_stalled(job, now):
                    continue
                await self._retry_or_dead_letter(job, job.attempts + 1, "Job stalled")
                recovered += 1
        if recovered:
            logger.warning("stalled jobs recovered", count=recovered)
        return recovered

    def _keep_failed(self, queue_name: str) -> int:
        return self._failed_retention.get(queue_name, FAILED_RETENTION[queue_name])

    def _timeout_s(self, job: Job) -> float:
        return job.timeout_ms / 1000 if job.timeout_ms else self._job_timeout_s

    def _is_stalled(self, job: Job, now: datetime) -> bool:
        """An active job is stalled once it outlives twice its timeout."""
        if job.started_at is None:
            return False
        threshold = max(self._stall_after_s, 2 * self._timeout_s(job))
        return now - job.started_at > timedelta(seconds=threshold)

    # Workers

    async def start(self) -> None:
        """Recover stalled jobs and start the worker pools."""
        if self._workers:
            return
        await self.recover_stalled()
        for queue_name in WORK_QUEUES:
            size = self._concurrency.get(queue_name, self._default_concurrency)
            for index in range(size):
                self._workers.append(
                    asyncio.create_task(
                        self._worker(queue_name, index),
                        name=f"{queue_name}-worker-{index}",
                    )
                )
        self._workers.append(asyncio.create_task(self._reaper(), name="stall-reaper"))
        logger.info("job queue started", workers=len(self._workers) - 1)

    async def stop(self) -> None:
        """Cancel all worker tasks and wait for them to exit."""
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        if workers:
            logger.info("job queue stopped")

    async def _worker(self, queue_name: str, index: int) -> None:
        wakeup = self._wakeups[queue_name]
        while True:
            try:
                wakeup.clear()
                if await self.process_next(queue_name):
                    continue
                await self._sleep_until_eligible(queue_name, wakeup)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("worker loop error", queue=queue_name, worker=index)
                await asyncio.sleep(self._poll_interval_s)

    async def _reaper(self) -> None:
        while True:
            await asyncio.sleep(self._stall_after_s)
            try:
                await self.recover_stalled()
            except Exception:
                logger.exception("stall recovery failed")

    async def _sleep_until_eligible(self, queue_name: str, wakeup: asyncio.Event) -> None:
        timeout = self._poll_interval_s
        next_at = await self._backend.next_eligible_at(queue_name)
        if next_at is not None:
            until_next = (next_at - self._clock()).total_seconds()
            timeout = max(0.0, min(timeout, until_next))
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(wakeup.wait(), timeout=timeout)

    async def process_next(self, queue_name: str) -> bool:
        """Claim and execute one eligible job.

        Returns:
            False if no job was eligible
        """
        job = await self._backend.claim_next_eligible(queue_name, self._clock())
        if job is None:
            return False
        await self._execute(job)
        return True

    async def _execute(self, job: Job) -> None:
        attempts = job.attempts + 1
        log = logger.bind(
            job_id=job.id,
            queue=job.queue_name,
            job_name=job.job_name,
            attempt=attempts,
        )
        handler = self._handlers.get((job.queue_name, job.job_name))
        if handler is None:
            log.error("no handler registered")
            await self._dead_letter(
                job, attempts, f"No handler registered for {job.job_name}", can_retry=True
            )
            return

        timeout = self._timeout_s(job)
        self._executing.add(job.id)
        try:
            await asyncio.wait_for(handler(job), timeout=timeout)
        except FatalExecutionError as e:
            log.error("job failed fatally", error=str(e))
            await self._dead_letter(job, attempts, str(e), can_retry=e.can_retry)
        except PolicyDeniedError as e:
            log.warning("job denied by policy", policy=e.decision.policy)
            await self._dead_letter(
                job, attempts, f"Policy denied: {e.decision.policy}", can_retry=True
            )
        except ValidationError as e:
            log.error("job payload rejected", error=str(e))
            await self._backend.mark_failed(
                job.id,
                attempts=attempts,
                error=str(e),
                now=self._clock(),
                keep=self._keep_failed(job.queue_name),
            )
        except TimeoutError:
            log.warning("job timed out", timeout_s=timeout)
            await self._retry_or_dead_letter(job, attempts, f"Timed out after {timeout}s")
        except Exception as e:
            log.warning("job attempt failed", error=str(e))
            await self._retry_or_dead_letter(job, attempts, f"{type(e).__name__}: {e}")
        else:
            await self._backend.ack(job.id, self._clock())
            log.info("job completed")
        finally:
            self._executing.discard(job.id)

    async def _retry_or_dead_letter(self, job: Job, attempts: int, reason: str) -> None:
        if attempts < job.max_attempts:
            delay_ms = compute_backoff_ms(job.backoff, attempts, self._rng)
            await self._backend.fail_with_backoff(
                job.id,
                attempts=attempts,
                eligible_at=self._clock() + timedelta(milliseconds=delay_ms),
                error=reason,
            )
            logger.info(
                "job scheduled for retry",
                job_id=job.id,
                attempts=attempts,
                delay_ms=delay_ms,
            )
            return
        await self._dead_letter(job, attempts, reason, can_retry=True)

    async def _dead_letter(
        self, job: Job, attempts: int, reason: str, *, can_retry: bool
    ) -> None:
        record = DeadLetterRecord(
            original_job_id=job.id,
            original_queue=job.queue_name,
            original_job_name=job.job_name,
            original_data=job.payload,
            failure_reason=reason,
            failed_at=self._clock(),
            retry_count=attempts,
            max_attempts=job.max_attempts,
            can_retry=can_retry,
        )
        await self._backend.move_to_dead_letter(
            job.id, record, keep=self._keep_failed(job.queue_name)
        )
        logger.warning(
            "job moved to dead-letter",
            job_id=job.id,
            queue=job.queue_name,
            job_name=job.job_name,
            attempts=attempts,
            reason=reason,
        )
