"""Durable QueueBackend using Turso/libSQL.

Jobs and dead-letter records survive process restarts; active jobs left
behind by a crashed worker are picked up again through
``JobQueue.recover_stalled``.
"""

import asyncio
import json
import logging
from datetime import UTC, datetime

from src.db.turso import Statement, TursoClient
from src.errors import JobNotFoundError
from src.jobs.models import (
    BackoffStrategy,
    DeadLetterRecord,
    Job,
    JobState,
    QueueCounts,
)

logger = logging.getLogger(__name__)

_JOB_COLUMNS = (
    "seq, id, queue_name, job_name, payload, delay_ms, attempts, max_attempts, "
    "backoff, timeout_ms, state, enqueued_at, eligible_at, started_at, "
    "finished_at, last_error"
)

_DEAD_LETTER_COLUMNS = (
    "id, original_job_id, original_queue, original_job_name, original_data, "
    "failure_reason, failed_at, retry_count, max_attempts, can_retry"
)


def _ts(value: datetime) -> str:
    """Fixed-width UTC timestamp so string order matches time order."""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class TursoQueueBackend:
    """QueueBackend persisting jobs in Turso/libSQL tables.

    Features:
    - Atomic claim via conditional UPDATE on the job state
    - Dead-letter records in their own table
    - Completed jobs are deleted and counted per queue
    - Failed job rows are pruned to the most recent few per queue
    - State changes that touch several tables run as one batch
    """

    def __init__(self, client: TursoClient):
        """Initialize backend.

        Args:
            client: Database client for persistence
        """
        self.client = client
        self._claim_lock = asyncio.Lock()

    async def init_schema(self) -> None:
        """Create the queue tables if they don't exist."""
        await self.client.execute("""
            CREATE TABLE IF NOT EXISTS queue_jobs (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT UNIQUE NOT NULL,
                queue_name TEXT NOT NULL,
                job_name TEXT NOT NULL,
                payload TEXT NOT NULL,
                delay_ms INTEGER NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                max_attempts INTEGER NOT NULL,
                backoff TEXT NOT NULL,
                timeout_ms INTEGER,
                state TEXT NOT NULL,
                enqueued_at TEXT NOT NULL,
                eligible_at TEXT NOT NULL,
                started_at TEXT,
                finished_at TEXT,
                last_error TEXT
            )
        """)
        await self.client.execute("""
            CREATE INDEX IF NOT EXISTS idx_queue_jobs_eligible
            ON queue_jobs(queue_name, state, eligible_at)
        """)
        await self.client.execute("""
            CREATE TABLE IF NOT EXISTS queue_finished_counts (
                queue_name TEXT PRIMARY KEY,
                completed INTEGER NOT NULL DEFAULT 0,
                failed INTEGER NOT NULL DEFAULT 0
            )
        """)
        await self.client.execute("""
            CREATE TABLE IF NOT EXISTS dead_letter_jobs (
                id TEXT PRIMARY KEY,
                original_job_id TEXT NOT NULL,
                original_queue TEXT NOT NULL,
                original_job_name TEXT NOT NULL,
                original_data TEXT NOT NULL,
                failure_reason TEXT NOT NULL,
                failed_at TEXT NOT NULL,
                retry_count INTEGER NOT NULL,
                max_attempts INTEGER NOT NULL,
                can_retry INTEGER NOT NULL
            )
        """)
        logger.info("Queue schema initialized")

    @staticmethod
    def _row_to_job(row) -> Job:
        return Job(
            seq=row[0],
            id=row[1],
            queue_name=row[2],
            job_name=row[3],
            payload=json.loads(row[4]),
            delay_ms=row[5],
            attempts=row[6],
            max_attempts=row[7],
            backoff=BackoffStrategy.model_validate_json(row[8]),
            timeout_ms=row[9],
            state=JobState(row[10]),
            enqueued_at=_parse_ts(row[11]),
            eligible_at=_parse_ts(row[12]),
            started_at=_parse_ts(row[13]),
            finished_at=_parse_ts(row[14]),
            last_error=row[15],
        )

    @staticmethod
    def _row_to_dead_letter(row) -> DeadLetterRecord:
        return DeadLetterRecord(
            id=row[0],
            original_job_id=row[1],
            original_queue=row[2],
            original_job_name=row[3],
            original_data=json.loads(row[4]),
            failure_reason=row[5],
            failed_at=_parse_ts(row[6]),
            retry_count=row[7],
            max_attempts=row[8],
            can_retry=bool(row[9]),
        )

    async def enqueue(self, job: Job) -> Job:
        result = await self.client.execute(
            """INSERT INTO queue_jobs
               (id, queue_name, job_name, payload, delay_ms, attempts,
                max_attempts, backoff, timeout_ms, state, enqueued_at,
                eligible_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                job.id,
                job.queue_name,
                job.job_name,
                json.dumps(job.payload),
                job.delay_ms,
                job.attempts,
                job.max_attempts,
                job.backoff.model_dump_json(),
                job.timeout_ms,
                JobState.WAITING.value,
                _ts(job.enqueued_at),
                _ts(job.eligible_at),
            ],
        )
        logger.debug(f"Stored job {job.job_name} ({job.id}) on {job.queue_name}")
        return job.model_copy(
            update={"seq": result.last_insert_rowid, "state": JobState.WAITING}
        )

    async def claim_next_eligible(self, queue_name: str, now: datetime) -> Job | None:
        async with self._claim_lock:
            result = await self.client.execute(
                """SELECT id FROM queue_jobs
                   WHERE queue_name = ? AND state = ? AND eligible_at <= ?
                   ORDER BY seq ASC
                   LIMIT 5""",
                [queue_name, JobState.WAITING.value, _ts(now)],
            )
            for row in result.rows:
                updated = await self.client.execute(
                    """UPDATE queue_jobs SET state = ?, started_at = ?
                       WHERE id = ? AND state = ?""",
                    [JobState.ACTIVE.value, _ts(now), row[0], JobState.WAITING.value],
                )
                if updated.rows_affected:
                    return await self.get_job(row[0])
        return None

    async def ack(self, job_id: str, now: datetime) -> None:
        job = await self.get_job(job_id)
        if job is None:
            return
        await self.client.execute_batch(
            [
                ("DELETE FROM queue_jobs WHERE id = ?", [job_id]),
                (
                    """INSERT INTO queue_finished_counts (queue_name, completed)
                       VALUES (?, 1)
                       ON CONFLICT(queue_name) DO UPDATE SET completed = completed + 1""",
                    [job.queue_name],
                ),
            ]
        )

    async def _update_active(self, job_id: str, sql: str, params: list) -> None:
        result = await self.client.execute(sql, [*params, job_id])
        if not result.rows_affected:
            msg = f"Job {job_id} not found"
            raise JobNotFoundError(msg)

    async def fail_with_backoff(
        self, job_id: str, *, attempts: int, eligible_at: datetime, error: str
    ) -> None:
        await self._update_active(
            job_id,
            """UPDATE queue_jobs
               SET state = ?, attempts = ?, eligible_at = ?, started_at = NULL,
                   last_error = ?
               WHERE id = ?""",
            [JobState.WAITING.value, attempts, _ts(eligible_at), error],
        )

    async def _require(self, job_id: str) -> Job:
        job = await self.get_job(job_id)
        if job is None:
            msg = f"Job {job_id} not found"
            raise JobNotFoundError(msg)
        return job

    @staticmethod
    def _finish_failed(
        job: Job,
        state: JobState,
        attempts: int,
        error: str,
        finished_at: datetime,
        keep: int,
    ) -> list[Statement]:
        """Statements closing a failed job, counting it and pruning old rows."""
        return [
            (
                """UPDATE queue_jobs
                   SET state = ?, attempts = ?, finished_at = ?, last_error = ?
                   WHERE id = ?""",
                [state.value, attempts, _ts(finished_at), error, job.id],
            ),
            (
                """INSERT INTO queue_finished_counts (queue_name, failed)
                   VALUES (?, 1)
                   ON CONFLICT(queue_name) DO UPDATE SET failed = failed + 1""",
                [job.queue_name],
            ),
            (
                """DELETE FROM queue_jobs
                   WHERE queue_name = ? AND state IN ('failed', 'dead-letter')
                     AND id NOT IN (
                       SELECT id FROM queue_jobs
                       WHERE queue_name = ? AND state IN ('failed', 'dead-letter')
                       ORDER BY finished_at DESC, seq DESC
                       LIMIT ?
                     )""",
                [job.queue_name, job.queue_name, keep],
            ),
        ]

    async def mark_failed(
        self, job_id: str, *, attempts: int, error: str, now: datetime, keep: int
    ) -> None:
        job = await self._require(job_id)
        await self.client.execute_batch(
            self._finish_failed(job, JobState.FAILED, attempts, error, now, keep)
        )

    async def move_to_dead_letter(
        self, job_id: str, record: DeadLetterRecord, *, keep: int
    ) -> None:
        job = await self._require(job_id)
        await self.client.execute_batch(
            [
                (
                    f"""INSERT INTO dead_letter_jobs ({_DEAD_LETTER_COLUMNS})
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    [
                        record.id,
                        record.original_job_id,
                        record.original_queue,
                        record.original_job_name,
                        json.dumps(record.original_data),
                        record.failure_reason,
                        _ts(record.failed_at),
                        record.retry_count,
                        record.max_attempts,
                        1 if record.can_retry else 0,
                    ],
                ),
                *self._finish_failed(
                    job,
                    JobState.DEAD_LETTER,
                    record.retry_count,
                    record.failure_reason,
                    record.failed_at,
                    keep,
                ),
            ]
        )

    async def remove(self, job_id: str) -> bool:
        result = await self.client.execute(
            "DELETE FROM queue_jobs WHERE id = ? AND state = ?",
            [job_id, JobState.WAITING.value],
        )
        return bool(result.rows_affected)

    async def get_job(self, job_id: str) -> Job | None:
        result = await self.client.execute(
            f"SELECT {_JOB_COLUMNS} FROM queue_jobs WHERE id = ?", [job_id]
        )
        return self._row_to_job(result.rows[0]) if result.rows else None

    async def list_jobs(
        self, queue_name: str, state: JobState | None = None
    ) -> list[Job]:
        if state is None:
            result = await self.client.execute(
                f"""SELECT {_JOB_COLUMNS} FROM queue_jobs
                    WHERE queue_name = ? ORDER BY seq ASC""",
                [queue_name],
            )
        else:
            result = await self.client.execute(
                f"""SELECT {_JOB_COLUMNS} FROM queue_jobs
                    WHERE queue_name = ? AND state = ? ORDER BY seq ASC""",
                [queue_name, state.value],
            )
        return [self._row_to_job(row) for row in result.rows]

    async def next_eligible_at(self, queue_name: str) -> datetime | None:
        result = await self.client.execute(
            "SELECT MIN(eligible_at) FROM queue_jobs WHERE queue_name = ? AND state = ?",
            [queue_name, JobState.WAITING.value],
        )
        return _parse_ts(result.rows[0][0]) if result.rows else None

    async def get_counts(self, queue_name: str, now: datetime) -> QueueCounts:
        result = await self.client.execute(
            """SELECT
                COUNT(CASE WHEN state = 'waiting' AND eligible_at <= ? THEN 1 END),
                COUNT(CASE WHEN state = 'waiting' AND eligible_at > ? THEN 1 END),
                COUNT(CASE WHEN state = 'active' THEN 1 END)
               FROM queue_jobs WHERE queue_name = ?""",
            [_ts(now), _ts(now), queue_name],
        )
        finished = await self.client.execute(
            "SELECT completed, failed FROM queue_finished_counts WHERE queue_name = ?",
            [queue_name],
        )
        row = result.rows[0] if result.rows else (0, 0, 0)
        totals = finished.rows[0] if finished.rows else (0, 0)
        return QueueCounts(
            waiting=row[0] or 0,
            delayed=row[1] or 0,
            active=row[2] or 0,
            completed=totals[0],
            failed=totals[1],
        )

    async def list_dead_letter(self, limit: int) -> list[DeadLetterRecord]:
        result = await self.client.execute(
            f"""SELECT {_DEAD_LETTER_COLUMNS} FROM dead_letter_jobs
                ORDER BY failed_at DESC
                LIMIT ?""",
            [limit],
        )
        return [self._row_to_dead_letter(row) for row in result.rows]

    async def get_dead_letter(self, record_id: str) -> DeadLetterRecord | None:
        result = await self.client.execute(
            f"SELECT {_DEAD_LETTER_COLUMNS} FROM dead_letter_jobs WHERE id = ?",
            [record_id],
        )
        return self._row_to_dead_letter(result.rows[0]) if result.rows else None

    async def delete_dead_letter(self, record_id: str) -> bool:
        result = await self.client.execute(
            "DELETE FROM dead_letter_jobs WHERE id = ?", [record_id]
        )
        return bool(result.rows_affected)

    async def count_dead_letter(self) -> int:
        result = await self.client.execute("SELECT COUNT(*) FROM dead_letter_jobs")
        return result.rows[0][0]
