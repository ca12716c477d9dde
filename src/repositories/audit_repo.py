"""Append-only audit trail storage.

The repository exposes no update or delete operation: entries outlive
the meeting data they describe.
"""

import json
import logging
from datetime import UTC, datetime

from src.db.turso import TursoClient
from src.errors import PersistenceError
from src.models.audit import AuditEntry

logger = logging.getLogger(__name__)


class AuditRepository:
    """Repository for compliance audit entries."""

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def init_schema(self) -> None:
        """Create audit table if it doesn't exist."""
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS audit_entries (
                id TEXT PRIMARY KEY,
                meeting_id TEXT,
                event TEXT NOT NULL,
                payload TEXT NOT NULL,
                policy TEXT,
                occurred_at TEXT NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_entries_meeting
            ON audit_entries(meeting_id, occurred_at)
        """)

        logger.info("Audit schema initialized")

    async def record(self, entry: AuditEntry) -> AuditEntry:
        """Append an entry.

        Raises:
            PersistenceError: If the write fails
        """
        try:
            await self._db.execute(
                """INSERT INTO audit_entries
                   (id, meeting_id, event, payload, policy, occurred_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    entry.id,
                    entry.meeting_id,
                    entry.event,
                    json.dumps(entry.payload, default=str),
                    entry.policy,
                    entry.occurred_at.astimezone(UTC).isoformat(timespec="microseconds"),
                ],
            )
        except Exception as e:
            msg = f"Failed to record audit entry {entry.event}: {e}"
            raise PersistenceError(msg) from e
        logger.debug(f"Recorded audit entry {entry.event} for {entry.meeting_id}")
        return entry

    async def list_for_meeting(self, meeting_id: str) -> list[AuditEntry]:
        """Entries of a meeting, oldest first."""
        result = await self._db.execute(
            """SELECT id, meeting_id, event, payload, policy, occurred_at
               FROM audit_entries
               WHERE meeting_id = ?
               ORDER BY occurred_at ASC, rowid ASC""",
            [meeting_id],
        )
        return [
            AuditEntry(
                id=row[0],
                meeting_id=row[1],
                event=row[2],
                payload=json.loads(row[3]),
                policy=row[4],
                occurred_at=datetime.fromisoformat(row[5]),
            )
            for row in result.rows
        ]

    async def count_for_meeting(self, meeting_id: str) -> int:
        result = await self._db.execute(
            "SELECT COUNT(*) FROM audit_entries WHERE meeting_id = ?", [meeting_id]
        )
        return result.rows[0][0]
