"""Repository for meeting data: metadata, artifacts, consent and transcript.

Entities are stored as JSON documents alongside the columns used for
lookups, so model changes don't require table migrations.
"""

import logging
from datetime import datetime

from src.db.turso import TursoClient
from src.models.action_item import ActionItem, ActionItemStatus
from src.models.base import utc_now
from src.models.brief import MeetingBrief
from src.models.consent import ConsentRecord
from src.models.decision import DecisionCard
from src.models.meeting import Meeting, MeetingDetail, TranscriptSegment

logger = logging.getLogger(__name__)


class MeetingRepository:
    """Repository for everything stored per meeting.

    Every table is keyed by ``meeting_id`` so a meeting's data can be
    erased table by table.
    """

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def init_schema(self) -> None:
        """Create meeting tables if they don't exist."""
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS meetings (
                meeting_id TEXT PRIMARY KEY,
                start_time TEXT NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS action_items (
                id TEXT PRIMARY KEY,
                meeting_id TEXT NOT NULL,
                status TEXT NOT NULL,
                data TEXT NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_action_items_meeting
            ON action_items(meeting_id)
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS decisions (
                id TEXT PRIMARY KEY,
                meeting_id TEXT NOT NULL,
                data TEXT NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_decisions_meeting
            ON decisions(meeting_id)
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS briefs (
                id TEXT PRIMARY KEY,
                meeting_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                data TEXT NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS transcript_segments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                meeting_id TEXT NOT NULL,
                speaker TEXT NOT NULL,
                text TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                language TEXT
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_transcript_segments_meeting
            ON transcript_segments(meeting_id)
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS consents (
                meeting_id TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
        """)

        logger.info("Meeting schema initialized")

    # Meetings

    async def save_meeting(self, meeting: Meeting) -> None:
        """Insert or replace meeting metadata."""
        await self._db.execute(
            """INSERT INTO meetings (meeting_id, start_time, data)
               VALUES (?, ?, ?)
               ON CONFLICT(meeting_id) DO UPDATE SET
                   start_time = excluded.start_time,
                   data = excluded.data""",
            [meeting.meeting_id, meeting.start_time.isoformat(), meeting.model_dump_json()],
        )

    async def get_meeting(self, meeting_id: str) -> Meeting | None:
        result = await self._db.execute(
            "SELECT data FROM meetings WHERE meeting_id = ?", [meeting_id]
        )
        if not result.rows:
            return None
        return Meeting.model_validate_json(result.rows[0][0])

    # Action items

    async def upsert_action(self, action: ActionItem) -> None:
        """Insert or replace an action item."""
        await self._db.execute(
            """INSERT INTO action_items (id, meeting_id, status, data)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   status = excluded.status,
                   data = excluded.data""",
            [action.id, action.meeting_id, action.status.value, action.model_dump_json()],
        )

    async def get_action(self, action_id: str) -> ActionItem | None:
        result = await self._db.execute(
            "SELECT data FROM action_items WHERE id = ?", [action_id]
        )
        if not result.rows:
            return None
        return ActionItem.model_validate_json(result.rows[0][0])

    async def list_actions(self, meeting_id: str) -> list[ActionItem]:
        result = await self._db.execute(
            "SELECT data FROM action_items WHERE meeting_id = ? ORDER BY rowid",
            [meeting_id],
        )
        return [ActionItem.model_validate_json(row[0]) for row in result.rows]

    async def update_action_status(
        self, action_id: str, status: ActionItemStatus
    ) -> ActionItem | None:
        """Set an action's status.

        Returns:
            The updated action, or None if it doesn't exist
        """
        action = await self.get_action(action_id)
        if action is None:
            return None
        updated = action.model_copy(update={"status": status, "updated_at": utc_now()})
        await self.upsert_action(updated)
        return updated

    async def acknowledge_action(
        self, action_id: str, acknowledged_at: datetime | None = None
    ) -> ActionItem | None:
        """Record that the owner acknowledged an action.

        Acknowledging twice keeps the first timestamp.
        """
        action = await self.get_action(action_id)
        if action is None:
            return None
        if action.acknowledged_at is not None:
            return action
        now = acknowledged_at or utc_now()
        updated = action.model_copy(update={"acknowledged_at": now, "updated_at": now})
        await self.upsert_action(updated)
        logger.debug(f"Acknowledged action {action_id}")
        return updated

    # Decisions and briefs

    async def upsert_decision(self, decision: DecisionCard) -> None:
        await self._db.execute(
            """INSERT INTO decisions (id, meeting_id, data)
               VALUES (?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET data = excluded.data""",
            [decision.id, decision.meeting_id, decision.model_dump_json()],
        )

    async def get_decision(self, decision_id: str) -> DecisionCard | None:
        result = await self._db.execute(
            "SELECT data FROM decisions WHERE id = ?", [decision_id]
        )
        if not result.rows:
            return None
        return DecisionCard.model_validate_json(result.rows[0][0])

    async def add_brief(self, brief: MeetingBrief) -> None:
        await self._db.execute(
            """INSERT INTO briefs (id, meeting_id, kind, data)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET data = excluded.data""",
            [brief.id, brief.meeting_id, brief.kind, brief.model_dump_json()],
        )

    # Consent

    async def save_consent(self, consent: ConsentRecord) -> None:
        """Replace the consent record of a meeting."""
        await self._db.execute(
            """INSERT INTO consents (meeting_id, data)
               VALUES (?, ?)
               ON CONFLICT(meeting_id) DO UPDATE SET data = excluded.data""",
            [consent.meeting_id, consent.model_dump_json()],
        )

    async def get_consent(self, meeting_id: str) -> ConsentRecord | None:
        result = await self._db.execute(
            "SELECT data FROM consents WHERE meeting_id = ?", [meeting_id]
        )
        if not result.rows:
            return None
        return ConsentRecord.model_validate_json(result.rows[0][0])

    # Transcript

    async def add_transcript_segments(
        self, meeting_id: str, segments: list[TranscriptSegment]
    ) -> int:
        """Append transcript segments in order, all or nothing.

        Returns:
            Number of segments stored
        """
        await self._db.execute_batch(
            [
                (
                    """INSERT INTO transcript_segments
                       (meeting_id, speaker, text, start_time, end_time, language)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    [
                        meeting_id,
                        segment.speaker,
                        segment.text,
                        segment.start_time,
                        segment.end_time,
                        segment.language,
                    ],
                )
                for segment in segments
            ]
        )
        return len(segments)

    async def list_transcript(self, meeting_id: str) -> list[TranscriptSegment]:
        result = await self._db.execute(
            """SELECT speaker, text, start_time, end_time, language
               FROM transcript_segments WHERE meeting_id = ? ORDER BY id""",
            [meeting_id],
        )
        return [
            TranscriptSegment(
                speaker=row[0],
                text=row[1],
                start_time=row[2],
                end_time=row[3],
                language=row[4],
            )
            for row in result.rows
        ]

    # Read model

    async def get_meeting_detail(self, meeting_id: str) -> MeetingDetail | None:
        """Assemble everything stored for a meeting.

        Returns:
            The detail, or None if the meeting itself is unknown
        """
        meeting = await self.get_meeting(meeting_id)
        if meeting is None:
            return None

        decisions = await self._db.execute(
            "SELECT data FROM decisions WHERE meeting_id = ? ORDER BY rowid",
            [meeting_id],
        )
        briefs = await self._db.execute(
            "SELECT data FROM briefs WHERE meeting_id = ? ORDER BY rowid",
            [meeting_id],
        )
        return MeetingDetail(
            meeting=meeting,
            consent=await self.get_consent(meeting_id),
            actions=await self.list_actions(meeting_id),
            decisions=[DecisionCard.model_validate_json(row[0]) for row in decisions.rows],
            briefs=[MeetingBrief.model_validate_json(row[0]) for row in briefs.rows],
            transcript=await self.list_transcript(meeting_id),
        )

    async def count_artifacts(self, meeting_id: str) -> dict[str, int]:
        """Count stored rows per artifact table for a meeting."""
        counts = {}
        for key, table in (
            ("actions", "action_items"),
            ("decisions", "decisions"),
            ("briefs", "briefs"),
            ("transcript_segments", "transcript_segments"),
        ):
            result = await self._db.execute(
                f"SELECT COUNT(*) FROM {table} WHERE meeting_id = ?", [meeting_id]
            )
            counts[key] = result.rows[0][0]
        return counts

    # Erasure

    async def _delete_where_meeting(self, table: str, meeting_id: str) -> int:
        result = await self._db.execute(
            f"DELETE FROM {table} WHERE meeting_id = ?", [meeting_id]
        )
        logger.debug(f"Deleted {result.rows_affected} row(s) from {table} for {meeting_id}")
        return result.rows_affected

    async def delete_actions(self, meeting_id: str) -> int:
        return await self._delete_where_meeting("action_items", meeting_id)

    async def delete_decisions(self, meeting_id: str) -> int:
        return await self._delete_where_meeting("decisions", meeting_id)

    async def delete_briefs(self, meeting_id: str) -> int:
        return await self._delete_where_meeting("briefs", meeting_id)

    async def delete_transcript(self, meeting_id: str) -> int:
        return await self._delete_where_meeting("transcript_segments", meeting_id)

    async def delete_consent(self, meeting_id: str) -> int:
        return await self._delete_where_meeting("consents", meeting_id)

    async def delete_meeting(self, meeting_id: str) -> int:
        return await self._delete_where_meeting("meetings", meeting_id)
