"""Canonical data models for the meeting orchestrator.

This module exports the domain models used throughout the application:
- BaseEntity: Base class with id, timestamps
- Meeting / MeetingDetail / TranscriptSegment: meeting metadata and read model
- ActionItem: Tasks committed to during meetings
- DecisionCard: Decisions finalized during meetings
- MeetingBrief: Pre/post briefings
- MeetingSummary: Outcome of a finished meeting
- ConsentRecord: Consent a meeting is recorded under
- AuditEntry: Append-only compliance records
"""

from src.models.action_item import ActionItem, ActionItemStatus, ActionSource
from src.models.audit import AuditEntry
from src.models.base import BaseEntity, new_id, utc_now
from src.models.brief import MeetingBrief, MeetingSummary
from src.models.consent import (
    ConsentProfile,
    ConsentReceipt,
    ConsentRecord,
    ConsentScope,
    DataResidency,
)
from src.models.decision import DecisionAlternative, DecisionCard
from src.models.meeting import Meeting, MeetingDetail, TranscriptSegment

__all__ = [
    # Base
    "BaseEntity",
    "new_id",
    "utc_now",
    # Meeting
    "Meeting",
    "MeetingDetail",
    "TranscriptSegment",
    # Artifacts
    "ActionItem",
    "ActionItemStatus",
    "ActionSource",
    "DecisionCard",
    "DecisionAlternative",
    "MeetingBrief",
    "MeetingSummary",
    # Compliance
    "AuditEntry",
    "ConsentProfile",
    "ConsentReceipt",
    "ConsentRecord",
    "ConsentScope",
    "DataResidency",
]
