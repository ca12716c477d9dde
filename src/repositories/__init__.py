"""Repository layer for data persistence.

Provides repository classes for persisting meeting data and the audit
trail. Repositories encapsulate data access logic and provide a clean
interface for the service layer.
"""

from src.repositories.audit_repo import AuditRepository
from src.repositories.meeting_repo import MeetingRepository

__all__ = [
    "AuditRepository",
    "MeetingRepository",
]
