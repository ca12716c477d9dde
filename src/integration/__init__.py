"""Integration layer for external system connections.

This module provides notification delivery via Slack.
"""

from src.integration.notification_service import NotificationService
from src.integration.schemas import (
    USER_NOT_FOUND,
    NotificationKind,
    NotificationRecord,
    NotificationResult,
)

__all__ = [
    "USER_NOT_FOUND",
    "NotificationKind",
    "NotificationRecord",
    "NotificationResult",
    "NotificationService",
]
