"""Event infrastructure for the meeting orchestrator.

Provides:
- MeetingEvent / EventKind: Base class and closed kind set for domain events
- EventBus: In-process pub/sub for event routing
"""

from src.events.base import EventKind, MeetingEvent
from src.events.bus import EventBus
from src.events.types import (
    ActionCreated,
    AnyMeetingEvent,
    ConsentGranted,
    DecisionFinalized,
    MeetingSummarized,
    parse_event,
)

__all__ = [
    # Base
    "MeetingEvent",
    "EventKind",
    # Infrastructure
    "EventBus",
    # Event types
    "ConsentGranted",
    "DecisionFinalized",
    "ActionCreated",
    "MeetingSummarized",
    "AnyMeetingEvent",
    "parse_event",
]
