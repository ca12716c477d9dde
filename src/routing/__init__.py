"""Follow-up routing: nudges, decision notices and briefs."""

from src.routing.action_router import DECISION_NOTICE_JOB, NUDGE_JOB, ActionRouter
from src.routing.briefing import (
    PRE_BRIEF_JOB,
    BriefComposer,
    BriefingScheduler,
    SummaryBriefComposer,
)

__all__ = [
    "DECISION_NOTICE_JOB",
    "NUDGE_JOB",
    "PRE_BRIEF_JOB",
    "ActionRouter",
    "BriefComposer",
    "BriefingScheduler",
    "SummaryBriefComposer",
]
