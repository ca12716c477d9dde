"""Adapters for external messaging systems.

- SlackAdapter: Resolve users by email and send them direct messages
"""

from src.adapters.slack_adapter import SlackAdapter

__all__ = [
    "SlackAdapter",
]
