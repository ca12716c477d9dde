"""Error taxonomy shared by the orchestration core.

Job handlers signal how a failure should be treated by raising one of
these; the queue worker classifies everything else as transient.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.policy.schemas import PolicyDecision


class OrchestrationError(Exception):
    """Base class for orchestration errors."""


class ValidationError(OrchestrationError):
    """Malformed event or job payload. Never retried."""


class PolicyDeniedError(OrchestrationError):
    """A consent gate denied the operation."""

    def __init__(self, decision: "PolicyDecision"):
        self.decision = decision
        super().__init__(decision.reason or decision.policy)


class ExecutionError(OrchestrationError):
    """Base class for job handler failures."""


class TransientExecutionError(ExecutionError):
    """Handler failure eligible for backoff retry."""


class FatalExecutionError(ExecutionError):
    """Handler failure that skips remaining attempts.

    Attributes:
        can_retry: Whether the dead-letter record may be re-submitted
    """

    def __init__(self, message: str, *, can_retry: bool = False):
        super().__init__(message)
        self.can_retry = can_retry


class PersistenceError(OrchestrationError):
    """A write to the backing store failed."""


class NotFoundError(OrchestrationError):
    """Raised when a requested entity does not exist."""


class JobNotFoundError(NotFoundError):
    """Raised when a job or dead-letter record does not exist."""
