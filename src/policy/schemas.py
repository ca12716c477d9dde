"""Policy evaluation input and output models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.consent import ConsentRecord, DataResidency


class DataClass(str, Enum):
    """Categories of meeting data that consent checks are scoped to."""

    TRANSCRIPT = "transcript"
    RECORDING = "recording"
    ACTION = "action"
    DOCUMENT = "document"
    ANALYTICS = "analytics"


class Operation(str, Enum):
    """What is about to be done with the data."""

    STORE = "store"
    EXPORT = "export"
    PROCESS = "process"
    DELETE = "delete"


class PolicyContext(BaseModel):
    """Everything a consent decision is based on."""

    model_config = ConfigDict(frozen=True)

    meeting_id: str
    consent: ConsentRecord | None = Field(
        default=None,
        description="Consent to evaluate against; looked up when omitted",
    )
    data_class: DataClass
    operation: Operation
    target_region: DataResidency | None = None


class PolicyDecision(BaseModel):
    """Outcome of a consent evaluation."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None
    policy: str
