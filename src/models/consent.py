"""Consent records fixing what may be done with a meeting's data."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ConsentProfile(str, Enum):
    """Named consent bundles offered when scheduling a meeting."""

    BAS = "bas"
    PLUS = "plus"
    JURIDIK = "juridik"


class ConsentScope(str, Enum):
    """Capture channels a participant can consent to."""

    AUDIO = "audio"
    VIDEO = "video"
    CHAT = "chat"
    SCREEN = "screen"
    DOCUMENTS = "documents"


class DataResidency(str, Enum):
    """Where meeting data may be stored or exported."""

    EU = "eu"
    CUSTOMER = "customer"
    GLOBAL = "global"


class ConsentRecord(BaseModel):
    """Consent granted for a meeting.

    Records are replaced wholesale when consent changes, never
    edited in place.
    """

    model_config = ConfigDict(frozen=True)

    meeting_id: str
    profile: ConsentProfile
    scope: frozenset[ConsentScope]
    retention_days: int = Field(gt=0)
    data_residency: DataResidency
    accepted_at: datetime


class ConsentReceipt(BaseModel):
    """Signed proof of the consent a meeting was recorded under."""

    model_config = ConfigDict(frozen=True)

    meeting_id: str
    consent: ConsentRecord
    issued_at: datetime
    signature: str
