"""Base entity class for all domain models."""

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a string identifier."""
    return str(uuid4())


class BaseEntity(BaseModel):
    """Base class for all domain entities.

    Provides:
    - Unique string ID (UUID4 by default, external IDs accepted)
    - Created/updated timestamps
    - Standard serialization config
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_default=True,
        from_attributes=True,
    )

    id: str = Field(default_factory=new_id, description="Unique entity identifier")
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When entity was created",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="When entity was last updated",
    )

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = utc_now()
