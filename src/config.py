"""Application configuration using pydantic-settings pattern."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Meeting Orchestrator"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Database (Turso)
    turso_database_url: str | None = Field(default=None)
    turso_auth_token: str | None = Field(default=None)

    # Job queue
    queue_backend: Literal["memory", "turso"] = Field(
        default="memory",
        description="Where queued jobs are stored",
    )
    meeting_processing_concurrency: int = Field(default=2, ge=1)
    briefing_concurrency: int = Field(default=1, ge=1)
    notifications_concurrency: int = Field(default=3, ge=1)
    nudging_concurrency: int = Field(default=1, ge=1)
    job_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single handler execution",
    )
    queue_poll_interval_seconds: float = Field(default=1.0, gt=0)

    # Nudging / briefing
    nudge_window_hours: float = Field(default=48.0, gt=0)
    nudge_escalation_steps: int = Field(
        default=2,
        ge=0,
        description="Follow-up nudges after the first reminder",
    )
    nudge_escalation_window_hours: float = Field(default=24.0, gt=0)
    pre_brief_lead_minutes: int = Field(default=30, ge=0)

    # Compliance
    audit_write_attempts: int = Field(default=3, ge=1)
    consent_receipt_secret: str = Field(default="change-me")

    # Integrations
    slack_bot_token: str | None = Field(default=None)
    webex_webhook_secret: str | None = Field(default=None)
    zoom_webhook_secret_token: str | None = Field(default=None)
    teams_webhook_secret: str | None = Field(default=None)
    google_meet_webhook_secret: str | None = Field(default=None)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def queue_concurrency(self) -> dict[str, int]:
        """Worker pool size per named queue."""
        return {
            "meeting-processing": self.meeting_processing_concurrency,
            "briefing": self.briefing_concurrency,
            "notifications": self.notifications_concurrency,
            "nudging": self.nudging_concurrency,
        }

    def webhook_secrets(self) -> dict[str, str | None]:
        """Signature secrets keyed by provider platform."""
        return {
            "webex": self.webex_webhook_secret,
            "zoom": self.zoom_webhook_secret_token,
            "microsoft-teams": self.teams_webhook_secret,
            "google-meet": self.google_meet_webhook_secret,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
