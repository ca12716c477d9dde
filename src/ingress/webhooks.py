"""Meeting provider webhook ingress.

Verifies provider signatures, answers the Zoom URL validation challenge
and hands accepted payloads to the meeting-processing queue.
"""

import base64
import hashlib
import hmac
import json
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from src.errors import OrchestrationError, ValidationError
from src.jobs.job_queue import JobQueue
from src.jobs.models import MEETING_PROCESSING

logger = structlog.get_logger()

PROVIDER_WEBHOOK_JOB = "provider-webhook"
ZOOM_URL_VALIDATION = "endpoint.url_validation"

PROVIDERS: tuple[str, ...] = ("microsoft-teams", "zoom", "google-meet", "webex")

SIGNATURE_HEADERS: dict[str, str] = {
    "webex": "x-spark-signature",
    "zoom": "x-zm-signature",
    "microsoft-teams": "x-teams-signature",
    "google-meet": "x-goog-signature",
}


class InvalidSignatureError(OrchestrationError):
    """Webhook signature missing or not matching the configured secret."""


class WebhookVerifier(Protocol):
    """Checks that a raw webhook body was signed with a shared secret."""

    def verify(self, secret: str, signature: str, raw_body: bytes) -> bool: ...


class HmacSignatureVerifier:
    """Hex HMAC digest of the raw body, compared in constant time."""

    def __init__(self, digestmod: Callable[..., Any] = hashlib.sha256):
        self._digestmod = digestmod

    def verify(self, secret: str, signature: str, raw_body: bytes) -> bool:
        digest = hmac.new(secret.encode(), raw_body, self._digestmod).hexdigest()
        return hmac.compare_digest(digest, signature.strip().lower())


def default_verifiers() -> dict[str, WebhookVerifier]:
    """Webex signs with SHA-1, the other providers with SHA-256."""
    return {
        "webex": HmacSignatureVerifier(hashlib.sha1),
        "zoom": HmacSignatureVerifier(),
        "microsoft-teams": HmacSignatureVerifier(),
        "google-meet": HmacSignatureVerifier(),
    }


class WebhookPayload(BaseModel):
    """Provider-neutral webhook body."""

    model_config = ConfigDict(populate_by_name=True)

    meeting_id: str = Field(alias="meetingId", min_length=1)
    event: str = Field(min_length=1)
    data: Any = None


def zoom_url_validation(secret: str, plain_token: str) -> dict[str, str]:
    """Response to Zoom's endpoint URL validation challenge."""
    digest = hmac.new(secret.encode(), plain_token.encode(), hashlib.sha256).digest()
    return {
        "plainToken": plain_token,
        "encryptedToken": base64.b64encode(digest).decode(),
    }


class WebhookIngress:
    """Accepts provider webhooks and enqueues them for processing.

    Providers without a configured secret are accepted unverified. When
    a secret is configured, a missing or wrong signature is rejected.
    """

    def __init__(
        self,
        queue: JobQueue,
        secrets: Mapping[str, str | None],
        verifiers: Mapping[str, WebhookVerifier] | None = None,
    ):
        """Initialize ingress.

        Args:
            queue: Job queue receiving provider-webhook jobs
            secrets: Signature secret per provider
            verifiers: Signature check per provider
        """
        self._queue = queue
        self._secrets = dict(secrets)
        self._verifiers = dict(verifiers) if verifiers is not None else default_verifiers()

    async def handle(
        self,
        provider: str,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> dict[str, Any]:
        """Process one webhook delivery.

        Returns:
            The Zoom challenge response, or ``{"success": True, "job_id": ...}``

        Raises:
            ValidationError: Unknown provider or malformed body
            InvalidSignatureError: Signature check failed
        """
        if provider not in PROVIDERS:
            msg = f"Unknown provider: {provider}"
            raise ValidationError(msg)

        try:
            body = json.loads(raw_body)
        except ValueError as e:
            msg = f"Webhook body is not valid JSON: {e}"
            raise ValidationError(msg) from e
        if not isinstance(body, dict):
            msg = "Webhook body must be a JSON object"
            raise ValidationError(msg)

        if provider == "zoom" and body.get("event") == ZOOM_URL_VALIDATION:
            return self._answer_zoom_challenge(body)

        self._verify(provider, raw_body, headers)

        try:
            payload = WebhookPayload.model_validate(body)
        except PydanticValidationError as e:
            msg = f"Invalid webhook payload: {e.error_count()} error(s)"
            raise ValidationError(msg) from e

        job_id = await self._queue.enqueue(
            MEETING_PROCESSING,
            PROVIDER_WEBHOOK_JOB,
            {
                "provider": provider,
                "meeting_id": payload.meeting_id,
                "event": payload.event,
                "data": payload.data,
            },
        )
        logger.info(
            "webhook accepted",
            provider=provider,
            meeting_id=payload.meeting_id,
            webhook_event=payload.event,
            job_id=job_id,
        )
        return {"success": True, "job_id": job_id}

    def _answer_zoom_challenge(self, body: dict[str, Any]) -> dict[str, str]:
        secret = self._secrets.get("zoom")
        if not secret:
            msg = "Zoom webhook secret token is not configured"
            raise InvalidSignatureError(msg)
        challenge = body.get("payload")
        plain_token = challenge.get("plainToken") if isinstance(challenge, dict) else None
        if not isinstance(plain_token, str) or not plain_token:
            msg = "Zoom URL validation without plainToken"
            raise ValidationError(msg)
        logger.info("zoom url validation answered")
        return zoom_url_validation(secret, plain_token)

    def _verify(self, provider: str, raw_body: bytes, headers: Mapping[str, str]) -> None:
        secret = self._secrets.get(provider)
        if not secret:
            return

        normalized = {key.lower(): value for key, value in headers.items()}
        signature = normalized.get(SIGNATURE_HEADERS[provider])
        if not signature:
            logger.warning("webhook signature missing", provider=provider)
            msg = f"Missing {provider} signature"
            raise InvalidSignatureError(msg)

        if not self._verifiers[provider].verify(secret, signature, raw_body):
            logger.warning("webhook signature mismatch", provider=provider)
            msg = f"Invalid {provider} signature"
            raise InvalidSignatureError(msg)
