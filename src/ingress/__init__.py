"""Provider webhook ingress and processing."""

from src.ingress.processor import TranscriptIngestor, is_transcript_event, parse_segments
from src.ingress.webhooks import (
    PROVIDER_WEBHOOK_JOB,
    PROVIDERS,
    HmacSignatureVerifier,
    InvalidSignatureError,
    WebhookIngress,
    WebhookPayload,
    WebhookVerifier,
    zoom_url_validation,
)

__all__ = [
    "PROVIDERS",
    "PROVIDER_WEBHOOK_JOB",
    "HmacSignatureVerifier",
    "InvalidSignatureError",
    "TranscriptIngestor",
    "WebhookIngress",
    "WebhookPayload",
    "WebhookVerifier",
    "is_transcript_event",
    "parse_segments",
    "zoom_url_validation",
]
