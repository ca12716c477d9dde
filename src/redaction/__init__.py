"""Transcript redaction."""

from src.redaction.pipeline import (
    DEFAULT_RULES,
    RedactionOptions,
    RedactionPipeline,
    RedactionRule,
)

__all__ = [
    "DEFAULT_RULES",
    "RedactionOptions",
    "RedactionPipeline",
    "RedactionRule",
]
