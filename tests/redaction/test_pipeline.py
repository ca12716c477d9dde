"""Tests for the redaction pipeline."""

import random
import re
from dataclasses import replace

import pytest

from src.models.meeting import TranscriptSegment
from src.redaction import (
    DEFAULT_RULES,
    RedactionOptions,
    RedactionPipeline,
    RedactionRule,
)

MIXED_TEXT = (
    "Anna (850709-1234) bor på Storgatan 12, mejla anna.svensson@example.se "
    "eller ring 070-123 45 67."
)

# Pieces glued together without separators, including existing sentinels
FRAGMENTS = (
    "a@b.se",
    "0701234567",
    "19850709-1234",
    "Storgatan 9",
    "+46 70 123 45 67",
    "[REDACTED-EMAIL]",
    "[REDACTED-PNR]",
    "gatan",
    "070",
    "x",
    "1",
    "+",
    "-",
    ".",
    " ",
)


@pytest.fixture
def pipeline() -> RedactionPipeline:
    return RedactionPipeline()


class TestRedactText:
    def test_personal_number(self, pipeline: RedactionPipeline) -> None:
        assert (
            pipeline.redact_text("Personnummer 19850709-1234.")
            == "Personnummer [REDACTED-PNR]."
        )

    def test_email(self, pipeline: RedactionPipeline) -> None:
        assert pipeline.redact_text("Skriv till a.b@firma.se") == "Skriv till [REDACTED-EMAIL]"

    def test_address(self, pipeline: RedactionPipeline) -> None:
        assert (
            pipeline.redact_text("Kontoret ligger på Drottninggatan 5 i Stockholm")
            == "Kontoret ligger på [REDACTED-ADDRESS] i Stockholm"
        )

    @pytest.mark.parametrize("number", ["070-123 45 67", "+46 70 123 45 67", "08-555 123 45"])
    def test_phone(self, pipeline: RedactionPipeline, number: str) -> None:
        assert pipeline.redact_text(f"Ring {number} idag") == "Ring [REDACTED-PHONE] idag"

    def test_mixed_text(self, pipeline: RedactionPipeline) -> None:
        assert pipeline.redact_text(MIXED_TEXT) == (
            "Anna ([REDACTED-PNR]) bor på [REDACTED-ADDRESS], mejla [REDACTED-EMAIL] "
            "eller ring [REDACTED-PHONE]."
        )

    def test_text_without_personal_data_unchanged(self, pipeline: RedactionPipeline) -> None:
        text = "Vi beslutade att skjuta lanseringen en vecka."
        assert pipeline.redact_text(text) == text
        assert pipeline.redact_text("") == ""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("mejla a@b.se0701234567 nu", "mejla [REDACTED-EMAIL][REDACTED-PNR] nu"),
            ("+4683a@b.se1Storgatan 90", "[REDACTED-EMAIL][REDACTED-ADDRESS]"),
        ],
    )
    def test_match_glued_to_redaction(
        self, pipeline: RedactionPipeline, text: str, expected: str
    ) -> None:
        """A sentinel's closing bracket exposes the digits after it."""
        once = pipeline.redact_text(text)

        assert once == expected
        assert pipeline.redact_text(once) == once

    def test_idempotent_on_generated_text(self, pipeline: RedactionPipeline) -> None:
        rng = random.Random(1234)
        backward = RedactionPipeline(tuple(reversed(DEFAULT_RULES)))

        for _ in range(1000):
            text = "".join(rng.choice(FRAGMENTS) for _ in range(rng.randint(1, 8)))
            once = pipeline.redact_text(text)
            assert pipeline.redact_text(once) == once, text
            assert backward.redact_text(text) == once, text

    def test_rule_order_does_not_matter(self) -> None:
        forward = RedactionPipeline(DEFAULT_RULES)
        backward = RedactionPipeline(tuple(reversed(DEFAULT_RULES)))

        for text in (MIXED_TEXT, "Nummer 0701234567 gäller"):
            assert forward.redact_text(text) == backward.redact_text(text)

    def test_same_span_resolved_by_priority(self) -> None:
        """Ten digits read as both a personal number and a phone number."""
        backward = RedactionPipeline(tuple(reversed(DEFAULT_RULES)))
        assert backward.redact_text("Nummer 0701234567 gäller") == (
            "Nummer [REDACTED-PNR] gäller"
        )


class TestOptions:
    def test_disabled_kind_is_kept(self, pipeline: RedactionPipeline) -> None:
        options = RedactionOptions(mask_email=False)
        result = pipeline.redact_text(MIXED_TEXT, options)

        assert "anna.svensson@example.se" in result
        assert "[REDACTED-PNR]" in result
        assert "[REDACTED-PHONE]" in result

    def test_all_disabled_returns_input(self, pipeline: RedactionPipeline) -> None:
        options = RedactionOptions(
            mask_personal_number=False,
            mask_email=False,
            mask_address=False,
            mask_phone=False,
        )
        assert pipeline.redact_text(MIXED_TEXT, options) == MIXED_TEXT

    def test_rule_switch(self) -> None:
        rules = [replace(r, enabled=r.kind != "EMAIL") for r in DEFAULT_RULES]
        result = RedactionPipeline(rules).redact_text("mejla x@y.se")
        assert result == "mejla x@y.se"

    def test_custom_kind_always_runs(self) -> None:
        project_code = RedactionRule(
            kind="PROJECT", pattern=re.compile(r"\bPRJ-\d{4}\b"), priority=5
        )
        pipeline = RedactionPipeline((*DEFAULT_RULES, project_code))
        options = RedactionOptions(mask_email=False)

        assert pipeline.redact_text("Se PRJ-2041", options) == "Se [REDACTED-PROJECT]"


class TestRedactSegments:
    def test_only_text_changes(self, pipeline: RedactionPipeline) -> None:
        segment = TranscriptSegment(
            speaker="Anna",
            text="Mejla mig på anna@example.se",
            start_time="00:00:01",
            end_time="00:00:04",
            language="sv",
        )

        [redacted] = pipeline.redact_segments([segment])

        assert redacted.text == "Mejla mig på [REDACTED-EMAIL]"
        assert redacted.speaker == "Anna"
        assert redacted.start_time == "00:00:01"
        assert redacted.language == "sv"
        # Input untouched
        assert segment.text == "Mejla mig på anna@example.se"
