"""Redaction pipeline scrubbing personal data from transcript text.

Each rule replaces matches of its own pattern with a fixed sentinel
(``[REDACTED-<KIND>]``). All enabled rules are matched against the
input together and overlapping matches are resolved leftmost-longest,
then by rule priority, so the order of the rule list does not affect
the output. Existing sentinels are never re-matched, and passes repeat
until the text is stable, which keeps redaction idempotent.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from src.models.meeting import TranscriptSegment

SENTINEL_PATTERN = re.compile(r"\[REDACTED-[A-Z]+\]")


@dataclass(frozen=True)
class RedactionRule:
    """One text-scrubbing rule.

    Attributes:
        kind: Upper-case label used in the sentinel token
        pattern: Compiled pattern matching the sensitive text
        priority: Lower wins when two rules match the same span
        enabled: Rule switch independent of per-call options
    """

    kind: str
    pattern: re.Pattern[str]
    priority: int
    enabled: bool = True

    @property
    def replacement(self) -> str:
        return f"[REDACTED-{self.kind}]"


DEFAULT_RULES: tuple[RedactionRule, ...] = (
    RedactionRule(
        kind="PNR",
        pattern=re.compile(r"\b(?:19|20)?\d{2}[01]\d[0-3]\d[-+]?\d{4}\b"),
        priority=0,
    ),
    RedactionRule(
        kind="EMAIL",
        pattern=re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE),
        priority=1,
    ),
    RedactionRule(
        kind="ADDRESS",
        pattern=re.compile(
            r"\b\w*(?:gatan|vägen|gränd|gata|väg|platsen)\s+\d+[a-z]?\b",
            re.IGNORECASE,
        ),
        priority=2,
    ),
    RedactionRule(
        kind="PHONE",
        pattern=re.compile(r"(?<![\w+])(?:\+46|0)\s?(?:\d[\s-]?){6,11}\d\b"),
        priority=3,
    ),
)


class RedactionOptions(BaseModel):
    """Per-call toggles for the built-in rule kinds."""

    model_config = ConfigDict(frozen=True)

    mask_personal_number: bool = True
    mask_email: bool = True
    mask_address: bool = True
    mask_phone: bool = True

    def allows(self, kind: str) -> bool:
        """Check if rules of ``kind`` should run. Custom kinds always run."""
        toggles = {
            "PNR": self.mask_personal_number,
            "EMAIL": self.mask_email,
            "ADDRESS": self.mask_address,
            "PHONE": self.mask_phone,
        }
        return toggles.get(kind, True)


class RedactionPipeline:
    """Applies an ordered list of redaction rules to transcript text."""

    def __init__(self, rules: Sequence[RedactionRule] = DEFAULT_RULES):
        """Initialize with rule configuration.

        Args:
            rules: Rules to apply; defaults to PNR, email, address, phone
        """
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[RedactionRule, ...]:
        return self._rules

    def redact_text(self, text: str, options: RedactionOptions | None = None) -> str:
        """Replace every sensitive match in ``text`` with its sentinel.

        A new sentinel can expose a match in the text glued to it (its
        closing bracket is a word boundary), so passes repeat until the
        text is stable. Every changing pass replaces at least one
        unredacted character, which bounds the loop by ``len(text)``.
        """
        options = options or RedactionOptions()
        active = [r for r in self._rules if r.enabled and options.allows(r.kind)]
        if not active or not text:
            return text

        for _ in range(len(text)):
            redacted = _redact_once(text, active)
            if redacted == text:
                break
            text = redacted
        return text

    def redact(
        self,
        segment: TranscriptSegment,
        options: RedactionOptions | None = None,
    ) -> TranscriptSegment:
        """Return a copy of ``segment`` with its text redacted."""
        return segment.model_copy(update={"text": self.redact_text(segment.text, options)})

    def redact_segments(
        self,
        segments: Iterable[TranscriptSegment],
        options: RedactionOptions | None = None,
    ) -> list[TranscriptSegment]:
        return [self.redact(segment, options) for segment in segments]


def _overlaps(start: int, end: int, spans: list[tuple[int, int]]) -> bool:
    return any(start < s_end and s_start < end for s_start, s_end in spans)


def _redact_once(text: str, rules: list[RedactionRule]) -> str:
    """One single-pass match of ``rules``, leftmost-longest then by priority."""
    protected = [m.span() for m in SENTINEL_PATTERN.finditer(text)]
    candidates: list[tuple[int, int, int, str, int, RedactionRule]] = []
    for rule in rules:
        for match in rule.pattern.finditer(text):
            start, end = match.span()
            if start == end or _overlaps(start, end, protected):
                continue
            candidates.append((start, start - end, rule.priority, rule.kind, end, rule))

    candidates.sort(key=lambda c: c[:4])

    pieces: list[str] = []
    cursor = 0
    for start, _, _, _, end, rule in candidates:
        if start < cursor:
            continue
        pieces.append(text[cursor:start])
        pieces.append(rule.replacement)
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)
