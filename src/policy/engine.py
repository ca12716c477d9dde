"""Consent policy engine gating data operations by scope and residency.

Rules are evaluated in a fixed order and the first match wins:

1. no consent for the meeting        -> deny  ``consent.required``
2. data class outside consent scope  -> deny  ``consent.scope``
3. target region != data residency   -> deny  ``consent.residency``
4. otherwise                         -> allow ``consent.ok``
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import NamedTuple

import structlog

from src.errors import PolicyDeniedError
from src.models.consent import (
    ConsentProfile,
    ConsentRecord,
    ConsentScope,
    DataResidency,
)
from src.policy.schemas import DataClass, PolicyContext, PolicyDecision

logger = structlog.get_logger()

ConsentLookup = Callable[[str], Awaitable[ConsentRecord | None]]


class ProfileTemplate(NamedTuple):
    """Scope, retention and residency fixed by a consent profile."""

    scope: frozenset[ConsentScope]
    retention_days: int
    data_residency: DataResidency


PROFILES: dict[ConsentProfile, ProfileTemplate] = {
    ConsentProfile.BAS: ProfileTemplate(
        scope=frozenset({ConsentScope.AUDIO, ConsentScope.CHAT}),
        retention_days=30,
        data_residency=DataResidency.EU,
    ),
    ConsentProfile.PLUS: ProfileTemplate(
        scope=frozenset({ConsentScope.AUDIO, ConsentScope.CHAT, ConsentScope.DOCUMENTS}),
        retention_days=90,
        data_residency=DataResidency.EU,
    ),
    ConsentProfile.JURIDIK: ProfileTemplate(
        scope=frozenset(
            {
                ConsentScope.AUDIO,
                ConsentScope.CHAT,
                ConsentScope.DOCUMENTS,
                ConsentScope.SCREEN,
            }
        ),
        retention_days=180,
        data_residency=DataResidency.CUSTOMER,
    ),
}

_SCOPE_FOR_DATA_CLASS: dict[DataClass, ConsentScope] = {
    DataClass.TRANSCRIPT: ConsentScope.AUDIO,
    DataClass.RECORDING: ConsentScope.VIDEO,
    DataClass.DOCUMENT: ConsentScope.DOCUMENTS,
    DataClass.ANALYTICS: ConsentScope.SCREEN,
    DataClass.ACTION: ConsentScope.CHAT,
}


def scope_for_data_class(data_class: DataClass) -> ConsentScope:
    """Consent scope tag required to touch a data class."""
    return _SCOPE_FOR_DATA_CLASS.get(data_class, ConsentScope.CHAT)


def build_consent(
    meeting_id: str, profile: ConsentProfile, accepted_at: datetime
) -> ConsentRecord:
    """Build the consent record a profile implies.

    Pure function: persisting the record is up to the caller.
    """
    template = PROFILES[profile]
    return ConsentRecord(
        meeting_id=meeting_id,
        profile=profile,
        scope=template.scope,
        retention_days=template.retention_days,
        data_residency=template.data_residency,
        accepted_at=accepted_at,
    )


def decide(context: PolicyContext, consent: ConsentRecord | None) -> PolicyDecision:
    """Evaluate a context against a known consent record."""
    if consent is None:
        return PolicyDecision(
            allowed=False,
            reason="Consent is missing",
            policy="consent.required",
        )

    if scope_for_data_class(context.data_class) not in consent.scope:
        return PolicyDecision(
            allowed=False,
            reason=(
                f"Consent profile {consent.profile.value} does not cover "
                f"{context.data_class.value}"
            ),
            policy="consent.scope",
        )

    if context.target_region and context.target_region != consent.data_residency:
        return PolicyDecision(
            allowed=False,
            reason=f"Data must stay in {consent.data_residency.value}",
            policy="consent.residency",
        )

    return PolicyDecision(allowed=True, policy="consent.ok")


class ConsentPolicyEngine:
    """Evaluates allow/deny decisions from consent records.

    The engine resolves consent through an injected lookup when the
    context does not carry one. It has no state of its own.
    """

    def __init__(self, consent_lookup: ConsentLookup):
        """Initialize with a consent lookup.

        Args:
            consent_lookup: Async callable returning the meeting's consent
        """
        self._lookup = consent_lookup

    async def evaluate_policy(self, context: PolicyContext) -> PolicyDecision:
        """Decide whether the operation in ``context`` is permitted.

        Args:
            context: Meeting, data class, operation and optional region

        Returns:
            PolicyDecision for the first matching rule
        """
        consent = context.consent
        if consent is None:
            consent = await self._lookup(context.meeting_id)

        decision = decide(context, consent)
        if not decision.allowed:
            logger.info(
                "policy denied",
                meeting_id=context.meeting_id,
                data_class=context.data_class.value,
                operation=context.operation.value,
                policy=decision.policy,
            )
        return decision

    async def require(self, context: PolicyContext) -> PolicyDecision:
        """Evaluate and raise when the operation is not permitted.

        Raises:
            PolicyDeniedError: If the decision is a deny
        """
        decision = await self.evaluate_policy(context)
        if not decision.allowed:
            raise PolicyDeniedError(decision)
        return decision
