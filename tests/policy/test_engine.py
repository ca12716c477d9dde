"""Tests for the consent policy engine."""

import itertools
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from src.errors import PolicyDeniedError
from src.models.consent import (
    ConsentProfile,
    ConsentScope,
    DataResidency,
)
from src.policy import (
    PROFILES,
    ConsentPolicyEngine,
    DataClass,
    Operation,
    PolicyContext,
    build_consent,
    decide,
    scope_for_data_class,
)

ACCEPTED_AT = datetime(2026, 1, 15, 10, 0, tzinfo=UTC)


class TestProfiles:
    def test_bas_profile(self) -> None:
        consent = build_consent("m-1", ConsentProfile.BAS, ACCEPTED_AT)
        assert consent.scope == frozenset({ConsentScope.AUDIO, ConsentScope.CHAT})
        assert consent.retention_days == 30
        assert consent.data_residency == DataResidency.EU
        assert consent.accepted_at == ACCEPTED_AT

    def test_plus_profile(self) -> None:
        consent = build_consent("m-1", ConsentProfile.PLUS, ACCEPTED_AT)
        assert ConsentScope.DOCUMENTS in consent.scope
        assert consent.retention_days == 90
        assert consent.data_residency == DataResidency.EU

    def test_juridik_profile(self) -> None:
        consent = build_consent("m-1", ConsentProfile.JURIDIK, ACCEPTED_AT)
        assert consent.scope == frozenset(
            {
                ConsentScope.AUDIO,
                ConsentScope.CHAT,
                ConsentScope.DOCUMENTS,
                ConsentScope.SCREEN,
            }
        )
        assert consent.retention_days == 180
        assert consent.data_residency == DataResidency.CUSTOMER

    def test_scope_mapping(self) -> None:
        assert scope_for_data_class(DataClass.TRANSCRIPT) == ConsentScope.AUDIO
        assert scope_for_data_class(DataClass.RECORDING) == ConsentScope.VIDEO
        assert scope_for_data_class(DataClass.DOCUMENT) == ConsentScope.DOCUMENTS
        assert scope_for_data_class(DataClass.ANALYTICS) == ConsentScope.SCREEN
        assert scope_for_data_class(DataClass.ACTION) == ConsentScope.CHAT


class TestDecide:
    def test_missing_consent_denied(self) -> None:
        context = PolicyContext(
            meeting_id="m-1", data_class=DataClass.ACTION, operation=Operation.STORE
        )
        decision = decide(context, None)
        assert decision.allowed is False
        assert decision.policy == "consent.required"

    def test_recording_never_allowed_by_profiles(self) -> None:
        """No profile includes video."""
        for profile in ConsentProfile:
            consent = build_consent("m-1", profile, ACCEPTED_AT)
            context = PolicyContext(
                meeting_id="m-1",
                data_class=DataClass.RECORDING,
                operation=Operation.STORE,
            )
            assert decide(context, consent).policy == "consent.scope"

    def test_residency_mismatch_denied(self) -> None:
        consent = build_consent("m-1", ConsentProfile.BAS, ACCEPTED_AT)
        context = PolicyContext(
            meeting_id="m-1",
            data_class=DataClass.TRANSCRIPT,
            operation=Operation.EXPORT,
            target_region=DataResidency.GLOBAL,
        )
        decision = decide(context, consent)
        assert decision.allowed is False
        assert decision.policy == "consent.residency"
        assert "eu" in decision.reason

    def test_scope_checked_before_residency(self) -> None:
        consent = build_consent("m-1", ConsentProfile.BAS, ACCEPTED_AT)
        context = PolicyContext(
            meeting_id="m-1",
            data_class=DataClass.DOCUMENT,
            operation=Operation.EXPORT,
            target_region=DataResidency.GLOBAL,
        )
        assert decide(context, consent).policy == "consent.scope"

    def test_every_combination_follows_rule_order(self) -> None:
        """Allowed exactly when the scope covers the class and regions agree."""
        regions = [None, *DataResidency]
        for profile, data_class, operation, region in itertools.product(
            ConsentProfile, DataClass, Operation, regions
        ):
            consent = build_consent("m-1", profile, ACCEPTED_AT)
            context = PolicyContext(
                meeting_id="m-1",
                data_class=data_class,
                operation=operation,
                target_region=region,
            )
            decision = decide(context, consent)

            in_scope = scope_for_data_class(data_class) in PROFILES[profile].scope
            region_ok = region is None or region == PROFILES[profile].data_residency
            if not in_scope:
                expected = "consent.scope"
            elif not region_ok:
                expected = "consent.residency"
            else:
                expected = "consent.ok"
            assert decision.policy == expected, (profile, data_class, operation, region)
            assert decision.allowed is (expected == "consent.ok")


class TestConsentPolicyEngine:
    async def test_looks_up_consent_when_absent(self) -> None:
        consent = build_consent("m-1", ConsentProfile.PLUS, ACCEPTED_AT)
        lookup = AsyncMock(return_value=consent)
        engine = ConsentPolicyEngine(lookup)

        decision = await engine.evaluate_policy(
            PolicyContext(
                meeting_id="m-1",
                data_class=DataClass.DOCUMENT,
                operation=Operation.PROCESS,
            )
        )

        assert decision.allowed is True
        lookup.assert_awaited_once_with("m-1")

    async def test_context_consent_skips_lookup(self) -> None:
        lookup = AsyncMock(return_value=None)
        engine = ConsentPolicyEngine(lookup)
        consent = build_consent("m-1", ConsentProfile.BAS, ACCEPTED_AT)

        decision = await engine.evaluate_policy(
            PolicyContext(
                meeting_id="m-1",
                consent=consent,
                data_class=DataClass.ACTION,
                operation=Operation.STORE,
            )
        )

        assert decision.allowed is True
        lookup.assert_not_awaited()

    async def test_require_raises_on_deny(self) -> None:
        engine = ConsentPolicyEngine(AsyncMock(return_value=None))

        with pytest.raises(PolicyDeniedError) as exc_info:
            await engine.require(
                PolicyContext(
                    meeting_id="m-1",
                    data_class=DataClass.TRANSCRIPT,
                    operation=Operation.STORE,
                )
            )

        assert exc_info.value.decision.policy == "consent.required"

    async def test_decisions_follow_replaced_consent(self, meeting_repo) -> None:
        """Evaluation reads the current record, not a cached one."""
        engine = ConsentPolicyEngine(meeting_repo.get_consent)
        context = PolicyContext(
            meeting_id="m-1",
            data_class=DataClass.DOCUMENT,
            operation=Operation.STORE,
        )

        await meeting_repo.save_consent(build_consent("m-1", ConsentProfile.PLUS, ACCEPTED_AT))
        assert (await engine.evaluate_policy(context)).allowed is True

        await meeting_repo.save_consent(build_consent("m-1", ConsentProfile.BAS, ACCEPTED_AT))
        assert (await engine.evaluate_policy(context)).allowed is False
