"""Consent policy evaluation."""

from src.policy.engine import (
    PROFILES,
    ConsentPolicyEngine,
    build_consent,
    decide,
    scope_for_data_class,
)
from src.policy.schemas import DataClass, Operation, PolicyContext, PolicyDecision

__all__ = [
    "PROFILES",
    "ConsentPolicyEngine",
    "DataClass",
    "Operation",
    "PolicyContext",
    "PolicyDecision",
    "build_consent",
    "decide",
    "scope_for_data_class",
]
