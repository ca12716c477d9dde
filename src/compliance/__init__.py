"""Compliance: audit trail, erasure and retention."""

from src.compliance.auditor import (
    DELETE_ALL_EVENT,
    RETENTION_PURGE_JOB,
    ComplianceAuditor,
)

__all__ = [
    "DELETE_ALL_EVENT",
    "RETENTION_PURGE_JOB",
    "ComplianceAuditor",
]
