"""Audit pipeline for access-governance.

Provides the immutable audit entry model, risk classification, an
append-only logger over pluggable stores, search and statistics, lossless
export, and tiered retention sweeps.
"""
from __future__ import annotations

from access_governance.audit.changes import compute_changes
from access_governance.audit.exporter import AuditExporter, ExportFormat, UnsupportedFormatError
from access_governance.audit.logger import AuditLogger, AuditValidationError
from access_governance.audit.models import AuditDetails, AuditEntry, AuditResult, RiskTier
from access_governance.audit.retention import RetentionPolicy, RetentionSweeper, SweepResult
from access_governance.audit.risk import (
    HIGH_RISK_ACTIONS,
    MEDIUM_RISK_ACTIONS,
    PRIVILEGE_ESCALATION_ACTIONS,
    classify,
)
from access_governance.audit.search import (
    AuditFilter,
    AuditPage,
    AuditSearch,
    AuditStats,
    InvalidFilterError,
)
from access_governance.audit.store import AuditStore, InMemoryAuditStore, JsonlAuditStore

__all__ = [
    # Model
    "AuditDetails",
    "AuditEntry",
    "AuditResult",
    "RiskTier",
    # Risk
    "HIGH_RISK_ACTIONS",
    "MEDIUM_RISK_ACTIONS",
    "PRIVILEGE_ESCALATION_ACTIONS",
    "classify",
    # Storage
    "AuditStore",
    "InMemoryAuditStore",
    "JsonlAuditStore",
    # Pipeline
    "AuditExporter",
    "AuditFilter",
    "AuditLogger",
    "AuditPage",
    "AuditSearch",
    "AuditStats",
    "AuditValidationError",
    "ExportFormat",
    "InvalidFilterError",
    "RetentionPolicy",
    "RetentionSweeper",
    "SweepResult",
    "UnsupportedFormatError",
    "compute_changes",
]
