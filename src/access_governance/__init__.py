"""access-governance: role-based permission evaluation and risk-classified audit logging.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import access_governance as gov
>>> gov.__version__
'0.1.0'
>>> engine = gov.PermissionEngine()
>>> admin = gov.Principal(user_id="root", roles={"SuperAdmin"})
>>> engine.evaluate(admin, "enterprise", "delete").allowed
True
"""
from __future__ import annotations

__version__: str = "0.1.0"

from access_governance.convenience import AccessGovernor

# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------
from access_governance.permissions.capability_matrix import (
    CapabilityMatrix,
    PermissionAction,
    ResourceType,
    Role,
)
from access_governance.permissions.engine import (
    DecisionReason,
    PermissionDecision,
    PermissionDeniedError,
    PermissionEngine,
    Principal,
    ResourceContext,
)
from access_governance.permissions.permission_loader import PermissionConfigError, PermissionLoader

# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------
from access_governance.audit.models import AuditDetails, AuditEntry, AuditResult, RiskTier
from access_governance.audit.risk import classify
from access_governance.audit.logger import AuditLogger, AuditValidationError
from access_governance.audit.search import (
    AuditFilter,
    AuditPage,
    AuditSearch,
    AuditStats,
    InvalidFilterError,
)
from access_governance.audit.exporter import AuditExporter, ExportFormat, UnsupportedFormatError
from access_governance.audit.retention import RetentionPolicy, RetentionSweeper, SweepResult
from access_governance.audit.store import AuditStore, InMemoryAuditStore, JsonlAuditStore

# ---------------------------------------------------------------------------
# Anomalies
# ---------------------------------------------------------------------------
from access_governance.anomaly.detector import (
    AnomalyDetector,
    AnomalyReport,
    AnomalyThresholds,
    AnomalyType,
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from access_governance.config import ConfigError, ConfigLoader, GovernanceConfig

__all__ = [
    "__version__",
    "AccessGovernor",
    # Permissions
    "CapabilityMatrix",
    "DecisionReason",
    "PermissionAction",
    "PermissionConfigError",
    "PermissionDecision",
    "PermissionDeniedError",
    "PermissionEngine",
    "PermissionLoader",
    "Principal",
    "ResourceContext",
    "ResourceType",
    "Role",
    # Audit
    "AuditDetails",
    "AuditEntry",
    "AuditExporter",
    "AuditFilter",
    "AuditLogger",
    "AuditPage",
    "AuditResult",
    "AuditSearch",
    "AuditStats",
    "AuditStore",
    "AuditValidationError",
    "ExportFormat",
    "InMemoryAuditStore",
    "InvalidFilterError",
    "JsonlAuditStore",
    "RetentionPolicy",
    "RetentionSweeper",
    "RiskTier",
    "SweepResult",
    "UnsupportedFormatError",
    "classify",
    # Anomalies
    "AnomalyDetector",
    "AnomalyReport",
    "AnomalyThresholds",
    "AnomalyType",
    # Configuration
    "ConfigError",
    "ConfigLoader",
    "GovernanceConfig",
]
