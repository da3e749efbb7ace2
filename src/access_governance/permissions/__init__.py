"""Role-based permission evaluation.

Provides a static CapabilityMatrix (role -> (resource type, action) grants)
and a pure PermissionEngine that combines it with an explicit
ResourceContext to produce PermissionDecision values.

Example
-------
::

    from access_governance.permissions import (
        PermissionEngine, Principal, ResourceContext,
    )

    engine = PermissionEngine()
    principal = Principal(user_id="u-1", roles={"TeamLeader"}, team_ids={"t-9"})
    decision = engine.evaluate(
        principal, "project", "update", ResourceContext(team_id="t-9")
    )
    assert decision.allowed
"""
from __future__ import annotations

from access_governance.permissions.capability_matrix import (
    Capability,
    CapabilityMatrix,
    PermissionAction,
    ResourceType,
    Role,
    Scope,
)
from access_governance.permissions.engine import (
    DecisionReason,
    PermissionDecision,
    PermissionDeniedError,
    PermissionEngine,
    Principal,
    ResourceContext,
)
from access_governance.permissions.permission_loader import (
    LoadedPermissions,
    PermissionConfigError,
    PermissionLoader,
)

__all__ = [
    # Matrix
    "Capability",
    "CapabilityMatrix",
    "PermissionAction",
    "ResourceType",
    "Role",
    "Scope",
    # Engine
    "DecisionReason",
    "PermissionDecision",
    "PermissionDeniedError",
    "PermissionEngine",
    "Principal",
    "ResourceContext",
    # Loader
    "LoadedPermissions",
    "PermissionConfigError",
    "PermissionLoader",
]
