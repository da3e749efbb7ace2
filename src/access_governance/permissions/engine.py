"""Role-based permission engine.

PermissionEngine.evaluate is a pure decision function: it consults the
CapabilityMatrix and an explicit ResourceContext and returns an immutable
PermissionDecision.  It performs no I/O and holds no mutable state, so one
engine can be shared freely between threads.

Decision order
--------------
1. SuperAdmin -> allow ("super-admin override"), for any pair.
2. Unparseable resource type or action -> deny ("unknown capability").
3. Roles granting the capability are checked against the context scope, in
   canonical role order; the first in scope -> allow ("role capability").
4. Owners are allowed unless the action is admin-only for that resource
   type ("ownership").
5. Otherwise deny with "out of scope" or "no capability".

Example
-------
>>> engine = PermissionEngine()
>>> principal = Principal(user_id="u1", roles=frozenset({"User"}))
>>> engine.evaluate(principal, "dataset", "read").allowed
True
>>> engine.evaluate(principal, "dataset", "delete").reason
<DecisionReason.NO_CAPABILITY: 'no capability'>
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from access_governance.permissions.capability_matrix import (
    Capability,
    CapabilityMatrix,
    PermissionAction,
    ResourceType,
    Role,
    Scope,
    role_sort_key,
)

logger = logging.getLogger(__name__)

# Owners can never perform these, whatever the configuration says.
ALWAYS_ADMIN_ONLY: Mapping[ResourceType, frozenset[PermissionAction]] = MappingProxyType(
    {
        ResourceType.ENTERPRISE: frozenset([PermissionAction.DELETE]),
        ResourceType.USER: frozenset([PermissionAction.DELETE]),
        ResourceType.DEPARTMENT: frozenset([PermissionAction.DELETE]),
    }
)

DEFAULT_ADMIN_ONLY: Mapping[ResourceType, frozenset[PermissionAction]] = MappingProxyType(
    {
        ResourceType.ENTERPRISE: frozenset([PermissionAction.DELETE, PermissionAction.MANAGE]),
        ResourceType.USER: frozenset([PermissionAction.DELETE, PermissionAction.MANAGE]),
        ResourceType.DEPARTMENT: frozenset([PermissionAction.DELETE, PermissionAction.MANAGE]),
        ResourceType.ROLE: frozenset([PermissionAction.DELETE, PermissionAction.MANAGE]),
    }
)


class DecisionReason(str, Enum):
    """Why a decision came out the way it did."""

    SUPER_ADMIN = "super-admin override"
    ROLE_CAPABILITY = "role capability"
    OWNERSHIP = "ownership"
    NO_CAPABILITY = "no capability"
    OUT_OF_SCOPE = "out of scope"
    UNKNOWN_CAPABILITY = "unknown capability"


@dataclass(frozen=True)
class Principal:
    """An already-authenticated actor with its role and membership facts.

    Attributes
    ----------
    user_id:
        Identifier of the acting user.
    roles:
        Role names held by the user.
    enterprise_id:
        Enterprise the user belongs to, if any.
    department_id:
        Department the user belongs to, if any.
    team_ids:
        Teams the user is a member of.
    """

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    enterprise_id: str | None = None
    department_id: str | None = None
    team_ids: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        # Accept any iterable of strings; store frozen copies.
        object.__setattr__(
            self,
            "roles",
            frozenset(r.value if isinstance(r, Role) else str(r) for r in self.roles),
        )
        object.__setattr__(self, "team_ids", frozenset(self.team_ids))

    def has_role(self, role: Role | str) -> bool:
        name = role.value if isinstance(role, Role) else role
        return name in self.roles


@dataclass(frozen=True)
class ResourceContext:
    """Scoping facts about the target resource, resolved by the caller.

    ``None`` for a scope means the resource is not scoped at that level.
    """

    enterprise_id: str | None = None
    department_id: str | None = None
    team_id: str | None = None
    is_owner: bool = False


@dataclass(frozen=True)
class PermissionDecision:
    """Immutable outcome of a permission evaluation."""

    allowed: bool
    reason: DecisionReason
    matched_role: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


class PermissionDeniedError(PermissionError):
    """Raised by :meth:`PermissionEngine.require` when access is denied.

    Attributes
    ----------
    decision:
        The denying :class:`PermissionDecision`.
    """

    def __init__(self, decision: PermissionDecision, resource_type: str, action: str) -> None:
        self.decision = decision
        super().__init__(
            f"Access denied: {action} on {resource_type} ({decision.reason.value})."
        )


def _parse_enum(enum_cls: type[Enum], value: object) -> Enum | None:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        return None


class PermissionEngine:
    """Pure, deterministic permission evaluator.

    Parameters
    ----------
    matrix:
        The capability table.  Defaults to :meth:`CapabilityMatrix.default`.
    admin_only:
        Per resource type, the actions an owner may NOT perform through the
        ownership override.  Always extended with delete on enterprise,
        user and department.
    """

    def __init__(
        self,
        matrix: CapabilityMatrix | None = None,
        admin_only: Mapping[ResourceType, Iterable[PermissionAction]] | None = None,
    ) -> None:
        self._matrix = matrix or CapabilityMatrix.default()
        configured = DEFAULT_ADMIN_ONLY if admin_only is None else admin_only
        merged: dict[ResourceType, frozenset[PermissionAction]] = {}
        for resource_type in ResourceType:
            merged[resource_type] = frozenset(configured.get(resource_type, ())) | ALWAYS_ADMIN_ONLY.get(
                resource_type, frozenset()
            )
        self._admin_only: Mapping[ResourceType, frozenset[PermissionAction]] = MappingProxyType(merged)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def evaluate(
        self,
        principal: Principal,
        resource_type: ResourceType | str,
        action: PermissionAction | str,
        context: ResourceContext | None = None,
    ) -> PermissionDecision:
        """Decide whether ``principal`` may perform ``action`` on ``resource_type``.

        A SuperAdmin is allowed for every pair.  For anyone else, unknown
        resource types or actions never raise; they produce a deny with
        :attr:`DecisionReason.UNKNOWN_CAPABILITY`.
        """
        ctx = context or ResourceContext()
        if principal.has_role(Role.SUPER_ADMIN):
            return self._log(
                principal, resource_type, action,
                PermissionDecision(
                    allowed=True,
                    reason=DecisionReason.SUPER_ADMIN,
                    matched_role=Role.SUPER_ADMIN.value,
                ),
            )

        rt = _parse_enum(ResourceType, resource_type)
        act = _parse_enum(PermissionAction, action)
        if rt is None or act is None:
            return self._log(
                principal, resource_type, action,
                PermissionDecision(allowed=False, reason=DecisionReason.UNKNOWN_CAPABILITY),
            )

        granting = [
            role
            for role in sorted(principal.roles, key=role_sort_key)
            if self._matrix.grants(role, rt, act)  # type: ignore[arg-type]
        ]
        for role in granting:
            if self._in_scope(principal, role, ctx):
                return self._log(
                    principal, rt, act,
                    PermissionDecision(
                        allowed=True,
                        reason=DecisionReason.ROLE_CAPABILITY,
                        matched_role=role,
                    ),
                )

        if ctx.is_owner and act not in self._admin_only[rt]:  # type: ignore[index]
            return self._log(
                principal, rt, act,
                PermissionDecision(allowed=True, reason=DecisionReason.OWNERSHIP),
            )

        if granting:
            decision = PermissionDecision(
                allowed=False,
                reason=DecisionReason.OUT_OF_SCOPE,
                matched_role=granting[0],
            )
        else:
            decision = PermissionDecision(allowed=False, reason=DecisionReason.NO_CAPABILITY)
        return self._log(principal, rt, act, decision)

    def evaluate_all(
        self,
        principal: Principal,
        requests: Iterable[tuple[ResourceType | str, PermissionAction | str]],
        context: ResourceContext | None = None,
    ) -> list[PermissionDecision]:
        """Evaluate a batch of (resource_type, action) pairs in order."""
        return [self.evaluate(principal, rt, act, context) for rt, act in requests]

    def require(
        self,
        principal: Principal,
        resource_type: ResourceType | str,
        action: PermissionAction | str,
        context: ResourceContext | None = None,
    ) -> PermissionDecision:
        """Like :meth:`evaluate` but raise :class:`PermissionDeniedError` on deny."""
        decision = self.evaluate(principal, resource_type, action, context)
        if not decision.allowed:
            raise PermissionDeniedError(
                decision,
                str(getattr(resource_type, "value", resource_type)),
                str(getattr(action, "value", action)),
            )
        return decision

    def permissions_for(self, principal: Principal) -> list[Capability]:
        """Return every capability the principal's roles grant, sorted.

        Scope and ownership are not considered; this is the union of the
        matrix rows for the principal's roles.
        """
        if principal.has_role(Role.SUPER_ADMIN):
            caps: set[Capability] = {(rt, act) for rt in ResourceType for act in PermissionAction}
        else:
            caps = set()
            for role in principal.roles:
                caps |= self._matrix.capabilities(role)
        return sorted(caps, key=lambda cap: (cap[0].value, cap[1].value))

    def is_admin_only(self, resource_type: ResourceType, action: PermissionAction) -> bool:
        """Return True if owners may not perform ``action`` on ``resource_type``."""
        return action in self._admin_only[resource_type]

    @property
    def matrix(self) -> CapabilityMatrix:
        return self._matrix

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _in_scope(self, principal: Principal, role: str, ctx: ResourceContext) -> bool:
        if ctx.enterprise_id is not None and principal.enterprise_id != ctx.enterprise_id:
            return False
        if (
            ctx.department_id is not None
            and principal.department_id != ctx.department_id
            and not self._matrix.bypasses(role, Scope.DEPARTMENT)
        ):
            return False
        if (
            ctx.team_id is not None
            and ctx.team_id not in principal.team_ids
            and not self._matrix.bypasses(role, Scope.TEAM)
        ):
            return False
        return True

    def _log(
        self,
        principal: Principal,
        resource_type: object,
        action: object,
        decision: PermissionDecision,
    ) -> PermissionDecision:
        logger.debug(
            "Permission %s: user=%s resource=%s action=%s reason=%s role=%s",
            "ALLOW" if decision.allowed else "DENY",
            principal.user_id,
            getattr(resource_type, "value", resource_type),
            getattr(action, "value", action),
            decision.reason.value,
            decision.matched_role,
        )
        return decision
