"""Static role -> capability lookup table.

The CapabilityMatrix maps each role name to the frozen set of
``(ResourceType, PermissionAction)`` pairs it may perform.  There is no
inheritance between roles: "hierarchy" exists only in which pairs each role
is granted, so the table can be audited and tested in isolation.

Scope bypasses live beside the grants.  A role listed with a bypass for
``department`` or ``team`` is not held to the principal's membership of that
scope when a grant is evaluated (enterprise scope is never bypassed by the
matrix; only the SuperAdmin override crosses enterprises).

Example
-------
>>> matrix = CapabilityMatrix.default()
>>> matrix.grants("TeamLeader", ResourceType.PROJECT, PermissionAction.UPDATE)
True
>>> matrix.grants("User", ResourceType.PROJECT, PermissionAction.UPDATE)
False
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType


class Role(str, Enum):
    """Built-in role names.  Principals may also carry arbitrary names."""

    SUPER_ADMIN = "SuperAdmin"
    ENTERPRISE_ADMIN = "EnterpriseAdmin"
    DEPARTMENT_MANAGER = "DepartmentManager"
    TEAM_LEADER = "TeamLeader"
    USER = "User"


class ResourceType(str, Enum):
    """Kinds of resource a permission can target."""

    ENTERPRISE = "enterprise"
    USER = "user"
    TEAM = "team"
    DEPARTMENT = "department"
    PROJECT = "project"
    DATASET = "dataset"
    WORKFLOW = "workflow"
    API = "api"
    ROLE = "role"


class PermissionAction(str, Enum):
    """Operations a permission can grant."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


class Scope(str, Enum):
    """Membership scopes checked against a ResourceContext."""

    ENTERPRISE = "enterprise"
    DEPARTMENT = "department"
    TEAM = "team"


Capability = tuple[ResourceType, PermissionAction]

# Canonical evaluation order for built-in roles.  Unknown role names sort
# after these, alphabetically.
ROLE_ORDER: tuple[str, ...] = tuple(role.value for role in Role)

_ALL_ACTIONS: tuple[PermissionAction, ...] = tuple(PermissionAction)


def _pairs(
    resource_types: Iterable[ResourceType],
    actions: Iterable[PermissionAction],
) -> frozenset[Capability]:
    action_list = list(actions)
    return frozenset((rt, act) for rt in resource_types for act in action_list)


_DEFAULT_GRANTS: dict[str, frozenset[Capability]] = {
    Role.SUPER_ADMIN.value: _pairs(ResourceType, _ALL_ACTIONS),
    Role.ENTERPRISE_ADMIN.value: _pairs(
        [
            ResourceType.ENTERPRISE,
            ResourceType.USER,
            ResourceType.TEAM,
            ResourceType.DEPARTMENT,
        ],
        _ALL_ACTIONS,
    ),
    Role.DEPARTMENT_MANAGER.value: _pairs(
        [ResourceType.USER, ResourceType.TEAM],
        [PermissionAction.READ, PermissionAction.UPDATE, PermissionAction.MANAGE],
    ),
    Role.TEAM_LEADER.value: (
        _pairs([ResourceType.TEAM], [PermissionAction.READ, PermissionAction.UPDATE])
        | _pairs(
            [ResourceType.PROJECT],
            [PermissionAction.READ, PermissionAction.UPDATE, PermissionAction.MANAGE],
        )
    ),
    Role.USER.value: _pairs(
        [ResourceType.USER, ResourceType.DATASET, ResourceType.WORKFLOW],
        [PermissionAction.READ],
    ),
}

_DEFAULT_SCOPE_BYPASS: dict[str, frozenset[Scope]] = {
    Role.ENTERPRISE_ADMIN.value: frozenset([Scope.DEPARTMENT, Scope.TEAM]),
}


def role_sort_key(role: str) -> tuple[int, str]:
    """Sort key placing built-in roles first, in declaration order."""
    try:
        return (ROLE_ORDER.index(role), role)
    except ValueError:
        return (len(ROLE_ORDER), role)


class CapabilityMatrix:
    """Immutable role -> capability lookup table.

    Parameters
    ----------
    grants:
        Mapping of role name to the capabilities that role holds.
    scope_bypass:
        Mapping of role name to the scopes that role is not held to.
    """

    def __init__(
        self,
        grants: Mapping[str, Iterable[Capability]],
        scope_bypass: Mapping[str, Iterable[Scope]] | None = None,
    ) -> None:
        self._grants: Mapping[str, frozenset[Capability]] = MappingProxyType(
            {role: frozenset(caps) for role, caps in grants.items()}
        )
        bypass = scope_bypass or {}
        for role, scopes in bypass.items():
            if Scope.ENTERPRISE in frozenset(scopes):
                raise ValueError(
                    f"Role {role!r} cannot bypass enterprise scope."
                )
        self._scope_bypass: Mapping[str, frozenset[Scope]] = MappingProxyType(
            {role: frozenset(scopes) for role, scopes in bypass.items()}
        )

    @classmethod
    def default(cls) -> CapabilityMatrix:
        """Return the built-in matrix for the five system roles."""
        return cls(_DEFAULT_GRANTS, _DEFAULT_SCOPE_BYPASS)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def grants(
        self,
        role: str,
        resource_type: ResourceType,
        action: PermissionAction,
    ) -> bool:
        """Return True if ``role`` is granted ``action`` on ``resource_type``."""
        return (resource_type, action) in self._grants.get(role, frozenset())

    def capabilities(self, role: str) -> frozenset[Capability]:
        """Return every capability granted to ``role`` (empty when unknown)."""
        return self._grants.get(role, frozenset())

    def bypasses(self, role: str, scope: Scope) -> bool:
        """Return True if ``role`` is not held to membership of ``scope``."""
        return scope in self._scope_bypass.get(role, frozenset())

    @property
    def roles(self) -> list[str]:
        """Roles with an entry in the matrix, in canonical order."""
        return sorted(self._grants, key=role_sort_key)

    def summary(self) -> dict[str, object]:
        """Return a plain dict summarising the matrix configuration."""
        return {
            "roles": self.roles,
            "capabilities_per_role": {
                role: len(self._grants[role]) for role in self.roles
            },
            "scope_bypass": {
                role: sorted(scope.value for scope in scopes)
                for role, scopes in self._scope_bypass.items()
            },
        }
