"""Tests for CapabilityMatrix and the built-in role table."""
from __future__ import annotations

import pytest

from access_governance.permissions.capability_matrix import (
    CapabilityMatrix,
    PermissionAction,
    ResourceType,
    Role,
    Scope,
    role_sort_key,
)


@pytest.fixture()
def matrix() -> CapabilityMatrix:
    return CapabilityMatrix.default()


# ---------------------------------------------------------------------------
# Default grants
# ---------------------------------------------------------------------------


class TestDefaultGrants:
    def test_super_admin_holds_every_pair(self, matrix: CapabilityMatrix) -> None:
        for resource_type in ResourceType:
            for action in PermissionAction:
                assert matrix.grants("SuperAdmin", resource_type, action)

    def test_enterprise_admin_covers_org_resources(self, matrix: CapabilityMatrix) -> None:
        for resource_type in (
            ResourceType.ENTERPRISE,
            ResourceType.USER,
            ResourceType.TEAM,
            ResourceType.DEPARTMENT,
        ):
            for action in PermissionAction:
                assert matrix.grants("EnterpriseAdmin", resource_type, action)

    def test_enterprise_admin_lacks_project(self, matrix: CapabilityMatrix) -> None:
        assert not matrix.grants("EnterpriseAdmin", ResourceType.PROJECT, PermissionAction.READ)
        assert not matrix.grants("EnterpriseAdmin", ResourceType.DATASET, PermissionAction.READ)

    def test_department_manager_cannot_delete_users(self, matrix: CapabilityMatrix) -> None:
        assert matrix.grants("DepartmentManager", ResourceType.USER, PermissionAction.MANAGE)
        assert not matrix.grants("DepartmentManager", ResourceType.USER, PermissionAction.DELETE)
        assert not matrix.grants("DepartmentManager", ResourceType.USER, PermissionAction.CREATE)

    def test_team_leader_manages_projects(self, matrix: CapabilityMatrix) -> None:
        assert matrix.grants("TeamLeader", ResourceType.PROJECT, PermissionAction.MANAGE)
        assert matrix.grants("TeamLeader", ResourceType.TEAM, PermissionAction.UPDATE)
        assert not matrix.grants("TeamLeader", ResourceType.TEAM, PermissionAction.MANAGE)

    def test_user_is_read_only(self, matrix: CapabilityMatrix) -> None:
        caps = matrix.capabilities("User")
        assert caps == frozenset(
            [
                (ResourceType.USER, PermissionAction.READ),
                (ResourceType.DATASET, PermissionAction.READ),
                (ResourceType.WORKFLOW, PermissionAction.READ),
            ]
        )

    def test_unknown_role_has_no_capabilities(self, matrix: CapabilityMatrix) -> None:
        assert matrix.capabilities("Auditor") == frozenset()
        assert not matrix.grants("Auditor", ResourceType.USER, PermissionAction.READ)


# ---------------------------------------------------------------------------
# Scope bypass
# ---------------------------------------------------------------------------


class TestScopeBypass:
    def test_enterprise_admin_bypasses_department_and_team(self, matrix: CapabilityMatrix) -> None:
        assert matrix.bypasses("EnterpriseAdmin", Scope.DEPARTMENT)
        assert matrix.bypasses("EnterpriseAdmin", Scope.TEAM)
        assert not matrix.bypasses("EnterpriseAdmin", Scope.ENTERPRISE)

    def test_other_roles_bypass_nothing(self, matrix: CapabilityMatrix) -> None:
        for role in ("DepartmentManager", "TeamLeader", "User"):
            for scope in Scope:
                assert not matrix.bypasses(role, scope)

    def test_enterprise_bypass_rejected(self) -> None:
        with pytest.raises(ValueError, match="enterprise"):
            CapabilityMatrix({"Ops": []}, {"Ops": [Scope.ENTERPRISE]})


# ---------------------------------------------------------------------------
# Ordering and summary
# ---------------------------------------------------------------------------


class TestRoleOrdering:
    def test_builtin_roles_in_declaration_order(self, matrix: CapabilityMatrix) -> None:
        assert matrix.roles == [role.value for role in Role]

    def test_custom_roles_sort_after_builtins(self) -> None:
        names = ["zeta", "User", "alpha", "SuperAdmin"]
        assert sorted(names, key=role_sort_key) == ["SuperAdmin", "User", "alpha", "zeta"]

    def test_summary_counts(self, matrix: CapabilityMatrix) -> None:
        summary = matrix.summary()
        counts = summary["capabilities_per_role"]
        assert counts["SuperAdmin"] == len(ResourceType) * len(PermissionAction)  # type: ignore[index]
        assert counts["User"] == 3  # type: ignore[index]
        assert summary["scope_bypass"] == {"EnterpriseAdmin": ["department", "team"]}

    def test_matrix_is_read_only(self, matrix: CapabilityMatrix) -> None:
        with pytest.raises(TypeError):
            matrix._grants["User"] = frozenset()  # type: ignore[index]
