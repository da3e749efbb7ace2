"""Tests for PermissionEngine decision logic."""
from __future__ import annotations

import itertools

import pytest

from access_governance.permissions.capability_matrix import (
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


@pytest.fixture()
def engine() -> PermissionEngine:
    return PermissionEngine()


def _principal(*roles: str, **kwargs: object) -> Principal:
    return Principal(user_id=str(kwargs.pop("user_id", "u1")), roles=frozenset(roles), **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# SuperAdmin override
# ---------------------------------------------------------------------------


class TestSuperAdmin:
    def test_allows_every_pair(self, engine: PermissionEngine) -> None:
        admin = _principal("SuperAdmin")
        for resource_type, action in itertools.product(ResourceType, PermissionAction):
            decision = engine.evaluate(admin, resource_type, action)
            assert decision.allowed
            assert decision.reason is DecisionReason.SUPER_ADMIN

    def test_crosses_enterprises(self, engine: PermissionEngine) -> None:
        admin = _principal("SuperAdmin", enterprise_id="e1")
        ctx = ResourceContext(enterprise_id="e2", department_id="d9", team_id="t9")
        assert engine.evaluate(admin, "enterprise", "delete", ctx).allowed

    def test_override_applies_to_unknown_pairs(self, engine: PermissionEngine) -> None:
        admin = _principal("SuperAdmin")
        decision = engine.evaluate(admin, "spaceship", "launch")
        assert decision.allowed
        assert decision.reason is DecisionReason.SUPER_ADMIN

    def test_unknown_pair_denied_below_super_admin(self, engine: PermissionEngine) -> None:
        admin = _principal("EnterpriseAdmin")
        decision = engine.evaluate(admin, "spaceship", "launch")
        assert not decision.allowed
        assert decision.reason is DecisionReason.UNKNOWN_CAPABILITY


# ---------------------------------------------------------------------------
# Role capabilities
# ---------------------------------------------------------------------------


class TestRoleCapability:
    def test_enterprise_admin_denied_outside_grants(self, engine: PermissionEngine) -> None:
        admin = _principal("EnterpriseAdmin", enterprise_id="e1")
        for resource_type in (ResourceType.PROJECT, ResourceType.DATASET, ResourceType.API):
            decision = engine.evaluate(admin, resource_type, PermissionAction.READ)
            assert not decision.allowed
            assert decision.reason is DecisionReason.NO_CAPABILITY

    def test_user_reads_dataset(self, engine: PermissionEngine) -> None:
        decision = engine.evaluate(_principal("User"), "dataset", "read")
        assert decision.allowed
        assert decision.reason is DecisionReason.ROLE_CAPABILITY
        assert decision.matched_role == "User"

    def test_user_cannot_write_dataset(self, engine: PermissionEngine) -> None:
        decision = engine.evaluate(_principal("User"), "dataset", "update")
        assert not decision.allowed
        assert decision.reason is DecisionReason.NO_CAPABILITY
        assert decision.matched_role is None

    def test_no_roles_denied(self, engine: PermissionEngine) -> None:
        decision = engine.evaluate(_principal(), "user", "read")
        assert decision.reason is DecisionReason.NO_CAPABILITY

    def test_unknown_role_name_ignored(self, engine: PermissionEngine) -> None:
        decision = engine.evaluate(_principal("Auditor", "User"), "user", "read")
        assert decision.allowed
        assert decision.matched_role == "User"

    def test_enum_inputs_accepted(self, engine: PermissionEngine) -> None:
        principal = Principal(user_id="u1", roles=frozenset([Role.TEAM_LEADER]))
        assert principal.has_role("TeamLeader")
        assert engine.evaluate(principal, ResourceType.PROJECT, PermissionAction.MANAGE).allowed

    def test_action_strings_are_case_sensitive(self, engine: PermissionEngine) -> None:
        decision = engine.evaluate(_principal("User"), "dataset", "READ")
        assert decision.reason is DecisionReason.UNKNOWN_CAPABILITY


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


class TestScope:
    def test_team_leader_in_own_team(self, engine: PermissionEngine) -> None:
        leader = _principal("TeamLeader", enterprise_id="e1", team_ids=frozenset({"t1"}))
        ctx = ResourceContext(enterprise_id="e1", team_id="t1")
        assert engine.evaluate(leader, "project", "update", ctx).allowed

    def test_team_leader_other_team_out_of_scope(self, engine: PermissionEngine) -> None:
        leader = _principal("TeamLeader", enterprise_id="e1", team_ids=frozenset({"t1"}))
        ctx = ResourceContext(enterprise_id="e1", team_id="t2")
        decision = engine.evaluate(leader, "project", "update", ctx)
        assert not decision.allowed
        assert decision.reason is DecisionReason.OUT_OF_SCOPE
        assert decision.matched_role == "TeamLeader"

    def test_department_manager_other_department(self, engine: PermissionEngine) -> None:
        manager = _principal("DepartmentManager", enterprise_id="e1", department_id="d1")
        ctx = ResourceContext(enterprise_id="e1", department_id="d2")
        assert engine.evaluate(manager, "user", "update", ctx).reason is DecisionReason.OUT_OF_SCOPE

    def test_enterprise_admin_bypasses_team_scope(self, engine: PermissionEngine) -> None:
        admin = _principal("EnterpriseAdmin", enterprise_id="e1")
        ctx = ResourceContext(enterprise_id="e1", department_id="d7", team_id="t7")
        decision = engine.evaluate(admin, "team", "delete", ctx)
        assert decision.allowed
        assert decision.matched_role == "EnterpriseAdmin"

    def test_enterprise_admin_other_enterprise(self, engine: PermissionEngine) -> None:
        admin = _principal("EnterpriseAdmin", enterprise_id="e1")
        ctx = ResourceContext(enterprise_id="e2")
        decision = engine.evaluate(admin, "user", "read", ctx)
        assert not decision.allowed
        assert decision.reason is DecisionReason.OUT_OF_SCOPE

    def test_unscoped_context_is_in_scope(self, engine: PermissionEngine) -> None:
        leader = _principal("TeamLeader")
        assert engine.evaluate(leader, "team", "read", ResourceContext()).allowed

    def test_custom_bypass(self) -> None:
        matrix = CapabilityMatrix(
            {"Ops": [(ResourceType.PROJECT, PermissionAction.READ)]},
            {"Ops": [Scope.TEAM]},
        )
        engine = PermissionEngine(matrix)
        ops = _principal("Ops", enterprise_id="e1")
        ctx = ResourceContext(enterprise_id="e1", team_id="t5")
        assert engine.evaluate(ops, "project", "read", ctx).allowed


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


class TestOwnership:
    def test_owner_may_update_own_project(self, engine: PermissionEngine) -> None:
        decision = engine.evaluate(
            _principal("User"), "project", "update", ResourceContext(is_owner=True)
        )
        assert decision.allowed
        assert decision.reason is DecisionReason.OWNERSHIP

    def test_owner_overrides_out_of_scope(self, engine: PermissionEngine) -> None:
        leader = _principal("TeamLeader", team_ids=frozenset({"t1"}))
        ctx = ResourceContext(team_id="t2", is_owner=True)
        assert engine.evaluate(leader, "project", "update", ctx).reason is DecisionReason.OWNERSHIP

    def test_owner_cannot_delete_user(self, engine: PermissionEngine) -> None:
        decision = engine.evaluate(
            _principal("User"), "user", "delete", ResourceContext(is_owner=True)
        )
        assert not decision.allowed
        assert decision.reason is DecisionReason.NO_CAPABILITY

    def test_default_admin_only_includes_manage(self, engine: PermissionEngine) -> None:
        assert engine.is_admin_only(ResourceType.ROLE, PermissionAction.MANAGE)
        decision = engine.evaluate(
            _principal("User"), "role", "manage", ResourceContext(is_owner=True)
        )
        assert not decision.allowed

    def test_empty_admin_only_keeps_always_admin_only(self) -> None:
        engine = PermissionEngine(admin_only={})
        owner = ResourceContext(is_owner=True)
        assert engine.evaluate(_principal("User"), "user", "manage", owner).allowed
        assert not engine.evaluate(_principal("User"), "user", "delete", owner).allowed
        assert not engine.evaluate(_principal("User"), "enterprise", "delete", owner).allowed
        assert not engine.evaluate(_principal("User"), "department", "delete", owner).allowed


# ---------------------------------------------------------------------------
# Determinism
# ---------------------------------------------------------------------------


class TestDeterminism:
    def test_role_order_does_not_matter(self, engine: PermissionEngine) -> None:
        roles = ["TeamLeader", "DepartmentManager", "User"]
        decisions = {
            engine.evaluate(Principal(user_id="u1", roles=perm), "team", "read")  # type: ignore[arg-type]
            for perm in itertools.permutations(roles)
        }
        assert decisions == {
            PermissionDecision(
                allowed=True,
                reason=DecisionReason.ROLE_CAPABILITY,
                matched_role="DepartmentManager",
            )
        }

    def test_repeated_evaluation_is_identical(self, engine: PermissionEngine) -> None:
        principal = _principal("TeamLeader", team_ids=frozenset({"t1"}))
        ctx = ResourceContext(team_id="t2")
        first = engine.evaluate(principal, "project", "read", ctx)
        assert all(engine.evaluate(principal, "project", "read", ctx) == first for _ in range(10))


# ---------------------------------------------------------------------------
# Convenience API
# ---------------------------------------------------------------------------


class TestConvenience:
    def test_require_raises_with_decision(self, engine: PermissionEngine) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            engine.require(_principal("User"), "dataset", "delete")
        assert exc_info.value.decision.reason is DecisionReason.NO_CAPABILITY
        assert "delete on dataset" in str(exc_info.value)

    def test_require_returns_allow(self, engine: PermissionEngine) -> None:
        assert engine.require(_principal("User"), "dataset", "read").allowed

    def test_evaluate_all_preserves_order(self, engine: PermissionEngine) -> None:
        results = engine.evaluate_all(
            _principal("User"), [("dataset", "read"), ("dataset", "delete"), ("nope", "read")]
        )
        assert [d.allowed for d in results] == [True, False, False]
        assert results[2].reason is DecisionReason.UNKNOWN_CAPABILITY

    def test_permissions_for_user(self, engine: PermissionEngine) -> None:
        assert engine.permissions_for(_principal("User")) == [
            (ResourceType.DATASET, PermissionAction.READ),
            (ResourceType.USER, PermissionAction.READ),
            (ResourceType.WORKFLOW, PermissionAction.READ),
        ]

    def test_permissions_for_super_admin(self, engine: PermissionEngine) -> None:
        perms = engine.permissions_for(_principal("SuperAdmin"))
        assert len(perms) == len(ResourceType) * len(PermissionAction)

    def test_decision_is_truthy_when_allowed(self, engine: PermissionEngine) -> None:
        assert engine.evaluate(_principal("User"), "dataset", "read")
        assert not engine.evaluate(_principal("User"), "dataset", "delete")
