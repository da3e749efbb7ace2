"""Risk tier classification for audited actions.

classify() is a pure lookup over two static action sets.  A failed action is
escalated one tier, because a failed sensitive operation is more suspicious
than a successful one:

======================  =========  =========
action                  success    failure
======================  =========  =========
in HIGH_RISK_ACTIONS    high       high
in MEDIUM_RISK_ACTIONS  medium     high
anything else           low        medium
======================  =========  =========

Example
-------
>>> classify("login", "failure")
<RiskTier.HIGH: 'high'>
"""
from __future__ import annotations

from access_governance.audit.models import AuditResult, RiskTier

HIGH_RISK_ACTIONS: frozenset[str] = frozenset(
    [
        "delete_user",
        "delete_enterprise",
        "change_user_role",
        "grant_admin_permission",
        "delete_department",
        "export_user_data",
        "change_enterprise_settings",
        "disable_user",
        "reset_user_password",
    ]
)

MEDIUM_RISK_ACTIONS: frozenset[str] = frozenset(
    [
        "create_user",
        "update_user",
        "create_department",
        "update_department",
        "create_role",
        "update_role",
        "assign_role",
        "revoke_role",
        "login",
        "logout",
    ]
)

PRIVILEGE_ESCALATION_ACTIONS: frozenset[str] = frozenset(
    [
        "grant_admin_permission",
        "change_user_role",
        "create_admin_user",
        "modify_role_permissions",
    ]
)


def base_tier(action: str) -> RiskTier:
    """Return the tier of ``action`` when it succeeds."""
    if action in HIGH_RISK_ACTIONS:
        return RiskTier.HIGH
    if action in MEDIUM_RISK_ACTIONS:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def classify(action: str, result: AuditResult | str) -> RiskTier:
    """Return the risk tier for ``action`` with the given ``result``.

    Any result other than ``failure`` is treated as a success.
    """
    tier = base_tier(action)
    if result == AuditResult.FAILURE:
        return tier.escalate()
    return tier
