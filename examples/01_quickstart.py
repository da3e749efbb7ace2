#!/usr/bin/env python3
"""Example: Quickstart for access-governance

Minimal working example: evaluate permissions, audit the outcomes,
then look for anomalies in the log.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install access-governance
"""
from __future__ import annotations

import access_governance as gov


def main() -> None:
    print(f"access-governance version: {gov.__version__}")

    governor = gov.AccessGovernor()

    # Step 1: Evaluate permission checks
    alice = gov.Principal(user_id="alice", roles=frozenset({"TeamLeader"}), team_ids=frozenset({"t1"}))
    checks = [
        ("project", "update", gov.ResourceContext(team_id="t1")),
        ("project", "update", gov.ResourceContext(team_id="t2")),
        ("enterprise", "delete", None),
    ]

    print("\nPermission checks:")
    for resource_type, action, context in checks:
        decision = governor.evaluate(alice, resource_type, action, context)
        icon = "ALLOW" if decision.allowed else "DENY"
        print(f"  [{icon}] {action} {resource_type} ({decision.reason.value})")

        # Step 2: Audit every check
        governor.record({
            "user_id": alice.user_id,
            "action": f"{action}_{resource_type}",
            "resource_type": resource_type,
            "resource_id": context.team_id if context and context.team_id else "-",
            "result": "success" if decision.allowed else "failure",
            "ip_address": "10.0.0.7",
        })

    # Step 3: A burst of failed logins from one address
    governor.record_many(
        {
            "user_id": "anonymous",
            "action": "login",
            "resource_type": "user",
            "resource_id": "session",
            "result": "failure",
            "ip_address": "203.0.113.9",
        }
        for _ in range(5)
    )

    page = governor.query()
    print(f"\nAudit log: {page.total} entries")
    for entry in page.entries:
        print(f"  #{entry.entry_id} [{entry.risk_tier.value}] {entry.describe()}")

    stats = governor.stats()
    print(f"\nSuccesses: {stats.success_count}  Failures: {stats.failure_count}")

    # Step 4: Detect anomalies
    print("\nAnomalies:")
    for report in governor.detect():
        print(f"  [{report.severity.value}] {report.anomaly_type.value}: {report.description}")


if __name__ == "__main__":
    main()
