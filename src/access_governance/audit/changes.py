"""Field-level change diffs for data-change audits.

compute_changes() describes what a create, update or delete did to a
record, skipping sensitive fields.  The result is a list of plain dicts so
it can be stored directly in an audit entry's ``extras["changes"]``.

Example
-------
>>> compute_changes("update", {"name": "a", "role": "User"}, {"name": "a", "role": "TeamLeader"})
[{'field': 'role', 'old_value': 'User', 'new_value': 'TeamLeader', 'change_type': 'update'}]
"""
from __future__ import annotations

import json
from collections.abc import Mapping

SENSITIVE_FIELD_MARKERS: tuple[str, ...] = (
    "password",
    "token",
    "secret",
    "key",
    "authorization",
    "mfa_secret",
)


def is_sensitive_field(name: str) -> bool:
    """Return True if ``name`` contains any sensitive marker (case-insensitive)."""
    lowered = name.lower()
    return any(marker in lowered for marker in SENSITIVE_FIELD_MARKERS)


def compute_changes(
    action: str,
    before: Mapping[str, object] | None,
    after: Mapping[str, object] | None,
) -> list[dict[str, object]]:
    """Return the field changes implied by ``action``.

    Parameters
    ----------
    action:
        ``"create"``, ``"update"`` or ``"delete"`` (case-insensitive).  Any
        other action yields no changes.
    before:
        The record before the action (ignored for create).
    after:
        The record after the action (ignored for delete).
    """
    kind = action.lower()
    changes: list[dict[str, object]] = []

    if kind == "create" and after:
        for name, value in after.items():
            if not is_sensitive_field(name):
                changes.append(_change(name, None, value, "create"))
    elif kind == "delete" and before:
        for name, value in before.items():
            if not is_sensitive_field(name):
                changes.append(_change(name, value, None, "delete"))
    elif kind == "update" and before is not None and after is not None:
        names = list(before) + [n for n in after if n not in before]
        for name in names:
            if is_sensitive_field(name):
                continue
            old_value = before.get(name)
            new_value = after.get(name)
            if _canonical(old_value) != _canonical(new_value):
                changes.append(_change(name, old_value, new_value, "update"))

    return changes


def _change(name: str, old: object, new: object, change_type: str) -> dict[str, object]:
    return {"field": name, "old_value": old, "new_value": new, "change_type": change_type}


def _canonical(value: object) -> str:
    return json.dumps(value, sort_keys=True, default=str)
