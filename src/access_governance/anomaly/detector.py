"""Anomaly detection over a bounded window of audit entries.

AnomalyDetector.detect is a pure function of the window it is given; it
never reads the full log.  Callers choose the window (for example with
:meth:`AuditSearch.recent_window`) so detection stays cheap and
deterministic.

Rules are applied independently to the same window, and reports come back
in this fixed order:

1. ``frequent_failed_logins`` - failed logins grouped by user id (by ip
   address when the user is unknown); one ``high`` report per group at or
   above the threshold (default 5).
2. ``suspicious_ip_activity`` - all entries grouped by ip address; one
   ``medium`` report per group at or above the threshold (default 100).
3. ``privilege_escalation`` - one aggregated ``high`` report referencing
   every privilege-escalation entry.

Within a rule, groups are reported in order of first appearance in the
window and entry ids keep window order.

Example
-------
>>> detector = AnomalyDetector()
>>> reports = detector.detect(search.recent_window(limit=500))
>>> [r.anomaly_type.value for r in reports]
['frequent_failed_logins']
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from access_governance.audit.models import AuditEntry, AuditResult, RiskTier
from access_governance.audit.risk import PRIVILEGE_ESCALATION_ACTIONS

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


class AnomalyType(str, Enum):
    """Kinds of anomaly the detector can report."""

    FREQUENT_FAILED_LOGINS = "frequent_failed_logins"
    SUSPICIOUS_IP_ACTIVITY = "suspicious_ip_activity"
    PRIVILEGE_ESCALATION = "privilege_escalation"


@dataclass(frozen=True)
class AnomalyReport:
    """A single detected anomaly.

    Attributes
    ----------
    anomaly_type:
        Which rule produced the report.
    description:
        Human-readable summary.
    severity:
        ``low``, ``medium`` or ``high``.
    entry_ids:
        Ids of the audit entries that triggered the report.
    """

    anomaly_type: AnomalyType
    description: str
    severity: RiskTier
    entry_ids: tuple[int, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.anomaly_type.value,
            "description": self.description,
            "severity": self.severity.value,
            "entry_ids": list(self.entry_ids),
        }


@dataclass(frozen=True)
class AnomalyThresholds:
    """Tunable detector parameters."""

    failed_login_threshold: int = 5
    ip_activity_threshold: int = 100
    login_action: str = "login"
    privilege_escalation_actions: frozenset[str] = field(
        default_factory=lambda: PRIVILEGE_ESCALATION_ACTIONS
    )

    def __post_init__(self) -> None:
        if self.failed_login_threshold < 1 or self.ip_activity_threshold < 1:
            raise ValueError("Anomaly thresholds must be at least 1.")
        object.__setattr__(
            self, "privilege_escalation_actions", frozenset(self.privilege_escalation_actions)
        )


def _group(entries: Iterable[tuple[str, AuditEntry]]) -> dict[str, list[AuditEntry]]:
    groups: dict[str, list[AuditEntry]] = {}
    for key, entry in entries:
        groups.setdefault(key, []).append(entry)
    return groups


def _ids(entries: Sequence[AuditEntry]) -> tuple[int, ...]:
    return tuple(e.entry_id for e in entries)


class AnomalyDetector:
    """Pure, rule-based anomaly detector.

    Parameters
    ----------
    thresholds:
        Rule parameters.  Defaults to :class:`AnomalyThresholds`.
    """

    def __init__(self, thresholds: AnomalyThresholds | None = None) -> None:
        self._thresholds = thresholds or AnomalyThresholds()

    def detect(self, window: Sequence[AuditEntry]) -> list[AnomalyReport]:
        """Return every anomaly found in ``window``, in rule order."""
        reports = (
            self._failed_logins(window)
            + self._ip_activity(window)
            + self._privilege_escalation(window)
        )
        for report in reports:
            logger.warning(
                "Anomaly detected: %s (severity=%s, entries=%d)",
                report.anomaly_type.value,
                report.severity.value,
                len(report.entry_ids),
            )
        return reports

    @property
    def thresholds(self) -> AnomalyThresholds:
        return self._thresholds

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _failed_logins(self, window: Sequence[AuditEntry]) -> list[AnomalyReport]:
        def key(entry: AuditEntry) -> str | None:
            if entry.user_id and entry.user_id != ANONYMOUS_USER:
                return f"user {entry.user_id}"
            if entry.details.ip_address:
                return f"IP {entry.details.ip_address}"
            return None

        failed = (
            (key(e), e)
            for e in window
            if e.action == self._thresholds.login_action and e.result is AuditResult.FAILURE
        )
        groups = _group((k, e) for k, e in failed if k is not None)
        return [
            AnomalyReport(
                anomaly_type=AnomalyType.FREQUENT_FAILED_LOGINS,
                description=f"Frequent failed logins for {subject} ({len(entries)} attempts)",
                severity=RiskTier.HIGH,
                entry_ids=_ids(entries),
            )
            for subject, entries in groups.items()
            if len(entries) >= self._thresholds.failed_login_threshold
        ]

    def _ip_activity(self, window: Sequence[AuditEntry]) -> list[AnomalyReport]:
        groups = _group(
            (e.details.ip_address, e) for e in window if e.details.ip_address
        )
        return [
            AnomalyReport(
                anomaly_type=AnomalyType.SUSPICIOUS_IP_ACTIVITY,
                description=f"Unusually frequent activity from IP {ip} ({len(entries)} operations)",
                severity=RiskTier.MEDIUM,
                entry_ids=_ids(entries),
            )
            for ip, entries in groups.items()
            if len(entries) >= self._thresholds.ip_activity_threshold
        ]

    def _privilege_escalation(self, window: Sequence[AuditEntry]) -> list[AnomalyReport]:
        matches = [
            e for e in window if e.action in self._thresholds.privilege_escalation_actions
        ]
        if not matches:
            return []
        return [
            AnomalyReport(
                anomaly_type=AnomalyType.PRIVILEGE_ESCALATION,
                description=f"Privilege escalation operations detected ({len(matches)} operations)",
                severity=RiskTier.HIGH,
                entry_ids=_ids(matches),
            )
        ]
