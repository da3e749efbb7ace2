"""Audit log search and aggregate statistics.

AuditSearch wraps an :class:`AuditLogger` and answers filtered, paginated
queries over a snapshot of the log.  Results are ordered most recent
first: timestamp descending, ties broken by id descending.

``stats`` aggregates over exactly the entry set an unpaginated ``query``
with the same filter would return.

Example
-------
>>> search = AuditSearch(audit)
>>> page = search.query(AuditFilter(user_id="u-1"), page=1, page_size=20)
>>> page.total
3
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from access_governance.audit.logger import AuditLogger
from access_governance.audit.models import AuditEntry, AuditResult, RiskTier, parse_timestamp

logger = logging.getLogger(__name__)


class InvalidFilterError(ValueError):
    """Raised for an unusable filter: bad or inverted time bounds, or bad paging."""


@dataclass(frozen=True)
class AuditFilter:
    """Conjunctive filter over audit entries.  ``None`` means "any".

    ``start`` and ``end`` are inclusive bounds on the entry timestamp, given
    as datetimes or ISO-8601 strings.
    """

    user_id: str | None = None
    enterprise_id: str | None = None
    action: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    result: AuditResult | str | None = None
    risk_tier: RiskTier | str | None = None
    ip_address: str | None = None
    start: datetime | str | None = None
    end: datetime | str | None = None

    def validate(self) -> None:
        """Raise :class:`InvalidFilterError` if the filter cannot be applied."""
        try:
            start = parse_timestamp(self.start) if self.start is not None else None
            end = parse_timestamp(self.end) if self.end is not None else None
        except ValueError as exc:
            raise InvalidFilterError(f"Invalid time bound: {exc}") from exc
        if start is not None and end is not None and start > end:
            raise InvalidFilterError(
                f"Inverted time range: start {start.isoformat()} "
                f"is after end {end.isoformat()}."
            )

    def matches(self, entry: AuditEntry) -> bool:
        """Return True if ``entry`` satisfies every constraint."""
        checks: tuple[tuple[object, object], ...] = (
            (self.user_id, entry.user_id),
            (self.enterprise_id, entry.enterprise_id),
            (self.action, entry.action),
            (_value(self.resource_type), entry.resource_type),
            (self.resource_id, entry.resource_id),
            (_value(self.result), entry.result.value),
            (_value(self.risk_tier), entry.risk_tier.value),
            (self.ip_address, entry.details.ip_address),
        )
        for expected, actual in checks:
            if expected is not None and expected != actual:
                return False
        if self.start is not None and entry.timestamp < parse_timestamp(self.start):
            return False
        if self.end is not None and entry.timestamp > parse_timestamp(self.end):
            return False
        return True


@dataclass(frozen=True)
class AuditPage:
    """One page of query results plus the unpaginated total."""

    entries: list[AuditEntry]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        """Total number of pages at this page size."""
        return (self.total + self.page_size - 1) // self.page_size


@dataclass(frozen=True)
class AuditStats:
    """Aggregate statistics over a filtered entry set."""

    total: int
    success_count: int
    failure_count: int
    risk_tier_counts: dict[str, int] = field(default_factory=dict)
    top_actions: list[tuple[str, int]] = field(default_factory=list)
    top_users: list[tuple[str, int]] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "risk_tier_counts": dict(self.risk_tier_counts),
            "top_actions": [{"action": a, "count": c} for a, c in self.top_actions],
            "top_users": [{"user_id": u, "count": c} for u, c in self.top_users],
        }


def _value(raw: object) -> object:
    return getattr(raw, "value", raw)


def _newest_first(entries: list[AuditEntry]) -> list[AuditEntry]:
    return sorted(entries, key=lambda e: (e.timestamp, e.entry_id), reverse=True)


def _top(counter: Counter[str], n: int) -> list[tuple[str, int]]:
    return sorted(counter.items(), key=lambda item: (-item[1], item[0]))[:n]


class AuditSearch:
    """Filtered queries and statistics over an :class:`AuditLogger`.

    Parameters
    ----------
    audit_logger:
        The logger whose entries are searched.
    default_top_n:
        Default length of the top-actions / top-users lists in ``stats``.
    """

    def __init__(self, audit_logger: AuditLogger, default_top_n: int = 10) -> None:
        self._logger = audit_logger
        self._default_top_n = default_top_n

    # ------------------------------------------------------------------
    # Core queries
    # ------------------------------------------------------------------

    def filtered(self, audit_filter: AuditFilter | None = None) -> list[AuditEntry]:
        """Return every matching entry, most recent first (no pagination)."""
        flt = audit_filter or AuditFilter()
        flt.validate()
        start = parse_timestamp(flt.start) if flt.start is not None else None
        end = parse_timestamp(flt.end) if flt.end is not None else None
        candidates = self._logger.store.scan(start, end)
        return _newest_first([e for e in candidates if flt.matches(e)])

    def query(
        self,
        audit_filter: AuditFilter | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditPage:
        """Return one page of matching entries and the total match count.

        Raises
        ------
        InvalidFilterError
            If the time range is inverted or ``page`` / ``page_size`` is
            not positive.
        """
        if page < 1 or page_size < 1:
            raise InvalidFilterError(
                f"page and page_size must be positive; got page={page}, page_size={page_size}."
            )
        matching = self.filtered(audit_filter)
        logger.debug("Audit query matched %d entries (page=%d size=%d)", len(matching), page, page_size)
        offset = (page - 1) * page_size
        return AuditPage(
            entries=matching[offset:offset + page_size],
            total=len(matching),
            page=page,
            page_size=page_size,
        )

    def stats(
        self,
        audit_filter: AuditFilter | None = None,
        top_n: int | None = None,
    ) -> AuditStats:
        """Aggregate counts over the entries ``query`` would return."""
        limit = self._default_top_n if top_n is None else top_n
        if limit < 0:
            raise InvalidFilterError(f"top_n must not be negative; got {limit}.")
        matching = self.filtered(audit_filter)

        tiers: dict[str, int] = {tier.value: 0 for tier in RiskTier}
        actions: Counter[str] = Counter()
        users: Counter[str] = Counter()
        success = 0
        for entry in matching:
            tiers[entry.risk_tier.value] += 1
            actions[entry.action] += 1
            users[entry.user_id] += 1
            if entry.result is AuditResult.SUCCESS:
                success += 1

        return AuditStats(
            total=len(matching),
            success_count=success,
            failure_count=len(matching) - success,
            risk_tier_counts=tiers,
            top_actions=_top(actions, limit),
            top_users=_top(users, limit),
        )

    # ------------------------------------------------------------------
    # Shortcuts
    # ------------------------------------------------------------------

    def user_logs(self, user_id: str, page: int = 1, page_size: int = 50) -> AuditPage:
        """Entries produced by one user."""
        return self.query(AuditFilter(user_id=user_id), page, page_size)

    def enterprise_logs(self, enterprise_id: str, page: int = 1, page_size: int = 50) -> AuditPage:
        """Entries recorded within one enterprise."""
        return self.query(AuditFilter(enterprise_id=enterprise_id), page, page_size)

    def resource_logs(
        self,
        resource_type: str,
        resource_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditPage:
        """Entries targeting one resource."""
        return self.query(
            AuditFilter(resource_type=resource_type, resource_id=resource_id), page, page_size
        )

    def high_risk_logs(
        self,
        enterprise_id: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditPage:
        """High-risk entries, optionally restricted to one enterprise."""
        return self.query(
            AuditFilter(enterprise_id=enterprise_id, risk_tier=RiskTier.HIGH), page, page_size
        )

    def failure_logs(
        self,
        enterprise_id: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditPage:
        """Failed entries, optionally restricted to one enterprise."""
        return self.query(
            AuditFilter(enterprise_id=enterprise_id, result=AuditResult.FAILURE), page, page_size
        )

    def recent_window(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 1000,
    ) -> list[AuditEntry]:
        """Return a bounded window for anomaly detection, oldest first.

        At most ``limit`` of the most recent entries in [since, until] are
        returned, in chronological (id) order.
        """
        if limit < 1:
            raise InvalidFilterError(f"limit must be positive; got {limit}.")
        newest = self.filtered(AuditFilter(start=since, end=until))[:limit]
        return sorted(newest, key=lambda e: e.entry_id)
