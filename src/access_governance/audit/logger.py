"""Append-only audit logger.

AuditLogger is the single writer of the audit log.  ``record`` validates a
caller-supplied event, assigns the next id and a timestamp, computes the
risk tier (unless the caller supplied one), and appends the resulting
immutable :class:`AuditEntry` to the backing :class:`AuditStore`.

Thread-safety is achieved with a threading.Lock around id/timestamp
assignment and the append, so ids are strictly increasing, never reused,
and timestamps never go backwards even under concurrent writers.

Example
-------
>>> audit = AuditLogger()
>>> entry = audit.record({
...     "user_id": "u-1",
...     "action": "login",
...     "resource_type": "user",
...     "resource_id": "u-1",
...     "result": "success",
...     "ip_address": "10.0.0.7",
... })
>>> entry.risk_tier
<RiskTier.MEDIUM: 'medium'>
"""
from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from access_governance.audit.models import (
    AuditDetails,
    AuditEntry,
    AuditResult,
    RiskTier,
    parse_timestamp,
)
from access_governance.audit.risk import classify
from access_governance.audit.store import AuditStore, InMemoryAuditStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = ("user_id", "action", "resource_type", "resource_id", "result")

DEFAULT_REDACT_FIELDS: frozenset[str] = frozenset(
    ["password", "token", "secret", "key", "authorization"]
)

REDACTED = "[REDACTED]"


class AuditValidationError(ValueError):
    """Raised when an event passed to :meth:`AuditLogger.record` is invalid.

    Attributes
    ----------
    missing_fields:
        Required fields that were absent or empty.
    invalid_fields:
        Fields that were present but had an invalid value.
    """

    def __init__(
        self,
        message: str,
        missing_fields: list[str] | None = None,
        invalid_fields: list[str] | None = None,
    ) -> None:
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or []
        super().__init__(message)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class _PreparedEvent:
    user_id: str
    enterprise_id: str | None
    action: str
    resource_type: str
    resource_id: str
    details: AuditDetails
    result: AuditResult
    risk_tier: RiskTier


class AuditLogger:
    """Validating, append-only audit log writer.

    Parameters
    ----------
    store:
        Backing store.  Defaults to a fresh :class:`InMemoryAuditStore`.
    clock:
        Callable returning the current time; override for testing.
    redact_fields:
        Keys in ``extras`` (at any nesting level) whose values are replaced
        with ``"[REDACTED]"`` before the entry is created.
    """

    def __init__(
        self,
        store: AuditStore | None = None,
        clock: Callable[[], datetime] | None = None,
        redact_fields: Iterable[str] | None = None,
    ) -> None:
        self._store: AuditStore = store if store is not None else InMemoryAuditStore()
        self._clock = clock or _utc_now
        self._redact_fields = frozenset(
            f.lower() for f in (DEFAULT_REDACT_FIELDS if redact_fields is None else redact_fields)
        )
        self._lock = threading.Lock()
        last = self._store.last()
        self._last_id: int = last.entry_id if last is not None else 0
        self._last_timestamp: datetime | None = last.timestamp if last is not None else None

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def record(self, event: Mapping[str, object]) -> AuditEntry:
        """Validate ``event`` and append it to the audit log.

        Recognised keys: ``user_id``, ``enterprise_id``, ``action``,
        ``resource_type``, ``resource_id``, ``result`` (``success`` or
        ``failure``), optional ``risk_tier``, and the request context either
        as a ``details`` mapping or as top-level ``ip_address``,
        ``user_agent`` and ``extras``.

        Returns
        -------
        AuditEntry
            The final, immutable entry.

        Raises
        ------
        AuditValidationError
            If a required field is missing or a field is malformed.
        """
        prepared = self._prepare(event)
        with self._lock:
            entry = self._append(prepared)
        logger.debug(
            "Recorded audit entry %d: user=%s action=%s result=%s risk=%s",
            entry.entry_id,
            entry.user_id,
            entry.action,
            entry.result.value,
            entry.risk_tier.value,
        )
        return entry

    def record_many(self, events: Iterable[Mapping[str, object]]) -> list[AuditEntry]:
        """Record several events atomically.

        Every event is validated before any is written; one invalid event
        rejects the whole batch.  The written entries receive consecutive ids.
        """
        prepared: list[_PreparedEvent] = []
        for index, event in enumerate(events):
            try:
                prepared.append(self._prepare(event))
            except AuditValidationError as exc:
                raise AuditValidationError(
                    f"Event at index {index}: {exc}",
                    missing_fields=exc.missing_fields,
                    invalid_fields=exc.invalid_fields,
                ) from exc
        with self._lock:
            entries = [self._append(p) for p in prepared]
        logger.debug("Recorded %d audit entries in batch", len(entries))
        return entries

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get(self, entry_id: int) -> AuditEntry | None:
        """Return the entry with ``entry_id``, or ``None`` if absent or swept."""
        return self._store.get(entry_id)

    def entries(self) -> list[AuditEntry]:
        """Return a snapshot of all entries, oldest first."""
        return self._store.scan()

    def count(self) -> int:
        """Return the number of entries currently in the log."""
        return self._store.count()

    @property
    def store(self) -> AuditStore:
        """The backing store."""
        return self._store

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, prepared: _PreparedEvent) -> AuditEntry:
        """Assign id and timestamp, then append.  Caller holds the lock."""
        now = parse_timestamp(self._clock())
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        entry = AuditEntry(
            entry_id=self._last_id + 1,
            timestamp=now,
            user_id=prepared.user_id,
            enterprise_id=prepared.enterprise_id,
            action=prepared.action,
            resource_type=prepared.resource_type,
            resource_id=prepared.resource_id,
            details=prepared.details,
            result=prepared.result,
            risk_tier=prepared.risk_tier,
        )
        self._store.append(entry)
        self._last_id = entry.entry_id
        self._last_timestamp = entry.timestamp
        return entry

    def _prepare(self, event: Mapping[str, object]) -> _PreparedEvent:
        if not isinstance(event, Mapping):
            raise AuditValidationError(
                f"Audit event must be a mapping; got {type(event).__name__}."
            )

        missing = [name for name in REQUIRED_FIELDS if not _text(event.get(name))]
        if missing:
            logger.warning("Rejected audit event: missing fields %s", missing)
            raise AuditValidationError(
                f"Missing required audit fields: {missing}.", missing_fields=missing
            )

        invalid: list[str] = []
        try:
            result = AuditResult(_text(event["result"]))
        except ValueError:
            invalid.append("result")

        risk_tier: RiskTier | None = None
        raw_tier = event.get("risk_tier")
        if raw_tier is not None and raw_tier != "":
            try:
                risk_tier = RiskTier(_text(raw_tier))
            except ValueError:
                invalid.append("risk_tier")

        try:
            details = self._build_details(event)
        except (TypeError, ValueError):
            invalid.append("details")

        if invalid:
            logger.warning("Rejected audit event: invalid fields %s", invalid)
            raise AuditValidationError(
                f"Invalid audit fields: {invalid}.", invalid_fields=invalid
            )

        action = _text(event["action"])
        return _PreparedEvent(
            user_id=_text(event["user_id"]),
            enterprise_id=_text(event.get("enterprise_id")) or None,
            action=action,
            resource_type=_text(event["resource_type"]),
            resource_id=_text(event["resource_id"]),
            details=details,
            result=result,
            risk_tier=risk_tier if risk_tier is not None else classify(action, result),
        )

    def _build_details(self, event: Mapping[str, object]) -> AuditDetails:
        raw = event.get("details")
        if isinstance(raw, AuditDetails):
            source: Mapping[str, object] = raw.to_dict()
        elif isinstance(raw, Mapping):
            source = raw
        elif raw is None:
            source = event
        else:
            raise TypeError("details must be a mapping")

        extras = source.get("extras") or {}
        if not isinstance(extras, Mapping):
            raise TypeError("extras must be a mapping")
        # Round-trip through JSON so stored extras are JSON-native and
        # survive export/re-import unchanged.
        normalised = json.loads(json.dumps(dict(extras)))
        return AuditDetails(
            ip_address=_text(source.get("ip_address")) or None,
            user_agent=_text(source.get("user_agent")) or None,
            extras=self._redact(normalised),
        )

    def _redact(self, value: object) -> object:
        if isinstance(value, dict):
            return {
                k: REDACTED if str(k).lower() in self._redact_fields else self._redact(v)
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [self._redact(v) for v in value]
        return value


def _text(value: object) -> str:
    """Return ``value`` as a stripped string; enums contribute their value."""
    if value is None:
        return ""
    raw = getattr(value, "value", value)
    return str(raw).strip()
