"""Immutable audit entry model.

An AuditEntry is created exactly once, by :class:`AuditLogger`, and is never
mutated afterwards.  ``details.extras`` is exposed as a read-only mapping
over a private deep copy of the caller's data.

Entries serialise to plain dicts (``to_dict``) and back (``from_dict``)
without loss: every field, including the microsecond-precision UTC
timestamp, survives the round trip.
"""
from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType


class AuditResult(str, Enum):
    """Outcome of an audited action."""

    SUCCESS = "success"
    FAILURE = "failure"


class RiskTier(str, Enum):
    """Ordered risk classification: LOW < MEDIUM < HIGH."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def escalate(self) -> RiskTier:
        """Return the next tier up; HIGH stays HIGH."""
        order = list(RiskTier)
        return order[min(order.index(self) + 1, len(order) - 1)]

    def __ge__(self, other: "RiskTier") -> bool:
        order = list(RiskTier)
        return order.index(self) >= order.index(other)

    def __gt__(self, other: "RiskTier") -> bool:
        order = list(RiskTier)
        return order.index(self) > order.index(other)

    def __le__(self, other: "RiskTier") -> bool:
        order = list(RiskTier)
        return order.index(self) <= order.index(other)

    def __lt__(self, other: "RiskTier") -> bool:
        order = list(RiskTier)
        return order.index(self) < order.index(other)


def _freeze(extras: Mapping[str, object] | None) -> Mapping[str, object]:
    return MappingProxyType(copy.deepcopy(dict(extras or {})))


@dataclass(frozen=True)
class AuditDetails:
    """Request context attached to an audit entry.

    Attributes
    ----------
    ip_address:
        Client IP address, if known.
    user_agent:
        Client user agent, if known.
    extras:
        Free-form, JSON-serialisable key/value pairs (read-only).
    """

    ip_address: str | None = None
    user_agent: str | None = None
    extras: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "extras", _freeze(self.extras))

    def to_dict(self) -> dict[str, object]:
        return {
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "extras": copy.deepcopy(dict(self.extras)),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object] | None) -> AuditDetails:
        data = data or {}
        extras = data.get("extras") or {}
        return cls(
            ip_address=_optional_str(data.get("ip_address")),
            user_agent=_optional_str(data.get("user_agent")),
            extras=extras,  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class AuditEntry:
    """A single, immutable audit log record.

    Attributes
    ----------
    entry_id:
        Monotonic, unique identifier assigned at record time.
    timestamp:
        Timezone-aware UTC datetime assigned at record time.
    user_id:
        Identifier of the acting user.
    enterprise_id:
        Enterprise the action happened in, if any.
    action:
        Action name (e.g. ``"login"``, ``"delete_user"``).
    resource_type:
        Type of the target resource (e.g. ``"user"``).
    resource_id:
        Identifier of the target resource.
    details:
        Request context (ip address, user agent, extras).
    result:
        ``success`` or ``failure``.
    risk_tier:
        ``low``, ``medium`` or ``high``.
    """

    entry_id: int
    timestamp: datetime
    user_id: str
    enterprise_id: str | None
    action: str
    resource_type: str
    resource_id: str
    details: AuditDetails
    result: AuditResult
    risk_tier: RiskTier

    # Entry ids are unique, so hashing on the id is consistent with equality.
    def __hash__(self) -> int:
        return hash(self.entry_id)

    @property
    def ip_address(self) -> str | None:
        return self.details.ip_address

    def describe(self) -> str:
        """Return a one-line human-readable description of the entry."""
        status = "succeeded" if self.result is AuditResult.SUCCESS else "failed"
        return (
            f"User {self.user_id} from {self.details.ip_address or 'unknown'} "
            f"({self.details.user_agent or 'unknown'}) {status} to perform "
            f"{self.action} on {self.resource_type}/{self.resource_id}"
        )

    def to_dict(self) -> dict[str, object]:
        """Serialise this entry to a JSON-compatible dict."""
        return {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "enterprise_id": self.enterprise_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details.to_dict(),
            "result": self.result.value,
            "risk_tier": self.risk_tier.value,
        }

    def to_jsonl(self) -> str:
        """Return this entry as a single JSON Lines line."""
        return json.dumps(self.to_dict(), default=str) + "\n"

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AuditEntry:
        """Reconstruct an entry from a dict produced by :meth:`to_dict`.

        Raises
        ------
        KeyError
            If a required field is missing.
        ValueError
            If a field has an invalid value.
        """
        return cls(
            entry_id=int(data["entry_id"]),  # type: ignore[call-overload]
            timestamp=parse_timestamp(data["timestamp"]),
            user_id=str(data["user_id"]),
            enterprise_id=_optional_str(data.get("enterprise_id")),
            action=str(data["action"]),
            resource_type=str(data["resource_type"]),
            resource_id=str(data["resource_id"]),
            details=AuditDetails.from_dict(data.get("details")),  # type: ignore[arg-type]
            result=AuditResult(data["result"]),
            risk_tier=RiskTier(data["risk_tier"]),
        )


def parse_timestamp(raw: object) -> datetime:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if isinstance(raw, datetime):
        ts = raw
    elif isinstance(raw, str):
        ts = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Invalid timestamp: {raw!r}")
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
