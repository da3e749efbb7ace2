"""Persistence backends for the audit log.

The audit core talks to storage through the small :class:`AuditStore`
protocol: append, range scan, lookup by id, and a cutoff delete per risk
tier.  Two implementations ship with the package:

- :class:`InMemoryAuditStore` keeps one deque per risk tier.  Entries arrive
  in timestamp order, so each deque is sorted and a cutoff delete only pops
  expired entries from the left; its cost is proportional to the number of
  expired entries, not to the size of the log.
- :class:`JsonlAuditStore` is an append-only JSON Lines file.  A cutoff
  delete rewrites the file atomically (temp file + ``os.replace``).  When the
  newest entry is among those removed, the rewrite ends with a
  ``{"last_entry": {...}}`` marker line so a reopened store still knows the
  highest id and timestamp ever handed out.

Both stores are thread-safe and return snapshots from reads.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

from access_governance.audit.models import AuditEntry, RiskTier

logger = logging.getLogger(__name__)

# Marker line written after a rewrite that removed the newest entry.
_HIGH_WATER_KEY = "last_entry"


@runtime_checkable
class AuditStore(Protocol):
    """Storage contract used by the audit pipeline."""

    def append(self, entry: AuditEntry) -> None:
        """Persist ``entry``.  Entries arrive in id and timestamp order."""

    def scan(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AuditEntry]:
        """Return a snapshot of entries in [start, end], oldest first."""

    def get(self, entry_id: int) -> AuditEntry | None:
        """Return the entry with ``entry_id`` or ``None``."""

    def last(self) -> AuditEntry | None:
        """Return the most recently appended entry, even if since deleted."""

    def delete_before(self, tier: RiskTier, cutoff: datetime) -> int:
        """Delete entries of ``tier`` with ``timestamp < cutoff``; return the count."""

    def count(self) -> int:
        """Return the number of stored entries."""


def _check_order(previous: AuditEntry | None, entry: AuditEntry) -> None:
    if previous is None:
        return
    if entry.entry_id <= previous.entry_id or entry.timestamp < previous.timestamp:
        raise ValueError(
            f"Out-of-order append: entry {entry.entry_id} at {entry.timestamp.isoformat()} "
            f"after entry {previous.entry_id} at {previous.timestamp.isoformat()}."
        )


def _in_range(entry: AuditEntry, start: datetime | None, end: datetime | None) -> bool:
    if start is not None and entry.timestamp < start:
        return False
    if end is not None and entry.timestamp > end:
        return False
    return True


class InMemoryAuditStore:
    """Thread-safe in-memory audit store with per-tier deques."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tiers: dict[RiskTier, deque[AuditEntry]] = {tier: deque() for tier in RiskTier}
        self._by_id: dict[int, AuditEntry] = {}
        self._last: AuditEntry | None = None

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            _check_order(self._last, entry)
            self._tiers[entry.risk_tier].append(entry)
            self._by_id[entry.entry_id] = entry
            self._last = entry

    def scan(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AuditEntry]:
        with self._lock:
            # dicts keep insertion order, which is id order.
            snapshot = list(self._by_id.values())
        return [e for e in snapshot if _in_range(e, start, end)]

    def get(self, entry_id: int) -> AuditEntry | None:
        with self._lock:
            return self._by_id.get(entry_id)

    def last(self) -> AuditEntry | None:
        with self._lock:
            return self._last

    def delete_before(self, tier: RiskTier, cutoff: datetime) -> int:
        removed = 0
        with self._lock:
            queue = self._tiers[tier]
            while queue and queue[0].timestamp < cutoff:
                expired = queue.popleft()
                del self._by_id[expired.entry_id]
                removed += 1
        return removed

    def count(self) -> int:
        with self._lock:
            return len(self._by_id)


class JsonlAuditStore:
    """Append-only JSON Lines audit store.

    Parameters
    ----------
    log_path:
        Path to the ``.jsonl`` file.  Parent directories are created on
        first write.
    """

    def __init__(self, log_path: Path) -> None:
        self._log_path = Path(log_path)
        self._lock = threading.Lock()
        self._last: AuditEntry | None = None
        with self._lock:
            for entry, _ in self._iter_records():
                self._last = entry

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            _check_order(self._last, entry)
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._log_path.open("a", encoding="utf-8") as fh:
                fh.write(entry.to_jsonl())
            self._last = entry

    def scan(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AuditEntry]:
        with self._lock:
            return [e for e in self._iter_entries() if _in_range(e, start, end)]

    def get(self, entry_id: int) -> AuditEntry | None:
        with self._lock:
            for entry in self._iter_entries():
                if entry.entry_id == entry_id:
                    return entry
        return None

    def last(self) -> AuditEntry | None:
        with self._lock:
            return self._last

    def delete_before(self, tier: RiskTier, cutoff: datetime) -> int:
        with self._lock:
            entries = list(self._iter_entries())
            kept = [e for e in entries if not (e.risk_tier is tier and e.timestamp < cutoff)]
            removed = len(entries) - len(kept)
            if removed:
                tmp_path = self._log_path.with_name(self._log_path.name + ".tmp")
                with tmp_path.open("w", encoding="utf-8") as fh:
                    for entry in kept:
                        fh.write(entry.to_jsonl())
                    if self._last is not None and (
                        not kept or kept[-1].entry_id != self._last.entry_id
                    ):
                        fh.write(
                            json.dumps({_HIGH_WATER_KEY: self._last.to_dict()}, default=str)
                            + "\n"
                        )
                os.replace(tmp_path, self._log_path)
        return removed

    def count(self) -> int:
        with self._lock:
            return sum(1 for _ in self._iter_entries())

    @property
    def log_path(self) -> Path:
        """The filesystem path of the audit log file."""
        return self._log_path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _iter_entries(self) -> Iterator[AuditEntry]:
        """Yield stored entries one at a time.  Caller holds the lock."""
        for entry, is_marker in self._iter_records():
            if not is_marker:
                yield entry

    def _iter_records(self) -> Iterator[tuple[AuditEntry, bool]]:
        """Yield ``(entry, is_marker)`` for every parseable line, in file order."""
        if not self._log_path.exists():
            return
        with self._log_path.open("r", encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                    if not isinstance(data, dict):
                        raise ValueError("line is not a JSON object")
                    is_marker = _HIGH_WATER_KEY in data
                    entry = AuditEntry.from_dict(data[_HIGH_WATER_KEY] if is_marker else data)
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                    logger.warning(
                        "Skipping malformed audit line %d in %s: %s",
                        line_no,
                        self._log_path,
                        exc,
                    )
                    continue
                yield entry, is_marker
