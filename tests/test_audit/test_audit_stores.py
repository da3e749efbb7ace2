"""Tests for the in-memory and JSON Lines audit stores."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from access_governance.audit.models import AuditDetails, AuditEntry, AuditResult, RiskTier
from access_governance.audit.store import AuditStore, InMemoryAuditStore, JsonlAuditStore

_T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _entry(entry_id: int, minutes: int = 0, tier: RiskTier = RiskTier.LOW) -> AuditEntry:
    return AuditEntry(
        entry_id=entry_id,
        timestamp=_T0 + timedelta(minutes=minutes),
        user_id="u1",
        enterprise_id="e1",
        action="view",
        resource_type="dataset",
        resource_id="ds-1",
        details=AuditDetails(ip_address="10.0.0.1", extras={"n": entry_id}),
        result=AuditResult.SUCCESS,
        risk_tier=tier,
    )


@pytest.fixture(params=["memory", "jsonl"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> AuditStore:
    if request.param == "memory":
        return InMemoryAuditStore()
    return JsonlAuditStore(tmp_path / "audit.jsonl")


# ---------------------------------------------------------------------------
# Shared contract
# ---------------------------------------------------------------------------


class TestStoreContract:
    def test_satisfies_protocol(self, store: AuditStore) -> None:
        assert isinstance(store, AuditStore)

    def test_append_and_scan(self, store: AuditStore) -> None:
        entries = [_entry(1, 0), _entry(2, 1), _entry(3, 2)]
        for e in entries:
            store.append(e)
        assert store.scan() == entries
        assert store.count() == 3
        assert store.last() == entries[-1]

    def test_scan_range_inclusive(self, store: AuditStore) -> None:
        for i in range(1, 6):
            store.append(_entry(i, i))
        result = store.scan(_T0 + timedelta(minutes=2), _T0 + timedelta(minutes=4))
        assert [e.entry_id for e in result] == [2, 3, 4]

    def test_get(self, store: AuditStore) -> None:
        store.append(_entry(1))
        assert store.get(1) == _entry(1)
        assert store.get(2) is None

    def test_out_of_order_id_rejected(self, store: AuditStore) -> None:
        store.append(_entry(2, 0))
        with pytest.raises(ValueError, match="Out-of-order"):
            store.append(_entry(1, 1))

    def test_backwards_timestamp_rejected(self, store: AuditStore) -> None:
        store.append(_entry(1, 5))
        with pytest.raises(ValueError):
            store.append(_entry(2, 4))

    def test_delete_before_is_tier_scoped(self, store: AuditStore) -> None:
        store.append(_entry(1, 0, RiskTier.LOW))
        store.append(_entry(2, 1, RiskTier.HIGH))
        store.append(_entry(3, 2, RiskTier.LOW))
        removed = store.delete_before(RiskTier.LOW, _T0 + timedelta(minutes=2))
        assert removed == 1
        assert [e.entry_id for e in store.scan()] == [2, 3]

    def test_delete_before_cutoff_is_exclusive(self, store: AuditStore) -> None:
        store.append(_entry(1, 0))
        assert store.delete_before(RiskTier.LOW, _T0) == 0
        assert store.count() == 1


# ---------------------------------------------------------------------------
# JSON Lines specifics
# ---------------------------------------------------------------------------


class TestJsonlAuditStore:
    def test_persists_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.jsonl"
        JsonlAuditStore(path).append(_entry(1))
        reopened = JsonlAuditStore(path)
        assert reopened.last() == _entry(1)
        assert reopened.scan() == [_entry(1)]

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        path = tmp_path / "a" / "b" / "audit.jsonl"
        JsonlAuditStore(path).append(_entry(1))
        assert path.exists()

    def test_skips_malformed_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.jsonl"
        store = JsonlAuditStore(path)
        store.append(_entry(1))
        with path.open("a", encoding="utf-8") as fh:
            fh.write("not json\n\n")
        store.append(_entry(2, 1))
        assert [e.entry_id for e in store.scan()] == [1, 2]

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = JsonlAuditStore(tmp_path / "absent.jsonl")
        assert store.count() == 0
        assert store.last() is None
        assert store.scan() == []

    def test_delete_rewrites_file(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.jsonl"
        store = JsonlAuditStore(path)
        store.append(_entry(1, 0))
        store.append(_entry(2, 10))
        store.delete_before(RiskTier.LOW, _T0 + timedelta(minutes=5))
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert not (tmp_path / "audit.jsonl.tmp").exists()

    def test_newest_deleted_last_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.jsonl"
        store = JsonlAuditStore(path)
        store.append(_entry(1, 0, RiskTier.HIGH))
        store.append(_entry(2, 10, RiskTier.LOW))
        assert store.delete_before(RiskTier.LOW, _T0 + timedelta(minutes=20)) == 1
        assert store.last() == _entry(2, 10, RiskTier.LOW)
        reopened = JsonlAuditStore(path)
        assert reopened.last() == _entry(2, 10, RiskTier.LOW)
        assert reopened.scan() == [_entry(1, 0, RiskTier.HIGH)]
        assert reopened.count() == 1
        assert reopened.get(2) is None

    def test_append_after_high_water_line(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.jsonl"
        store = JsonlAuditStore(path)
        store.append(_entry(1, 0))
        store.delete_before(RiskTier.LOW, _T0 + timedelta(minutes=5))
        assert store.count() == 0
        with pytest.raises(ValueError):
            JsonlAuditStore(path).append(_entry(1, 6))
        reopened = JsonlAuditStore(path)
        reopened.append(_entry(2, 6))
        assert JsonlAuditStore(path).scan() == [_entry(2, 6)]
        assert JsonlAuditStore(path).last() == _entry(2, 6)

    def test_repeated_sweeps_keep_single_high_water_line(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.jsonl"
        store = JsonlAuditStore(path)
        store.append(_entry(1, 0, RiskTier.HIGH))
        store.append(_entry(2, 1, RiskTier.MEDIUM))
        store.append(_entry(3, 2, RiskTier.LOW))
        store.delete_before(RiskTier.LOW, _T0 + timedelta(minutes=5))
        store.delete_before(RiskTier.MEDIUM, _T0 + timedelta(minutes=5))
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert JsonlAuditStore(path).last() == _entry(3, 2, RiskTier.LOW)
        assert store.log_path == path
