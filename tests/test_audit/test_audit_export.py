"""Tests for AuditExporter encodings and round trips."""
from __future__ import annotations

import csv
import io
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from access_governance.audit.exporter import (
    CSV_COLUMNS,
    AuditExporter,
    ExportFormat,
    UnsupportedFormatError,
    resolve_format,
)
from access_governance.audit.logger import AuditLogger
from access_governance.audit.models import AuditEntry
from access_governance.audit.search import AuditFilter, AuditSearch

EventFactory = Callable[..., dict[str, object]]


@pytest.fixture()
def search(audit: AuditLogger, clock: Any, event_factory: EventFactory) -> AuditSearch:
    audit.record(event_factory(extras={"changes": [{"field": "name", "old_value": None}]}))
    clock.advance(seconds=1.5)
    audit.record(event_factory(user_id="bob", action="login", result="failure", enterprise_id=None))
    clock.advance(microseconds=7)
    audit.record(event_factory(ip_address=None, user_agent=None, extras={"note": 'quote " and, comma'}))
    return AuditSearch(audit)


@pytest.fixture()
def exporter(search: AuditSearch) -> AuditExporter:
    return AuditExporter(search)


# ---------------------------------------------------------------------------
# Round trips
# ---------------------------------------------------------------------------


class TestRoundTrip:
    @pytest.mark.parametrize("fmt", list(ExportFormat))
    def test_export_parse_matches_query(
        self, exporter: AuditExporter, search: AuditSearch, fmt: ExportFormat
    ) -> None:
        expected = search.filtered()
        assert AuditExporter.parse(exporter.export(fmt=fmt), fmt) == expected

    def test_filter_applied(self, exporter: AuditExporter, search: AuditSearch) -> None:
        flt = AuditFilter(user_id="bob")
        parsed = AuditExporter.parse(exporter.export(flt, "json"), "json")
        assert [e.user_id for e in parsed] == ["bob"]
        assert parsed == search.filtered(flt)

    def test_timestamps_keep_microseconds(self, exporter: AuditExporter, search: AuditSearch) -> None:
        parsed = AuditExporter.parse(exporter.export(fmt="csv"), "csv")
        assert [e.timestamp for e in parsed] == [e.timestamp for e in search.filtered()]
        assert parsed[0].timestamp.microsecond == 500007

    def test_empty_export(self, audit: AuditLogger) -> None:
        exporter = AuditExporter(AuditSearch(audit))
        assert json.loads(exporter.export(fmt="json")) == []
        assert exporter.export(fmt="jsonl") == b""
        assert AuditExporter.parse(exporter.export(fmt="csv"), "csv") == []


# ---------------------------------------------------------------------------
# Encodings
# ---------------------------------------------------------------------------


class TestEncodings:
    def test_json_is_array_of_objects(self, exporter: AuditExporter) -> None:
        data = json.loads(exporter.export(fmt="json"))
        assert len(data) == 3
        assert data[0]["entry_id"] == 3
        assert set(data[0]) == {
            "entry_id",
            "timestamp",
            "user_id",
            "enterprise_id",
            "action",
            "resource_type",
            "resource_id",
            "details",
            "result",
            "risk_tier",
        }

    def test_jsonl_one_line_per_entry(self, exporter: AuditExporter) -> None:
        lines = exporter.export(fmt="jsonl").decode("utf-8").splitlines()
        assert len(lines) == 3
        assert json.loads(lines[1])["user_id"] == "bob"

    def test_csv_header_and_flattened_details(self, exporter: AuditExporter) -> None:
        rows = list(csv.DictReader(io.StringIO(exporter.export(fmt="csv").decode("utf-8"))))
        assert tuple(rows[0]) == CSV_COLUMNS
        bob = rows[1]
        assert bob["enterprise_id"] == ""
        assert bob["ip_address"] == "10.0.0.1"
        assert json.loads(rows[2]["extras"])["changes"][0]["field"] == "name"

    def test_format_names_case_insensitive(self) -> None:
        assert resolve_format("JSON") is ExportFormat.JSON
        assert resolve_format(ExportFormat.CSV) is ExportFormat.CSV

    def test_unsupported_format(self, exporter: AuditExporter) -> None:
        with pytest.raises(UnsupportedFormatError) as exc_info:
            exporter.export(fmt="xlsx")
        assert exc_info.value.fmt == "xlsx"
        assert isinstance(exc_info.value, ValueError)


# ---------------------------------------------------------------------------
# export_to_file
# ---------------------------------------------------------------------------


class TestExportToFile:
    def test_writes_file_and_returns_count(
        self, exporter: AuditExporter, tmp_path: Path
    ) -> None:
        out = tmp_path / "nested" / "audit.jsonl"
        count = exporter.export_to_file(out, fmt="jsonl")
        assert count == 3
        parsed = AuditExporter.parse(out.read_bytes(), "jsonl")
        assert all(isinstance(e, AuditEntry) for e in parsed)
        assert [e.entry_id for e in parsed] == [3, 2, 1]
