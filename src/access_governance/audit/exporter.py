"""Audit log exporter.

Serialises a filtered entry set to JSON, JSON Lines or CSV bytes for
external analysis, compliance evidence packages, or long-term archival.

Export is lossless: :meth:`AuditExporter.parse` turns exported bytes back
into entries that compare equal, field for field, to the entries the
unpaginated query returned.

Example
-------
>>> exporter = AuditExporter(AuditSearch(audit))
>>> data = exporter.export(AuditFilter(risk_tier="high"), "json")
>>> exporter.parse(data, "json") == AuditSearch(audit).filtered(AuditFilter(risk_tier="high"))
True
"""
from __future__ import annotations

import csv
import io
import json
import logging
from enum import Enum
from pathlib import Path

from access_governance.audit.models import AuditEntry
from access_governance.audit.search import AuditFilter, AuditSearch

logger = logging.getLogger(__name__)

CSV_COLUMNS: tuple[str, ...] = (
    "entry_id",
    "timestamp",
    "user_id",
    "enterprise_id",
    "action",
    "resource_type",
    "resource_id",
    "ip_address",
    "user_agent",
    "extras",
    "result",
    "risk_tier",
)


class ExportFormat(str, Enum):
    """Supported export encodings."""

    JSON = "json"
    JSONL = "jsonl"
    CSV = "csv"


class UnsupportedFormatError(ValueError):
    """Raised for an export format this module cannot produce or parse.

    Attributes
    ----------
    fmt:
        The rejected format name.
    """

    def __init__(self, fmt: object) -> None:
        self.fmt = fmt
        valid = [f.value for f in ExportFormat]
        super().__init__(f"Unsupported export format {fmt!r}. Supported: {valid}.")


def resolve_format(fmt: ExportFormat | str) -> ExportFormat:
    """Return the :class:`ExportFormat` for ``fmt`` (case-insensitive)."""
    if isinstance(fmt, ExportFormat):
        return fmt
    try:
        return ExportFormat(str(fmt).lower())
    except ValueError as exc:
        raise UnsupportedFormatError(fmt) from exc


class AuditExporter:
    """Exports filtered audit entries to structured byte formats.

    Parameters
    ----------
    search:
        The :class:`AuditSearch` used to select entries.
    """

    def __init__(self, search: AuditSearch) -> None:
        self._search = search

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(
        self,
        audit_filter: AuditFilter | None = None,
        fmt: ExportFormat | str = ExportFormat.JSON,
    ) -> bytes:
        """Serialise every entry matching ``audit_filter``.

        Raises
        ------
        UnsupportedFormatError
            If ``fmt`` is not a supported format.
        InvalidFilterError
            If the filter's time range is inverted.
        """
        export_format = resolve_format(fmt)
        entries = self._search.filtered(audit_filter)
        data = self.encode(entries, export_format)
        logger.info("Exported %d audit entries as %s", len(entries), export_format.value)
        return data

    def export_to_file(
        self,
        output_path: Path,
        audit_filter: AuditFilter | None = None,
        fmt: ExportFormat | str = ExportFormat.JSON,
    ) -> int:
        """Write an export to ``output_path``; return the number of entries."""
        export_format = resolve_format(fmt)
        entries = self._search.filtered(audit_filter)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.encode(entries, export_format))
        logger.info(
            "Exported %d audit entries to %s (%s)", len(entries), output_path, export_format.value
        )
        return len(entries)

    @staticmethod
    def encode(entries: list[AuditEntry], fmt: ExportFormat | str) -> bytes:
        """Serialise ``entries`` in the given format."""
        export_format = resolve_format(fmt)
        if export_format is ExportFormat.JSON:
            return json.dumps([e.to_dict() for e in entries], indent=2).encode("utf-8")
        if export_format is ExportFormat.JSONL:
            return "".join(e.to_jsonl() for e in entries).encode("utf-8")

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=list(CSV_COLUMNS))
        writer.writeheader()
        for entry in entries:
            record = entry.to_dict()
            details: dict[str, object] = record.pop("details")  # type: ignore[assignment]
            record["ip_address"] = details["ip_address"] or ""
            record["user_agent"] = details["user_agent"] or ""
            record["extras"] = json.dumps(details["extras"], sort_keys=True)
            record["enterprise_id"] = record["enterprise_id"] or ""
            writer.writerow(record)
        return buffer.getvalue().encode("utf-8")

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    @staticmethod
    def parse(data: bytes, fmt: ExportFormat | str) -> list[AuditEntry]:
        """Parse bytes produced by :meth:`export` back into entries.

        Raises
        ------
        UnsupportedFormatError
            If ``fmt`` is not a supported format.
        ValueError
            If the data is not a valid export in that format.
        """
        export_format = resolve_format(fmt)
        text = data.decode("utf-8")
        if export_format is ExportFormat.JSON:
            return [AuditEntry.from_dict(item) for item in json.loads(text or "[]")]
        if export_format is ExportFormat.JSONL:
            return [
                AuditEntry.from_dict(json.loads(line))
                for line in text.splitlines()
                if line.strip()
            ]

        entries: list[AuditEntry] = []
        for row in csv.DictReader(io.StringIO(text)):
            entries.append(
                AuditEntry.from_dict(
                    {
                        "entry_id": row["entry_id"],
                        "timestamp": row["timestamp"],
                        "user_id": row["user_id"],
                        "enterprise_id": row["enterprise_id"],
                        "action": row["action"],
                        "resource_type": row["resource_type"],
                        "resource_id": row["resource_id"],
                        "details": {
                            "ip_address": row["ip_address"],
                            "user_agent": row["user_agent"],
                            "extras": json.loads(row["extras"] or "{}"),
                        },
                        "result": row["result"],
                        "risk_tier": row["risk_tier"],
                    }
                )
            )
        return entries
