"""Convenience API for access-governance: one object for the whole core.

Example
-------
::

    from access_governance import AccessGovernor, Principal

    governor = AccessGovernor()
    alice = Principal(user_id="alice", roles={"User"})
    decision = governor.evaluate(alice, "dataset", "read")
    governor.record({
        "user_id": "alice",
        "action": "read_dataset",
        "resource_type": "dataset",
        "resource_id": "ds-1",
        "result": "success" if decision.allowed else "failure",
    })
    reports = governor.detect()

"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime

from access_governance.anomaly.detector import AnomalyDetector, AnomalyReport
from access_governance.audit.exporter import AuditExporter, ExportFormat
from access_governance.audit.logger import AuditLogger
from access_governance.audit.models import AuditEntry
from access_governance.audit.retention import RetentionSweeper, SweepResult
from access_governance.audit.search import AuditFilter, AuditPage, AuditSearch, AuditStats
from access_governance.audit.store import AuditStore, InMemoryAuditStore, JsonlAuditStore
from access_governance.config import GovernanceConfig
from access_governance.permissions.capability_matrix import (
    CapabilityMatrix,
    PermissionAction,
    ResourceType,
)
from access_governance.permissions.engine import (
    PermissionDecision,
    PermissionEngine,
    Principal,
    ResourceContext,
)
from access_governance.permissions.permission_loader import PermissionLoader

logger = logging.getLogger(__name__)


class AccessGovernor:
    """Wires the permission engine, audit pipeline and anomaly detector.

    Every component can be injected; anything not supplied gets its
    default.  Use :meth:`from_config` to build one from a
    :class:`GovernanceConfig`.
    """

    def __init__(
        self,
        engine: PermissionEngine | None = None,
        audit_logger: AuditLogger | None = None,
        detector: AnomalyDetector | None = None,
        sweeper: RetentionSweeper | None = None,
        stats_top_n: int = 10,
        window_limit: int = 1000,
        sweep_interval_seconds: float = 3600.0,
    ) -> None:
        self._engine = engine or PermissionEngine()
        self._audit = audit_logger or AuditLogger()
        self._search = AuditSearch(self._audit, default_top_n=stats_top_n)
        self._exporter = AuditExporter(self._search)
        self._detector = detector or AnomalyDetector()
        self._sweeper = sweeper or RetentionSweeper(self._audit)
        self._window_limit = window_limit
        self._sweep_interval = sweep_interval_seconds

    @classmethod
    def from_config(
        cls,
        config: GovernanceConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> AccessGovernor:
        """Build a governor from a validated configuration."""
        if config.permissions.matrix_file is not None:
            loaded = PermissionLoader().load(config.permissions.matrix_file)
            matrix = loaded.matrix
            admin_only = config.permissions.parsed_admin_only() or loaded.admin_only
        else:
            matrix = CapabilityMatrix.default()
            admin_only = config.permissions.parsed_admin_only()

        store: AuditStore
        if config.audit.backend == "jsonl":
            store = JsonlAuditStore(config.audit.log_path)
        else:
            store = InMemoryAuditStore()

        audit_logger = AuditLogger(store, clock=clock, redact_fields=config.audit.redact_fields)
        logger.info(
            "Access governor configured (backend=%s, roles=%d)",
            config.audit.backend,
            len(matrix.roles),
        )
        return cls(
            engine=PermissionEngine(matrix, admin_only=admin_only),
            audit_logger=audit_logger,
            detector=AnomalyDetector(config.anomaly.to_thresholds()),
            sweeper=RetentionSweeper(audit_logger, config.retention.to_policy(), clock=clock),
            stats_top_n=config.audit.stats_top_n,
            window_limit=config.anomaly.window_limit,
            sweep_interval_seconds=config.audit.sweep_interval_seconds,
        )

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def evaluate(
        self,
        principal: Principal,
        resource_type: ResourceType | str,
        action: PermissionAction | str,
        context: ResourceContext | None = None,
    ) -> PermissionDecision:
        """Decide whether ``principal`` may act; see :meth:`PermissionEngine.evaluate`."""
        return self._engine.evaluate(principal, resource_type, action, context)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def record(self, event: Mapping[str, object]) -> AuditEntry:
        """Append an audit entry; see :meth:`AuditLogger.record`."""
        return self._audit.record(event)

    def record_many(self, events: Iterable[Mapping[str, object]]) -> list[AuditEntry]:
        return self._audit.record_many(events)

    def query(
        self,
        audit_filter: AuditFilter | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditPage:
        return self._search.query(audit_filter, page, page_size)

    def stats(self, audit_filter: AuditFilter | None = None, top_n: int | None = None) -> AuditStats:
        return self._search.stats(audit_filter, top_n)

    def export(
        self,
        audit_filter: AuditFilter | None = None,
        fmt: ExportFormat | str = ExportFormat.JSON,
    ) -> bytes:
        return self._exporter.export(audit_filter, fmt)

    def sweep(self, now: datetime | None = None) -> SweepResult:
        """Run one retention sweep now."""
        return self._sweeper.sweep(now)

    def start_retention(self) -> None:
        """Start background retention sweeps at the configured interval."""
        self._sweeper.start(self._sweep_interval)

    def stop_retention(self) -> None:
        self._sweeper.stop()

    # ------------------------------------------------------------------
    # Anomalies
    # ------------------------------------------------------------------

    def detect(
        self,
        window: Sequence[AuditEntry] | None = None,
        since: datetime | None = None,
    ) -> list[AnomalyReport]:
        """Detect anomalies in ``window``.

        When no window is given, the most recent ``window_limit`` entries
        (optionally only those after ``since``) are analysed.
        """
        if window is None:
            window = self._search.recent_window(since=since, limit=self._window_limit)
        return self._detector.detect(window)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def engine(self) -> PermissionEngine:
        return self._engine

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    @property
    def search(self) -> AuditSearch:
        return self._search

    @property
    def exporter(self) -> AuditExporter:
        return self._exporter

    @property
    def detector(self) -> AnomalyDetector:
        return self._detector

    @property
    def sweeper(self) -> RetentionSweeper:
        return self._sweeper

    def __repr__(self) -> str:
        return f"AccessGovernor(entries={self._audit.count()})"
