"""Tiered retention sweeps for the audit log.

Each risk tier has its own retention window (high 365 days, medium 180,
low 90 by default).  A sweep computes one cutoff per tier,
``now - window(tier)``, and asks the store to delete every entry of that
tier strictly older than the cutoff.  An entry whose age does not exceed its
tier's window is never deleted.

Sweeps only ever remove whole, immutable entries through the store's
cutoff delete, so they are safe to run while ``record`` and queries are in
progress.  New entries are always younger than any cutoff.

Example
-------
>>> sweeper = RetentionSweeper(audit)
>>> result = sweeper.sweep()
>>> result.total
0
>>> sweeper.start(interval_seconds=3600)   # background, daemon thread
>>> sweeper.stop()
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from access_governance.audit.logger import AuditLogger
from access_governance.audit.models import RiskTier, parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    """Maximum entry age in days, per risk tier."""

    high_days: int = 365
    medium_days: int = 180
    low_days: int = 90

    def __post_init__(self) -> None:
        for name in ("high_days", "medium_days", "low_days"):
            if getattr(self, name) < 1:
                raise ValueError(f"RetentionPolicy.{name} must be at least 1.")

    def days(self, tier: RiskTier) -> int:
        return {
            RiskTier.HIGH: self.high_days,
            RiskTier.MEDIUM: self.medium_days,
            RiskTier.LOW: self.low_days,
        }[tier]

    def window(self, tier: RiskTier) -> timedelta:
        """Return the retention window for ``tier``."""
        return timedelta(days=self.days(tier))

    def cutoff(self, tier: RiskTier, now: datetime) -> datetime:
        """Entries of ``tier`` with a timestamp before this are expired."""
        return parse_timestamp(now) - self.window(tier)


@dataclass(frozen=True)
class SweepResult:
    """Outcome of a single retention sweep."""

    swept_at: datetime
    deleted: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.deleted.values())


class RetentionSweeper:
    """Deletes audit entries that have outlived their tier's window.

    Parameters
    ----------
    audit_logger:
        The logger whose store is swept.
    policy:
        Retention windows.  Defaults to :class:`RetentionPolicy`.
    clock:
        Callable returning the current time; override for testing.
    """

    def __init__(
        self,
        audit_logger: AuditLogger,
        policy: RetentionPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._logger = audit_logger
        self._policy = policy or RetentionPolicy()
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sweep(self, now: datetime | None = None) -> SweepResult:
        """Run one sweep.

        Parameters
        ----------
        now:
            Override the current time (useful for testing).
        """
        effective_now = parse_timestamp(now if now is not None else self._clock())
        deleted: dict[str, int] = {}
        for tier in RiskTier:
            cutoff = self._policy.cutoff(tier, effective_now)
            deleted[tier.value] = self._logger.store.delete_before(tier, cutoff)
        result = SweepResult(swept_at=effective_now, deleted=deleted)
        if result.total:
            logger.info(
                "Retention sweep removed %d audit entries (high=%d medium=%d low=%d)",
                result.total,
                deleted[RiskTier.HIGH.value],
                deleted[RiskTier.MEDIUM.value],
                deleted[RiskTier.LOW.value],
            )
        return result

    def start(self, interval_seconds: float = 3600.0) -> None:
        """Run :meth:`sweep` every ``interval_seconds`` on a daemon thread."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive.")
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(interval_seconds,),
            daemon=True,
            name="audit-retention-sweeper",
        )
        self._thread.start()
        logger.info("Retention sweeper started (interval=%.0fs)", interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the background thread, waiting up to ``timeout`` seconds."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Retention sweeper stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def policy(self) -> RetentionPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(self, interval_seconds: float) -> None:
        while not self._stop_event.wait(interval_seconds):
            try:
                self.sweep()
            except (OSError, ValueError):
                # Keep the background loop alive; the next tick retries.
                logger.exception("Retention sweep failed")
