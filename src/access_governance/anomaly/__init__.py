"""Rule-based anomaly detection over bounded audit windows."""
from __future__ import annotations

from access_governance.anomaly.detector import (
    AnomalyDetector,
    AnomalyReport,
    AnomalyThresholds,
    AnomalyType,
)

__all__ = [
    "AnomalyDetector",
    "AnomalyReport",
    "AnomalyThresholds",
    "AnomalyType",
]
