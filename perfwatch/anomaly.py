"""
Z-score anomaly detection against the rolling baseline.

Anomalies are diagnostic only: they flag values that are unusual for this
session even when they are within acceptable absolute ranges, and never create
alerts on their own.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from perfwatch.baseline import BaselineEstimator
from perfwatch.statistics import StatisticsCalculator
from perfwatch.store import MetricSeriesStore

logger = logging.getLogger(__name__)


class AnomalySeverity(str, Enum):
    """Anomaly severity levels."""
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Anomaly:
    """A detected anomaly event."""
    metric: str
    value: float
    baseline_mean: float
    deviation_sigma: float
    severity: AnomalySeverity
    timestamp: float
    direction: str  # "spike" above the mean, "drop" below

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


class AnomalyDetector:
    """Flags the latest sample of a metric when it strays from its baseline."""

    def __init__(
        self,
        store: MetricSeriesStore,
        baselines: BaselineEstimator,
        sensitivity: float = 2.0,
        high_severity_sigma: float = 3.0,
        log_size: int = 100,
    ):
        """
        Args:
            store: Sample source
            baselines: Baseline provider
            sensitivity: Z-score a sample must exceed to be anomalous
            high_severity_sigma: Z-score above which severity is High
            log_size: Anomaly log capacity (oldest evicted first)
        """
        self.store = store
        self.baselines = baselines
        self.sensitivity = sensitivity
        self.high_severity_sigma = high_severity_sigma
        self._log: Deque[Anomaly] = deque(maxlen=log_size)
        self._last_checked: Dict[str, float] = {}
        self._lock = threading.Lock()

    def detect(self, metric: str) -> Optional[Anomaly]:
        """
        Check the latest sample of ``metric`` against its baseline.

        No-op without a baseline or when the latest sample was already checked.

        Returns:
            The recorded Anomaly, or None
        """
        baseline = self.baselines.get(metric)
        if baseline is None:
            return None

        sample = self.store.latest(metric)
        if sample is None:
            return None

        with self._lock:
            if self._last_checked.get(metric) == sample.timestamp:
                return None
            self._last_checked[metric] = sample.timestamp

        if baseline.std_dev == 0:
            return None

        z_score = abs(StatisticsCalculator.zscore(sample.value, baseline.mean, baseline.std_dev))
        if z_score <= self.sensitivity:
            return None

        severity = AnomalySeverity.HIGH if z_score > self.high_severity_sigma else AnomalySeverity.MEDIUM
        anomaly = Anomaly(
            metric=metric,
            value=sample.value,
            baseline_mean=baseline.mean,
            deviation_sigma=z_score,
            severity=severity,
            timestamp=sample.timestamp,
            direction="spike" if sample.value > baseline.mean else "drop",
        )

        with self._lock:
            self._log.append(anomaly)

        logger.info(
            f"Anomaly detected in {metric}: {anomaly.direction} ({severity.value}) - "
            f"value={sample.value:.2f}, baseline={baseline.mean:.2f}, z={z_score:.2f}",
            extra={"context": anomaly.to_dict()},
        )
        return anomaly

    def recent(self, since: Optional[float] = None) -> List[Anomaly]:
        """Logged anomalies, oldest first, optionally only those at or after ``since``."""
        with self._lock:
            anomalies = list(self._log)
        if since is None:
            return anomalies
        return [a for a in anomalies if a.timestamp >= since]

    def prune(self, before: float) -> int:
        """Drop logged anomalies older than ``before``."""
        with self._lock:
            kept = [a for a in self._log if a.timestamp >= before]
            removed = len(self._log) - len(kept)
            self._log.clear()
            self._log.extend(kept)
        return removed
