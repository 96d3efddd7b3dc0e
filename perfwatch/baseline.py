"""
Rolling baseline estimation per metric.

A baseline is only (re)computed once a full trailing window of samples is
available; until then the previous baseline, if any, stays in place.
"""

import logging
import threading
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from perfwatch.statistics import StatisticsCalculator
from perfwatch.store import MetricSeriesStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Baseline:
    """Summary statistics of a metric's trailing window."""
    metric: str
    mean: float
    std_dev: float
    min: float
    max: float
    median: float
    sample_count: int
    computed_at: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BaselineEstimator:
    """Computes and holds the latest Baseline for each metric."""

    def __init__(self, store: MetricSeriesStore, required_samples: int = 100):
        """
        Args:
            store: Sample source
            required_samples: Trailing window size; fewer samples means no update
        """
        self.store = store
        self.required_samples = required_samples
        self._baselines: Dict[str, Baseline] = {}
        self._lock = threading.Lock()

    def recompute(self, metric: str, now: float) -> Optional[Baseline]:
        """
        Recompute the baseline from the last ``required_samples`` samples.

        Returns:
            The new Baseline, or None when history is still too short
        """
        samples = self.store.snapshot(metric, self.required_samples)
        if len(samples) < self.required_samples:
            logger.debug(
                f"Baseline for {metric} skipped: {len(samples)}/{self.required_samples} samples"
            )
            return None

        values = [s.value for s in samples]
        baseline = Baseline(
            metric=metric,
            mean=StatisticsCalculator.mean(values),
            std_dev=StatisticsCalculator.standard_deviation(values),
            min=min(values),
            max=max(values),
            median=StatisticsCalculator.median(values),
            sample_count=len(values),
            computed_at=now,
        )

        with self._lock:
            self._baselines[metric] = baseline
        return baseline

    def get(self, metric: str) -> Optional[Baseline]:
        with self._lock:
            return self._baselines.get(metric)

    def all(self) -> Dict[str, Baseline]:
        with self._lock:
            return dict(self._baselines)
