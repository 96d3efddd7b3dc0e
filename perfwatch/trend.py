"""
Trend direction and strength per metric.

Direction is decided by comparing the means of the two halves of the trailing
window against half a standard deviation of the whole window. The OLS slope is
reported alongside as informational data.
"""

import logging
import threading
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional

from perfwatch.statistics import StatisticsCalculator
from perfwatch.store import MetricSeriesStore

logger = logging.getLogger(__name__)

MIN_TREND_SAMPLES = 5
DIRECTION_SIGMA = 0.5


class TrendDirection(str, Enum):
    """Direction of trend movement."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass(frozen=True)
class Trend:
    """Direction and strength of a metric over a trailing window."""
    metric: str
    direction: TrendDirection
    strength: float
    mean: float
    std_dev: float
    computed_at: float
    sample_count: int = 0
    slope: float = 0.0  # units per second

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        return data


class TrendAnalyzer:
    """Computes and holds the latest Trend for each metric."""

    def __init__(self, store: MetricSeriesStore, window_seconds: float = 300.0):
        self.store = store
        self.window_seconds = window_seconds
        self._trends: Dict[str, Trend] = {}
        self._lock = threading.Lock()

    def compute_trend(
        self,
        metric: str,
        now: float,
        window_seconds: Optional[float] = None,
    ) -> Trend:
        """
        Classify the trend of ``metric`` over the last ``window_seconds``.

        Fewer than five samples is reported as Stable with strength 0.
        """
        window = self.window_seconds if window_seconds is None else window_seconds
        samples = self.store.window_since(metric, now - window)
        values = [s.value for s in samples]

        if len(values) < MIN_TREND_SAMPLES:
            trend = Trend(
                metric=metric,
                direction=TrendDirection.STABLE,
                strength=0.0,
                mean=StatisticsCalculator.mean(values),
                std_dev=StatisticsCalculator.standard_deviation(values),
                computed_at=now,
                sample_count=len(values),
            )
        else:
            mean = StatisticsCalculator.mean(values)
            std_dev = StatisticsCalculator.standard_deviation(values)
            first, second = StatisticsCalculator.split_halves(values)
            delta = StatisticsCalculator.mean(second) - StatisticsCalculator.mean(first)

            if delta > DIRECTION_SIGMA * std_dev:
                direction = TrendDirection.INCREASING
            elif delta < -DIRECTION_SIGMA * std_dev:
                direction = TrendDirection.DECREASING
            else:
                direction = TrendDirection.STABLE

            strength = abs(delta) / std_dev if std_dev > 0 else 0.0
            regression = StatisticsCalculator.linear_regression(
                [s.timestamp for s in samples], values
            )

            trend = Trend(
                metric=metric,
                direction=direction,
                strength=strength,
                mean=mean,
                std_dev=std_dev,
                computed_at=now,
                sample_count=len(values),
                slope=regression.slope,
            )

        with self._lock:
            self._trends[metric] = trend
        return trend

    def get(self, metric: str) -> Optional[Trend]:
        with self._lock:
            return self._trends.get(metric)

    def all(self) -> Dict[str, Trend]:
        with self._lock:
            return dict(self._trends)
