"""
Metric series store: one fixed-capacity ring buffer per metric name.

The collection task is the only writer; alert, baseline, trend and anomaly
passes read through ``snapshot``/``window_since``, which copy under the lock
and return immediately so statistics are always computed outside it.
"""

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass, asdict
from itertools import islice
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricSample:
    """A single timestamped reading."""
    metric: str
    value: float
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MetricSeriesStore:
    """
    Fixed-capacity, FIFO-evicting sample history per metric.

    Series are created lazily on first write. Reads never mutate a series and
    never expose the underlying buffer.
    """

    def __init__(self, history_size: int = 3600):
        if history_size <= 0:
            raise ValueError("history_size must be > 0")
        self.history_size = history_size
        self._series: Dict[str, Deque[MetricSample]] = {}
        self._lock = threading.Lock()

    def ingest(self, metric: str, value: float, timestamp: float) -> bool:
        """
        Append a sample, evicting the oldest one once the series is full.

        Returns:
            False if the value was rejected (non-numeric or non-finite),
            True otherwise
        """
        try:
            value = float(value)
        except (TypeError, ValueError):
            logger.warning(f"Rejected non-numeric sample for {metric}: {value!r}")
            return False
        if not math.isfinite(value):
            logger.warning(f"Rejected non-finite sample for {metric}: {value}")
            return False

        sample = MetricSample(metric=metric, value=value, timestamp=float(timestamp))
        with self._lock:
            series = self._series.get(metric)
            if series is None:
                series = deque(maxlen=self.history_size)
                self._series[metric] = series
                logger.debug(f"Created series for metric {metric}")
            series.append(sample)
        return True

    def snapshot(self, metric: str, window: int) -> List[MetricSample]:
        """
        Most recent ``window`` samples in chronological order.

        Returns fewer when history is short and an empty list for unknown
        metrics or non-positive windows.
        """
        if window <= 0:
            return []
        with self._lock:
            series = self._series.get(metric)
            if not series:
                return []
            start = max(0, len(series) - window)
            return list(islice(series, start, None))

    def window_since(self, metric: str, since: float) -> List[MetricSample]:
        """All samples with ``timestamp >= since``, chronological."""
        with self._lock:
            series = self._series.get(metric)
            if not series:
                return []
            samples = list(series)
        # Timestamps arrive in order, but tolerate out-of-order ticks.
        return [s for s in samples if s.timestamp >= since]

    def latest(self, metric: str) -> Optional[MetricSample]:
        with self._lock:
            series = self._series.get(metric)
            return series[-1] if series else None

    def current_values(self) -> Dict[str, float]:
        """Latest value of every metric that has at least one sample."""
        with self._lock:
            return {name: series[-1].value for name, series in self._series.items() if series}

    def has_metric(self, metric: str) -> bool:
        with self._lock:
            return metric in self._series

    def metrics(self) -> List[str]:
        with self._lock:
            return sorted(self._series)

    def size(self, metric: str) -> int:
        with self._lock:
            series = self._series.get(metric)
            return len(series) if series else 0

    def prune(self, before: float) -> int:
        """
        Drop samples older than ``before`` from every series.

        Emptied series stay registered so the metric remains known.

        Returns:
            Number of samples removed
        """
        removed = 0
        with self._lock:
            for series in self._series.values():
                while series and series[0].timestamp < before:
                    series.popleft()
                    removed += 1
        if removed:
            logger.debug(f"Pruned {removed} samples older than {before:.3f}")
        return removed
