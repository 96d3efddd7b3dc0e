"""
Metric sources feed raw readings into the engine.

How a reading is physically measured (frame timing, OS memory counters, socket
round trips) is up to the host application; the engine only sees this narrow
interface.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Mapping, Optional


class MetricSource(ABC):
    """Abstract base class for metric sources."""

    name = "source"

    @abstractmethod
    def read(self) -> Dict[str, float]:
        """
        Take one reading.

        Returns:
            Metric name -> value. Missing names are gaps, not errors.
        """


class CallableMetricSource(MetricSource):
    """Adapts a plain function returning a name -> value mapping."""

    def __init__(self, func: Callable[[], Mapping[str, float]], name: Optional[str] = None):
        self.func = func
        self.name = name or getattr(func, "__name__", "callable")

    def read(self) -> Dict[str, float]:
        return dict(self.func())


class StaticMetricSource(MetricSource):
    """Reports fixed values that can be changed between reads."""

    name = "static"

    def __init__(self, values: Optional[Mapping[str, float]] = None):
        self.values: Dict[str, float] = dict(values or {})

    def set(self, metric: str, value: float) -> None:
        self.values[metric] = value

    def update(self, values: Mapping[str, float]) -> None:
        self.values.update(values)

    def read(self) -> Dict[str, float]:
        return dict(self.values)
