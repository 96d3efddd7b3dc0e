"""
Statistical helpers shared by the analytics components.

Pure-Python implementations; inputs are the short trailing windows returned by
the metric store, so there is no need for a numerical stack here.
"""

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Sequence, Tuple


@dataclass
class RegressionResult:
    """Result of linear regression analysis."""
    slope: float
    intercept: float
    r_squared: float

    def predict(self, x: float) -> float:
        """Predict y for given x."""
        return self.slope * x + self.intercept

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StatisticsCalculator:
    """Statistical computation utilities."""

    @staticmethod
    def mean(values: Sequence[float]) -> float:
        """Calculate arithmetic mean."""
        if not values:
            return 0.0
        return sum(values) / len(values)

    @staticmethod
    def standard_deviation(values: Sequence[float], sample: bool = True) -> float:
        """
        Calculate standard deviation.

        With ``sample=True`` the Bessel-corrected (n - 1) estimator is used.
        Defined as 0.0 for fewer than two values.
        """
        if len(values) < 2:
            return 0.0

        mean_val = StatisticsCalculator.mean(values)
        variance = sum((x - mean_val) ** 2 for x in values)

        divisor = len(values) - 1 if sample else len(values)
        return math.sqrt(variance / divisor)

    @staticmethod
    def median(values: Sequence[float]) -> float:
        """Calculate median; even counts average the two middle elements."""
        if not values:
            return 0.0

        ordered = sorted(values)
        mid = len(ordered) // 2
        if len(ordered) % 2:
            return ordered[mid]
        return (ordered[mid - 1] + ordered[mid]) / 2

    @staticmethod
    def zscore(value: float, mean: float, std: float) -> float:
        """Calculate z-score; 0.0 when the spread is zero."""
        if std == 0:
            return 0.0
        return (value - mean) / std

    @staticmethod
    def linear_regression(x: Sequence[float], y: Sequence[float]) -> RegressionResult:
        """Perform ordinary least squares linear regression."""
        n = len(x)
        if n < 2 or len(y) != n:
            return RegressionResult(slope=0.0, intercept=0.0, r_squared=0.0)

        mean_x = StatisticsCalculator.mean(x)
        mean_y = StatisticsCalculator.mean(y)

        numerator = sum((x[i] - mean_x) * (y[i] - mean_y) for i in range(n))
        denominator = sum((x[i] - mean_x) ** 2 for i in range(n))

        if denominator == 0:
            return RegressionResult(slope=0.0, intercept=mean_y, r_squared=0.0)

        slope = numerator / denominator
        intercept = mean_y - slope * mean_x

        ss_res = sum((y[i] - (slope * x[i] + intercept)) ** 2 for i in range(n))
        ss_tot = sum((y[i] - mean_y) ** 2 for i in range(n))

        r_squared = 1 - (ss_res / ss_tot) if ss_tot != 0 else 0.0
        r_squared = max(0.0, min(1.0, r_squared))

        return RegressionResult(slope=slope, intercept=intercept, r_squared=r_squared)

    @staticmethod
    def split_halves(values: List[float]) -> Tuple[List[float], List[float]]:
        """Split a window into first and second half (odd middle goes to the second)."""
        mid = len(values) // 2
        return values[:mid], values[mid:]
