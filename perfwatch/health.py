"""
Per-metric performance levels and the composite 0-100 health score.

Levels come from each metric's ordered threshold table. The composite score
blends one sub-score per weighted metric:

- higher-is-better: ``min(100, 100 * value / target)``
- higher-is-worse:  ``max(0, 100 - penalty * value)``

Weights are normalized at configuration time. When a weighted metric has not
been measured yet, the remaining weights are renormalized so the score stays
on the 0-100 scale.
"""

import math
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from perfwatch.config.schema import MetricDirection, MetricPolicy
from perfwatch.exceptions import MetricNotFoundError


class PerformanceLevel(str, Enum):
    """Discrete performance levels, best first."""
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    CRITICAL = "Critical"

    @property
    def score(self) -> int:
        """Level score: 5 for Excellent down to 1 for Critical."""
        return _LEVEL_SCORES[self]

    @classmethod
    def from_name(cls, name: str) -> "PerformanceLevel":
        return cls[name.upper()]

    def is_worse_than(self, other: "PerformanceLevel") -> bool:
        return self.score < other.score


_LEVEL_SCORES = {
    PerformanceLevel.EXCELLENT: 5,
    PerformanceLevel.GOOD: 4,
    PerformanceLevel.FAIR: 3,
    PerformanceLevel.POOR: 2,
    PerformanceLevel.CRITICAL: 1,
}


@dataclass(frozen=True)
class LevelResult:
    """Classification of one metric value."""
    metric: str
    level: PerformanceLevel
    value: float
    threshold: float

    @property
    def score(self) -> int:
        return self.level.score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "level": self.level.value,
            "score": self.score,
            "value": self.value,
            "threshold": self.threshold,
        }


@dataclass
class HealthReport:
    """A freshly computed health snapshot."""
    score: int
    computed_at: float
    sub_scores: Dict[str, float] = field(default_factory=dict)
    levels: Dict[str, LevelResult] = field(default_factory=dict)
    missing_metrics: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["levels"] = {name: result.to_dict() for name, result in self.levels.items()}
        return data


class HealthScorer:
    """Classifies metric values and combines them into one health score."""

    def __init__(self, policies: Mapping[str, MetricPolicy]):
        self.policies = dict(policies)

    def level(self, metric: str, value: float) -> LevelResult:
        """
        Walk the metric's thresholds best to worst and return the first level
        the value satisfies (boundaries inclusive).

        Only a value strictly past the ``critical`` boundary is Critical; one
        between the ``poor`` and ``critical`` boundaries is Poor.

        Raises:
            MetricNotFoundError: metric has no threshold table
        """
        policy = self.policies.get(metric)
        if policy is None or policy.thresholds is None:
            raise MetricNotFoundError(metric)

        higher_is_better = policy.direction == MetricDirection.HIGHER_IS_BETTER
        boundaries = policy.thresholds.boundaries()
        *graded, (_, critical) = boundaries
        for name, boundary in graded:
            satisfied = value >= boundary if higher_is_better else value <= boundary
            if satisfied:
                return LevelResult(
                    metric=metric,
                    level=PerformanceLevel.from_name(name),
                    value=value,
                    threshold=boundary,
                )

        past_critical = value < critical if higher_is_better else value > critical
        if past_critical:
            return LevelResult(metric=metric, level=PerformanceLevel.CRITICAL, value=value, threshold=critical)
        return LevelResult(metric=metric, level=PerformanceLevel.POOR, value=value, threshold=graded[-1][1])

    def classify(self, values: Mapping[str, float]) -> Dict[str, LevelResult]:
        """Level for every measured metric that has thresholds."""
        return {
            metric: self.level(metric, value)
            for metric, value in values.items()
            if metric in self.policies and self.policies[metric].thresholds is not None
        }

    def sub_score(self, metric: str, value: float) -> float:
        """0-100 sub-score of one weighted metric."""
        policy = self.policies.get(metric)
        if policy is None:
            raise MetricNotFoundError(metric)

        if policy.direction == MetricDirection.HIGHER_IS_BETTER:
            if not policy.target:
                return 0.0
            return max(0.0, min(100.0, 100.0 * value / policy.target))
        if policy.penalty is None:
            return 100.0
        return max(0.0, min(100.0, 100.0 - policy.penalty * value))

    def composite_score(self, values: Mapping[str, float]) -> Optional[int]:
        """Weighted, floored 0-100 score; None when no weighted metric is measured."""
        report = self.evaluate(values, now=0.0)
        return report.score if report else None

    def evaluate(self, values: Mapping[str, float], now: float) -> Optional[HealthReport]:
        """Compute sub-scores, levels and the composite score in one pass."""
        weighted = {name: p for name, p in self.policies.items() if p.weight > 0}
        present = {name: p for name, p in weighted.items() if name in values}
        if not present:
            return None

        sub_scores = {name: self.sub_score(name, values[name]) for name in present}
        total_weight = sum(p.weight for p in present.values())
        blended = sum(sub_scores[name] * p.weight for name, p in present.items()) / total_weight

        return HealthReport(
            score=int(math.floor(blended + 1e-9)),
            computed_at=now,
            sub_scores=sub_scores,
            levels=self.classify(values),
            missing_metrics=sorted(set(weighted) - set(present)),
        )
