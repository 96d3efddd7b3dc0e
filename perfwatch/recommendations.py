"""
Bottleneck identification and actionable recommendations.

The bottleneck is single-winner: the weighted metric with the lowest
sub-score, reported only when its level is significant. Recommendations are
one per significant metric, drawn from each metric's configured message, plus
low-priority advisories for metrics whose recent High anomalies are not
already covered.
"""

import logging
import threading
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from perfwatch.anomaly import Anomaly, AnomalySeverity
from perfwatch.config.schema import MetricPolicy
from perfwatch.health import HealthReport

logger = logging.getLogger(__name__)

PRIORITY_BY_LEVEL_SCORE = {1: "critical", 2: "high", 3: "medium", 4: "low", 5: "low"}


@dataclass(frozen=True)
class Bottleneck:
    """The worst-performing metric of one analysis cycle."""
    metric: str
    severity: str  # level name
    level_score: int
    sub_score: float
    value: float
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Recommendation:
    """A human-readable suggestion tied to one metric."""
    type: str  # "performance" | "anomaly"
    priority: str
    message: str
    metric: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RecommendationSet:
    """Output of one ``analyze`` call."""
    computed_at: float
    bottleneck: Optional[Bottleneck] = None
    recommendations: List[Recommendation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "computed_at": self.computed_at,
            "bottleneck": self.bottleneck.to_dict() if self.bottleneck else None,
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


class RecommendationEngine:
    """Turns a health report (and recent anomalies) into recommendations."""

    def __init__(self, policies: Mapping[str, MetricPolicy], significant_level_score: int = 3):
        self.policies = dict(policies)
        self.significant_level_score = significant_level_score
        self._latest: Optional[RecommendationSet] = None
        self._lock = threading.Lock()

    def _message(self, metric: str, fallback: str) -> str:
        policy = self.policies.get(metric)
        if policy is not None and policy.recommendation:
            return policy.recommendation
        return fallback

    def _unit(self, metric: str) -> str:
        policy = self.policies.get(metric)
        return policy.unit if policy is not None else ""

    def find_bottleneck(self, report: HealthReport) -> Optional[Bottleneck]:
        """Lowest sub-score among weighted, classified metrics, if significant."""
        candidates = [name for name in report.sub_scores if name in report.levels]
        if not candidates:
            return None

        worst = min(candidates, key=lambda name: (report.sub_scores[name], report.levels[name].score))
        level = report.levels[worst]
        if level.score > self.significant_level_score:
            return None

        return Bottleneck(
            metric=worst,
            severity=level.level.value,
            level_score=level.score,
            sub_score=report.sub_scores[worst],
            value=level.value,
            timestamp=report.computed_at,
        )

    def analyze(
        self,
        report: Optional[HealthReport],
        anomalies: Iterable[Anomaly] = (),
        now: float = 0.0,
    ) -> RecommendationSet:
        """
        Build the recommendation set for the current cycle and keep it as the
        latest one.

        Args:
            report: Current health report (None before any weighted metric arrives)
            anomalies: Recent anomalies to consider for advisories
            now: Analysis time
        """
        result = RecommendationSet(computed_at=now)

        if report is not None:
            result.bottleneck = self.find_bottleneck(report)

            significant = sorted(
                (lvl for lvl in report.levels.values() if lvl.score <= self.significant_level_score),
                key=lambda lvl: (lvl.score, report.sub_scores.get(lvl.metric, 100.0)),
            )
            for lvl in significant:
                unit = self._unit(lvl.metric)
                fallback = (
                    f"Investigate {lvl.metric}: currently {lvl.level.value} "
                    f"at {lvl.value:g}{unit}"
                )
                result.recommendations.append(Recommendation(
                    type="performance",
                    priority=PRIORITY_BY_LEVEL_SCORE[lvl.score],
                    message=self._message(lvl.metric, fallback),
                    metric=lvl.metric,
                    value=lvl.value,
                ))

        covered = {r.metric for r in result.recommendations}
        latest_high: Dict[str, Anomaly] = {}
        for anomaly in anomalies:
            if anomaly.severity == AnomalySeverity.HIGH and anomaly.metric not in covered:
                latest_high[anomaly.metric] = anomaly

        for metric, anomaly in sorted(latest_high.items()):
            hint = self._message(metric, "check recent changes affecting this metric")
            result.recommendations.append(Recommendation(
                type="anomaly",
                priority="low",
                message=(
                    f"{metric} {anomaly.direction} of {anomaly.deviation_sigma:.1f} sigma "
                    f"from baseline {anomaly.baseline_mean:g}: {hint}"
                ),
                metric=metric,
                value=anomaly.value,
            ))

        if result.bottleneck:
            logger.info(
                f"Bottleneck: {result.bottleneck.metric} ({result.bottleneck.severity})",
                extra={"context": result.bottleneck.to_dict()},
            )

        with self._lock:
            self._latest = result
        return result

    def latest(self) -> Optional[RecommendationSet]:
        with self._lock:
            return self._latest
