"""
Configuration Schema Definitions for perfwatch

Uses Pydantic for validation and type safety. Every threshold, window size,
interval, cooldown and weight the engine uses comes from here; an invalid
configuration is rejected before any component is built.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

WEIGHT_TOLERANCE = 1e-6

LEVEL_NAMES = ("excellent", "good", "fair", "poor", "critical")


class MetricDirection(str, Enum):
    """Which way a metric gets worse."""
    HIGHER_IS_BETTER = "higher_is_better"
    HIGHER_IS_WORSE = "higher_is_worse"


class ThresholdTable(BaseModel):
    """
    Boundaries for the five performance levels of one metric.

    For higher-is-worse metrics the boundaries are upper bounds and must
    ascend from excellent to critical; for higher-is-better metrics they are
    lower bounds and must descend.
    """

    model_config = ConfigDict(extra="forbid")

    excellent: float
    good: float
    fair: float
    poor: float
    critical: float

    def boundaries(self) -> List[Tuple[str, float]]:
        """Level boundaries ordered best to worst."""
        return [(name, getattr(self, name)) for name in LEVEL_NAMES]

    def is_strictly_ordered(self, direction: MetricDirection) -> bool:
        values = [value for _, value in self.boundaries()]
        pairs = list(zip(values, values[1:]))
        if direction == MetricDirection.HIGHER_IS_WORSE:
            return all(a < b for a, b in pairs)
        return all(a > b for a, b in pairs)


class MetricPolicy(BaseModel):
    """How one metric is classified, scored and explained."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    direction: MetricDirection = Field(
        default=MetricDirection.HIGHER_IS_WORSE,
        description="Whether larger values are better or worse"
    )
    thresholds: Optional[ThresholdTable] = Field(
        default=None,
        description="Level boundaries; metrics without thresholds are tracked only"
    )
    weight: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Weight in the composite health score (0 = not scored)"
    )
    target: Optional[float] = Field(
        default=None,
        description="Value that earns a full sub-score (higher-is-better metrics)"
    )
    penalty: Optional[float] = Field(
        default=None,
        description="Sub-score points lost per unit (higher-is-worse metrics)"
    )
    unit: str = Field(default="", description="Display unit")
    recommendation: Optional[str] = Field(
        default=None,
        description="Actionable suggestion shown when this metric degrades"
    )

    @model_validator(mode="after")
    def check_policy(self) -> "MetricPolicy":
        """Thresholds must be strictly ordered; weighted metrics need a scale."""
        if self.thresholds is not None and not self.thresholds.is_strictly_ordered(self.direction):
            order = "ascending" if self.direction == MetricDirection.HIGHER_IS_WORSE else "descending"
            raise ValueError(
                f"thresholds must be strictly {order} from excellent to critical "
                f"for {self.direction.value} metrics"
            )
        if self.weight > 0:
            if self.direction == MetricDirection.HIGHER_IS_BETTER and not (self.target and self.target > 0):
                raise ValueError("weighted higher_is_better metrics need target > 0")
            if self.direction == MetricDirection.HIGHER_IS_WORSE and not (self.penalty and self.penalty > 0):
                raise ValueError("weighted higher_is_worse metrics need penalty > 0")
        return self


class IntervalsConfig(BaseModel):
    """Periodic task cadences (seconds)."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    collection_seconds: float = Field(default=1.0, gt=0, description="Metric collection tick")
    alert_evaluation_seconds: float = Field(default=5.0, gt=0, description="Alert evaluation cycle")
    analysis_seconds: float = Field(default=30.0, gt=0, description="Baseline/trend/anomaly refresh")
    cleanup_seconds: float = Field(default=300.0, gt=0, description="History cleanup")


class WindowsConfig(BaseModel):
    """Buffer capacities and analysis windows."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    history_size: int = Field(default=3600, gt=0, description="Samples retained per metric")
    baseline_samples: int = Field(default=100, gt=0, description="Samples required for a baseline")
    trend_window_seconds: float = Field(default=300.0, gt=0, description="Trend look-back window")
    anomaly_log_size: int = Field(default=100, gt=0, description="Anomaly log capacity")
    alert_history_size: int = Field(default=1000, gt=0, description="Resolved alert history capacity")
    retention_seconds: float = Field(default=3600.0, gt=0, description="Age limit applied by cleanup")


class AlertingConfig(BaseModel):
    """Alert lifecycle timing."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    cooldown_seconds: float = Field(default=60.0, gt=0, description="Minimum gap between alerts per metric")
    escalation_seconds: float = Field(default=300.0, gt=0, description="Critical alert escalation deadline")


class AnomalyConfig(BaseModel):
    """Z-score anomaly detection."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    sensitivity: float = Field(default=2.0, gt=0, description="Z-score above which a sample is anomalous")
    high_severity_sigma: float = Field(default=3.0, gt=0, description="Z-score above which severity is High")

    @model_validator(mode="after")
    def check_order(self) -> "AnomalyConfig":
        if self.high_severity_sigma < self.sensitivity:
            raise ValueError("high_severity_sigma must be >= sensitivity")
        return self


class RecommendationsConfig(BaseModel):
    """Bottleneck / recommendation cutoffs."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    significant_level_score: int = Field(
        default=3,
        ge=1,
        le=5,
        description="Level score (1-5) at or below which a metric is significant"
    )


class TelemetryConfig(BaseModel):
    """Internal telemetry and logging configuration."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    enable_prometheus: bool = Field(
        default=False,
        description="Serve Prometheus metrics for engine internals"
    )
    prometheus_port: int = Field(default=9108, gt=0, description="Prometheus exporter port")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: Literal["json", "text"] = Field(default="json", description="Log output format")
    log_file: Optional[Path] = Field(default=None, description="Log file path (None for stdout only)")


class NotificationConfig(BaseModel):
    """Operator notification channels."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    enable_log_channel: bool = Field(default=True, description="Emit alert events as log records")
    webhook_url: Optional[str] = Field(default=None, description="POST alert events to this URL")
    webhook_headers: Dict[str, str] = Field(default_factory=dict, description="Extra webhook headers")
    min_level: Literal["fair", "poor", "critical"] = Field(
        default="fair",
        description="Lowest alert level delivered to channels"
    )
    timeout_seconds: float = Field(default=5.0, gt=0, description="Per-channel delivery timeout")


def default_metric_policies() -> Dict[str, MetricPolicy]:
    """Empirically chosen defaults for a live multiplayer session."""
    return {
        "frame_rate": MetricPolicy(
            direction=MetricDirection.HIGHER_IS_BETTER,
            thresholds=ThresholdTable(excellent=55, good=45, fair=30, poor=20, critical=10),
            weight=0.4,
            target=60.0,
            unit="fps",
            recommendation="Reduce render load: lower part counts, particle effects and active animations",
        ),
        "cpu_percent": MetricPolicy(
            direction=MetricDirection.HIGHER_IS_WORSE,
            thresholds=ThresholdTable(excellent=30, good=50, fair=70, poor=85, critical=95),
            weight=0.3,
            penalty=1.0,
            unit="%",
            recommendation="Profile per-frame scripts and move heavy work off the frame loop",
        ),
        "memory_mb": MetricPolicy(
            direction=MetricDirection.HIGHER_IS_WORSE,
            thresholds=ThresholdTable(excellent=500, good=800, fair=1200, poor=1600, critical=2000),
            weight=0.2,
            penalty=0.05,
            unit="MB",
            recommendation="Release unused assets and check for leaked connections or caches",
        ),
        "network_latency_ms": MetricPolicy(
            direction=MetricDirection.HIGHER_IS_WORSE,
            thresholds=ThresholdTable(excellent=50, good=100, fair=200, poor=300, critical=500),
            weight=0.1,
            penalty=0.2,
            unit="ms",
            recommendation="Batch remote calls and reduce replication frequency",
        ),
        "concurrent_users": MetricPolicy(
            direction=MetricDirection.HIGHER_IS_WORSE,
            unit="users",
        ),
    }


class EngineConfig(BaseModel):
    """Root perfwatch configuration."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    metrics: Dict[str, MetricPolicy] = Field(
        default_factory=default_metric_policies,
        description="Per-metric classification and scoring policy"
    )
    intervals: IntervalsConfig = Field(default_factory=IntervalsConfig)
    windows: WindowsConfig = Field(default_factory=WindowsConfig)
    alerting: AlertingConfig = Field(default_factory=AlertingConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)
    recommendations: RecommendationsConfig = Field(default_factory=RecommendationsConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @field_validator("metrics", mode="before")
    @classmethod
    def normalize_metric_names(cls, v):
        """Metric names are case-insensitive."""
        if isinstance(v, dict):
            return {str(name).lower(): policy for name, policy in v.items()}
        return v

    @model_validator(mode="after")
    def check_weights(self) -> "EngineConfig":
        """Composite weights must be normalized."""
        weighted = {name: p.weight for name, p in self.metrics.items() if p.weight > 0}
        if not weighted:
            raise ValueError("at least one metric must carry a composite weight")
        total = sum(weighted.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"metric weights must sum to 1.0, got {total:.6f} ({weighted})")
        return self

    def weighted_metrics(self) -> Dict[str, MetricPolicy]:
        return {name: p for name, p in self.metrics.items() if p.weight > 0}

    def to_dict(self) -> dict:
        """Export configuration as dictionary."""
        return self.model_dump(mode="json", exclude_none=True)

    def to_json(self) -> str:
        """Export configuration as JSON string."""
        return self.model_dump_json(exclude_none=True, indent=2)
