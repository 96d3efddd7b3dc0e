"""
perfwatch - Real-time performance telemetry and anomaly-detection engine

Samples health metrics of a live multiplayer session (frame rate, CPU, memory,
network latency, concurrent users), keeps rolling baselines, detects anomalies
and trends, scores overall health and raises, escalates and resolves
threshold alerts.

Main Components:
- MetricSeriesStore: fixed-capacity sample history per metric
- BaselineEstimator / TrendAnalyzer / AnomalyDetector: rolling analysis
- HealthScorer: performance levels and the weighted 0-100 health score
- AlertManager / AlertDispatcher: alert lifecycle and notifications
- RecommendationEngine: bottleneck and actionable recommendations
- PerformanceEngine: owns all of the above and runs the periodic cycles

Exit Codes (90-99):
- 91: Invalid configuration
- 92: Unknown metric
- 93: Unknown alert
- 94: Notification failure
- 95: Engine lifecycle misuse
- 99: General engine error
"""

from importlib import import_module
from typing import Any

from perfwatch.__version__ import __version__, __version_info__

__all__ = [
    "__version__",
    "__version_info__",
    # Engine
    "PerformanceEngine",
    "AnalysisResult",
    # Configuration
    "EngineConfig",
    "MetricPolicy",
    "ThresholdTable",
    "MetricDirection",
    "load_config",
    # Components
    "MetricSample",
    "MetricSeriesStore",
    "Baseline",
    "BaselineEstimator",
    "Trend",
    "TrendDirection",
    "TrendAnalyzer",
    "Anomaly",
    "AnomalySeverity",
    "AnomalyDetector",
    "PerformanceLevel",
    "LevelResult",
    "HealthReport",
    "HealthScorer",
    "Alert",
    "AlertEvent",
    "AlertEventKind",
    "AlertManager",
    "AlertDispatcher",
    "LogChannel",
    "WebhookChannel",
    "Bottleneck",
    "Recommendation",
    "RecommendationEngine",
    "MetricSource",
    "CallableMetricSource",
    "StaticMetricSource",
    # Errors
    "PerfwatchError",
    "ConfigurationError",
    "MetricNotFoundError",
    "AlertNotFoundError",
    "NotificationError",
    "EngineStateError",
]

_EXPORTS = {
    "PerformanceEngine": "perfwatch.engine",
    "AnalysisResult": "perfwatch.engine",
    "EngineConfig": "perfwatch.config.schema",
    "MetricPolicy": "perfwatch.config.schema",
    "ThresholdTable": "perfwatch.config.schema",
    "MetricDirection": "perfwatch.config.schema",
    "load_config": "perfwatch.config.loader",
    "MetricSample": "perfwatch.store",
    "MetricSeriesStore": "perfwatch.store",
    "Baseline": "perfwatch.baseline",
    "BaselineEstimator": "perfwatch.baseline",
    "Trend": "perfwatch.trend",
    "TrendDirection": "perfwatch.trend",
    "TrendAnalyzer": "perfwatch.trend",
    "Anomaly": "perfwatch.anomaly",
    "AnomalySeverity": "perfwatch.anomaly",
    "AnomalyDetector": "perfwatch.anomaly",
    "PerformanceLevel": "perfwatch.health",
    "LevelResult": "perfwatch.health",
    "HealthReport": "perfwatch.health",
    "HealthScorer": "perfwatch.health",
    "Alert": "perfwatch.alerting",
    "AlertEvent": "perfwatch.alerting",
    "AlertEventKind": "perfwatch.alerting",
    "AlertManager": "perfwatch.alerting",
    "AlertDispatcher": "perfwatch.alerting",
    "LogChannel": "perfwatch.alerting",
    "WebhookChannel": "perfwatch.alerting",
    "Bottleneck": "perfwatch.recommendations",
    "Recommendation": "perfwatch.recommendations",
    "RecommendationEngine": "perfwatch.recommendations",
    "MetricSource": "perfwatch.sources",
    "CallableMetricSource": "perfwatch.sources",
    "StaticMetricSource": "perfwatch.sources",
    "PerfwatchError": "perfwatch.exceptions",
    "ConfigurationError": "perfwatch.exceptions",
    "MetricNotFoundError": "perfwatch.exceptions",
    "AlertNotFoundError": "perfwatch.exceptions",
    "NotificationError": "perfwatch.exceptions",
    "EngineStateError": "perfwatch.exceptions",
}


# Lazy imports keep `import perfwatch` free of pydantic/httpx/prometheus cost
def __getattr__(name: str) -> Any:
    """Lazy import of package components."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(import_module(module_name), name)
