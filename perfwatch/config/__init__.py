"""
Configuration System for perfwatch

Provides unified configuration loading with:
- Environment variable mapping
- YAML & JSON config file support
- Precedence rules (overrides > env > file > defaults)
- Schema validation via Pydantic
"""

from .loader import ConfigLoader, load_config, parse_config
from .schema import (
    LEVEL_NAMES,
    AlertingConfig,
    AnomalyConfig,
    EngineConfig,
    IntervalsConfig,
    MetricDirection,
    MetricPolicy,
    NotificationConfig,
    RecommendationsConfig,
    TelemetryConfig,
    ThresholdTable,
    WindowsConfig,
    default_metric_policies,
)

__all__ = [
    "ConfigLoader",
    "load_config",
    "parse_config",
    "LEVEL_NAMES",
    "AlertingConfig",
    "AnomalyConfig",
    "EngineConfig",
    "IntervalsConfig",
    "MetricDirection",
    "MetricPolicy",
    "NotificationConfig",
    "RecommendationsConfig",
    "TelemetryConfig",
    "ThresholdTable",
    "WindowsConfig",
    "default_metric_policies",
]
