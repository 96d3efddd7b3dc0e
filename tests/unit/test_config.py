"""
Tests for the perfwatch configuration system

Covers:
- Schema validation (thresholds ordering, weights, intervals)
- Loader precedence (overrides > env > file > defaults)
- Environment variable parsing
- Error handling surfaced as ConfigurationError
"""

import json

import pytest
import yaml
from pydantic import ValidationError

from perfwatch.config import (
    ConfigLoader,
    EngineConfig,
    IntervalsConfig,
    MetricDirection,
    MetricPolicy,
    ThresholdTable,
    load_config,
    parse_config,
)
from perfwatch.exceptions import EXIT_CONFIGURATION_ERROR, ConfigurationError


def policies(weight_a=0.5, weight_b=0.5):
    return {
        "a": {
            "direction": "higher_is_better",
            "thresholds": {"excellent": 50, "good": 40, "fair": 30, "poor": 20, "critical": 10},
            "weight": weight_a,
            "target": 50,
        },
        "b": {
            "thresholds": {"excellent": 1, "good": 2, "fair": 3, "poor": 4, "critical": 5},
            "weight": weight_b,
            "penalty": 10,
        },
    }


class TestSchemaValidation:
    """Pydantic schema validation."""

    def test_defaults_are_valid(self):
        config = EngineConfig()

        assert set(config.weighted_metrics()) == {
            "frame_rate", "cpu_percent", "memory_mb", "network_latency_ms",
        }
        assert config.metrics["frame_rate"].direction == MetricDirection.HIGHER_IS_BETTER
        assert config.metrics["concurrent_users"].weight == 0
        assert config.alerting.cooldown_seconds == 60
        assert config.alerting.escalation_seconds == 300
        assert config.anomaly.sensitivity == 2.0

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError) as exc_info:
            EngineConfig(metrics=policies(0.5, 0.4))
        assert "sum to 1.0" in str(exc_info.value)

    def test_weights_within_tolerance(self):
        config = EngineConfig(metrics=policies(0.5, 0.5 + 1e-7))
        assert len(config.weighted_metrics()) == 2

    def test_at_least_one_weighted_metric(self):
        with pytest.raises(ValidationError):
            EngineConfig(metrics=policies(0.0, 0.0))

    def test_higher_is_worse_thresholds_must_ascend(self):
        with pytest.raises(ValidationError) as exc_info:
            MetricPolicy(thresholds=ThresholdTable(excellent=5, good=4, fair=3, poor=2, critical=1))
        assert "ascending" in str(exc_info.value)

    def test_higher_is_better_thresholds_must_descend(self):
        with pytest.raises(ValidationError) as exc_info:
            MetricPolicy(
                direction=MetricDirection.HIGHER_IS_BETTER,
                thresholds=ThresholdTable(excellent=1, good=2, fair=3, poor=4, critical=5),
            )
        assert "descending" in str(exc_info.value)

    def test_thresholds_must_be_strict(self):
        with pytest.raises(ValidationError):
            MetricPolicy(thresholds=ThresholdTable(excellent=1, good=2, fair=2, poor=4, critical=5))

    def test_weighted_metric_needs_scale(self):
        with pytest.raises(ValidationError):
            MetricPolicy(direction=MetricDirection.HIGHER_IS_BETTER, weight=0.5)
        with pytest.raises(ValidationError):
            MetricPolicy(weight=0.5)

    @pytest.mark.parametrize("field", [
        "collection_seconds", "alert_evaluation_seconds", "analysis_seconds", "cleanup_seconds",
    ])
    def test_intervals_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            IntervalsConfig(**{field: 0})

    def test_high_severity_not_below_sensitivity(self):
        with pytest.raises(ValidationError):
            EngineConfig(anomaly={"sensitivity": 3.0, "high_severity_sigma": 2.5})

    def test_metric_names_are_lowercased(self):
        data = policies()
        data["Frame_Rate"] = data.pop("a")
        config = EngineConfig(metrics=data)

        assert "frame_rate" in config.metrics

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(alerting={"cooldown": 5})

    def test_serialization(self):
        data = json.loads(EngineConfig().to_json())
        assert data["metrics"]["frame_rate"]["direction"] == "higher_is_better"
        assert EngineConfig().to_dict()["windows"]["history_size"] == 3600


class TestParseConfig:

    def test_wraps_validation_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config({"metrics": policies(0.9, 0.9)})
        assert exc_info.value.exit_code == EXIT_CONFIGURATION_ERROR

    def test_empty_mapping_gives_defaults(self):
        assert parse_config({}) == EngineConfig()


class TestConfigLoader:
    """Configuration loading and precedence."""

    def test_defaults_only(self):
        config = load_config(environ={})
        assert config == EngineConfig()

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "perfwatch.yaml"
        path.write_text(yaml.safe_dump({"alerting": {"cooldown_seconds": 15}}))

        config = load_config(path, environ={})

        assert config.alerting.cooldown_seconds == 15
        assert config.alerting.escalation_seconds == 300

    def test_json_file(self, tmp_path):
        path = tmp_path / "perfwatch.json"
        path.write_text(json.dumps({"windows": {"baseline_samples": 20}}))

        assert load_config(path, environ={}).windows.baseline_samples == 20

    def test_file_metrics_replace_defaults(self, tmp_path):
        path = tmp_path / "perfwatch.yaml"
        path.write_text(yaml.safe_dump({"metrics": policies()}))

        config = load_config(path, environ={})

        assert set(config.metrics) == {"a", "b"}

    def test_environment_beats_file(self, tmp_path):
        path = tmp_path / "perfwatch.yaml"
        path.write_text(yaml.safe_dump({"alerting": {"cooldown_seconds": 15}}))
        environ = {
            "PERFWATCH_ALERTING__COOLDOWN_SECONDS": "30",
            "PERFWATCH_TELEMETRY__ENABLE_PROMETHEUS": "true",
            "PERFWATCH_NOTIFICATIONS__WEBHOOK_HEADERS": '{"X-Token": "abc"}',
            "OTHER_VARIABLE": "ignored",
        }

        config = load_config(path, environ=environ)

        assert config.alerting.cooldown_seconds == 30
        assert config.telemetry.enable_prometheus is True
        assert config.notifications.webhook_headers == {"X-Token": "abc"}

    def test_environment_reaches_metric_policies(self):
        environ = {
            "PERFWATCH_METRICS__FRAME_RATE__TARGET": "30",
            "PERFWATCH_METRICS__MEMORY_MB__UNIT": "MiB",
        }

        config = load_config(environ=environ)

        assert config.metrics["frame_rate"].target == 30
        assert config.metrics["memory_mb"].unit == "MiB"

    def test_overrides_beat_environment(self):
        environ = {"PERFWATCH_ANOMALY__SENSITIVITY": "2.5"}

        config = load_config(overrides={"anomaly": {"sensitivity": 1.5}}, environ=environ)

        assert config.anomaly.sensitivity == 1.5

    def test_invalid_environment_value(self):
        with pytest.raises(ConfigurationError):
            load_config(environ={"PERFWATCH_INTERVALS__COLLECTION_SECONDS": "-1"})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "missing.yaml", environ={})
        assert "not found" in str(exc_info.value)

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "perfwatch.toml"
        path.write_text("x = 1")

        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "perfwatch.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "perfwatch.yaml"
        path.write_text("alerting: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    @pytest.mark.parametrize("raw,expected", [
        ("true", True),
        ("False", False),
        ("42", 42),
        ("2.5", 2.5),
        ("[1, 2]", [1, 2]),
        ("{\"a\": 1}", {"a": 1}),
        ("text", "text"),
        ("[not json", "[not json"),
    ])
    def test_env_value_conversion(self, raw, expected):
        assert ConfigLoader(environ={})._convert_env_value(raw) == expected

    def test_deep_merge(self):
        loader = ConfigLoader(environ={})
        merged = loader._deep_merge(
            {"a": {"x": 1, "y": 2}, "b": 1},
            {"a": {"y": 3}, "c": 4},
        )
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
