"""
Unit tests for performance levels and the composite health score.

Covers level walking (boundary-inclusive, best first), sub-scores, weighting
and flooring. The default thresholds are only used where the mechanism is
easier to read against them; exact default scores are not pinned.
"""

import pytest

from perfwatch.exceptions import MetricNotFoundError
from perfwatch.health import HealthScorer, PerformanceLevel


class TestPerformanceLevel:

    def test_scores(self):
        assert [level.score for level in PerformanceLevel] == [5, 4, 3, 2, 1]

    def test_from_name(self):
        assert PerformanceLevel.from_name("critical") == PerformanceLevel.CRITICAL
        assert PerformanceLevel.from_name("Fair") == PerformanceLevel.FAIR

    def test_is_worse_than(self):
        assert PerformanceLevel.POOR.is_worse_than(PerformanceLevel.FAIR)
        assert not PerformanceLevel.GOOD.is_worse_than(PerformanceLevel.FAIR)


class TestLevelClassification:
    """Walking threshold tables."""

    @pytest.fixture
    def scorer(self, small_config):
        return HealthScorer(small_config.metrics)

    @pytest.mark.parametrize("value,expected", [
        (100, PerformanceLevel.EXCELLENT),
        (90, PerformanceLevel.EXCELLENT),
        (89.9, PerformanceLevel.GOOD),
        (70, PerformanceLevel.GOOD),
        (50, PerformanceLevel.FAIR),
        (30, PerformanceLevel.POOR),
        (29.9, PerformanceLevel.POOR),
        (15, PerformanceLevel.POOR),
        (10, PerformanceLevel.POOR),
        (9.9, PerformanceLevel.CRITICAL),
        (2, PerformanceLevel.CRITICAL),
    ])
    def test_higher_is_better(self, scorer, value, expected):
        assert scorer.level("throughput", value).level == expected

    @pytest.mark.parametrize("value,expected", [
        (0, PerformanceLevel.EXCELLENT),
        (10, PerformanceLevel.EXCELLENT),
        (10.1, PerformanceLevel.GOOD),
        (30, PerformanceLevel.FAIR),
        (40, PerformanceLevel.POOR),
        (40.1, PerformanceLevel.POOR),
        (50, PerformanceLevel.POOR),
        (50.1, PerformanceLevel.CRITICAL),
        (500, PerformanceLevel.CRITICAL),
    ])
    def test_higher_is_worse(self, scorer, value, expected):
        assert scorer.level("lag", value).level == expected

    def test_result_carries_matched_boundary(self, scorer):
        result = scorer.level("lag", 25)

        assert result.threshold == 30
        assert result.score == 3
        assert result.value == 25
        assert result.to_dict()["level"] == "Fair"

    def test_beyond_critical_reports_critical_boundary(self, scorer):
        assert scorer.level("throughput", 1).threshold == 10
        assert scorer.level("lag", 75).threshold == 50

    def test_classification_is_idempotent(self, scorer):
        assert scorer.level("lag", 33.3) == scorer.level("lag", 33.3)

    def test_unknown_metric(self, scorer):
        with pytest.raises(MetricNotFoundError):
            scorer.level("nope", 1.0)

    def test_tracked_only_metric_has_no_level(self, scorer):
        with pytest.raises(MetricNotFoundError):
            scorer.level("sessions", 10)

    def test_classify_skips_unclassifiable(self, scorer):
        levels = scorer.classify({"throughput": 95, "sessions": 10, "unknown": 1})
        assert set(levels) == {"throughput"}

    def test_default_frame_rate_is_higher_is_better(self, default_config):
        scorer = HealthScorer(default_config.metrics)

        assert scorer.level("frame_rate", 60).level == PerformanceLevel.EXCELLENT
        assert scorer.level("frame_rate", 8).level == PerformanceLevel.CRITICAL
        assert scorer.level("cpu_percent", 99).level == PerformanceLevel.CRITICAL

    def test_band_between_poor_and_critical_is_poor(self, default_config):
        scorer = HealthScorer(default_config.metrics)

        cpu = scorer.level("cpu_percent", 88.0)
        assert cpu.level == PerformanceLevel.POOR
        assert cpu.threshold == 85
        frame = scorer.level("frame_rate", 15.0)
        assert frame.level == PerformanceLevel.POOR
        assert frame.threshold == 20

    def test_critical_only_past_critical_boundary(self, scorer):
        assert scorer.level("throughput", 10).level == PerformanceLevel.POOR
        assert scorer.level("throughput", 9).threshold == 10
        assert scorer.level("lag", 50).level == PerformanceLevel.POOR
        assert scorer.level("lag", 51).threshold == 50


class TestCompositeScore:
    """Weighted sub-scores."""

    @pytest.fixture
    def scorer(self, small_config):
        return HealthScorer(small_config.metrics)

    def test_sub_score_higher_is_better_caps_at_100(self, scorer):
        assert scorer.sub_score("throughput", 50) == pytest.approx(50.0)
        assert scorer.sub_score("throughput", 250) == 100.0

    def test_sub_score_higher_is_worse_floors_at_0(self, scorer):
        assert scorer.sub_score("lag", 20) == pytest.approx(80.0)
        assert scorer.sub_score("lag", 250) == 0.0

    def test_weighted_combination(self, scorer):
        assert scorer.composite_score({"throughput": 50, "lag": 20}) == 65

    def test_result_is_floored(self, scorer):
        # 0.5 * 51 + 0.5 * 80 = 65.5
        assert scorer.composite_score({"throughput": 51, "lag": 20}) == 65

    def test_perfect_values_score_100(self, scorer):
        assert scorer.composite_score({"throughput": 100, "lag": 0}) == 100

    def test_missing_weighted_metric_renormalizes(self, scorer):
        report = scorer.evaluate({"throughput": 50}, now=1.0)

        assert report.score == 50
        assert report.missing_metrics == ["lag"]

    def test_nothing_measured(self, scorer):
        assert scorer.composite_score({"sessions": 10}) is None
        assert scorer.evaluate({}, now=0.0) is None

    def test_report_contents(self, scorer):
        report = scorer.evaluate({"throughput": 95, "lag": 35, "sessions": 4}, now=12.0)

        assert report.computed_at == 12.0
        assert set(report.sub_scores) == {"throughput", "lag"}
        assert report.levels["lag"].level == PerformanceLevel.POOR
        assert report.to_dict()["levels"]["throughput"]["level"] == "Excellent"

    def test_default_weights_are_normalized(self, default_config):
        weights = [p.weight for p in default_config.weighted_metrics().values()]
        assert sum(weights) == pytest.approx(1.0, abs=1e-6)

    def test_default_score_stays_in_range(self, default_config):
        scorer = HealthScorer(default_config.metrics)
        worst = scorer.composite_score({
            "frame_rate": 0, "cpu_percent": 100, "memory_mb": 5000, "network_latency_ms": 2000,
        })
        best = scorer.composite_score({
            "frame_rate": 60, "cpu_percent": 0, "memory_mb": 0, "network_latency_ms": 0,
        })

        assert worst == 0
        assert best == 100
