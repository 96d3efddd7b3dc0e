"""
Performance Engine - single owner of all telemetry, analysis and alert state

Wires the components together and exposes the ingestion and query surface:

    sources --collect--> MetricSeriesStore
        --analysis--> BaselineEstimator -> TrendAnalyzer / AnomalyDetector
                      -> RecommendationEngine
        --alerts-->   HealthScorer -> AlertManager -> AlertDispatcher
        --cleanup-->  retention pruning

Each cycle is a plain synchronous method so hosts and tests can drive the
engine deterministically; ``start()``/``stop()`` run the same cycles as
independent periodic tasks on the asyncio event loop.

Usage:
    engine = PerformanceEngine(load_config("perfwatch.yaml"), sources=[probe])
    await engine.start()
    ...
    print(engine.get_health_score(), engine.get_active_alerts())
    await engine.stop()
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from perfwatch.alerting import (
    AlertDispatcher,
    Alert,
    AlertEvent,
    AlertEventKind,
    AlertManager,
    AlertStatistics,
    LogChannel,
    WebhookChannel,
)
from perfwatch.anomaly import Anomaly, AnomalyDetector
from perfwatch.baseline import Baseline, BaselineEstimator
from perfwatch.config.loader import parse_config
from perfwatch.config.schema import EngineConfig
from perfwatch.exceptions import EngineStateError, MetricNotFoundError
from perfwatch.health import HealthReport, HealthScorer, LevelResult, PerformanceLevel
from perfwatch.recommendations import (
    Bottleneck,
    Recommendation,
    RecommendationEngine,
    RecommendationSet,
)
from perfwatch.scheduler import PeriodicTaskRunner
from perfwatch.sources import MetricSource
from perfwatch.store import MetricSample, MetricSeriesStore
from perfwatch.telemetry import EngineTelemetry
from perfwatch.trend import Trend, TrendAnalyzer

logger = logging.getLogger(__name__)


def normalize_metric_name(metric: str) -> str:
    return str(metric).strip().lower()


@dataclass
class AnalysisResult:
    """What one analysis cycle produced."""
    computed_at: float
    baselines_updated: List[str] = field(default_factory=list)
    trends: Dict[str, Trend] = field(default_factory=dict)
    anomalies: List[Anomaly] = field(default_factory=list)
    recommendations: Optional[RecommendationSet] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "computed_at": self.computed_at,
            "baselines_updated": list(self.baselines_updated),
            "trends": {name: trend.to_dict() for name, trend in self.trends.items()},
            "anomalies": [a.to_dict() for a in self.anomalies],
            "recommendations": self.recommendations.to_dict() if self.recommendations else None,
        }


class PerformanceEngine:
    """
    Real-time performance telemetry, anomaly detection and alerting engine.

    All state is instance state; several engines can coexist in one process.
    """

    def __init__(
        self,
        config: Union[EngineConfig, Mapping[str, Any], None] = None,
        sources: Optional[Iterable[MetricSource]] = None,
        clock: Callable[[], float] = time.time,
        telemetry: Optional[EngineTelemetry] = None,
        dispatcher: Optional[AlertDispatcher] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Validated EngineConfig, or a raw mapping to validate
            sources: Metric sources polled by the collection cycle
            clock: Wall-clock function used to timestamp samples and cycles
            telemetry: Internal telemetry (a private registry by default)
            dispatcher: Notification dispatcher (built from config by default)

        Raises:
            ConfigurationError: raw configuration failed validation
        """
        if config is None:
            config = EngineConfig()
        elif not isinstance(config, EngineConfig):
            config = parse_config(config)
        self.config = config
        self.clock = clock
        self.sources: List[MetricSource] = list(sources or [])

        windows = config.windows
        self.store = MetricSeriesStore(history_size=windows.history_size)
        self.baselines = BaselineEstimator(self.store, required_samples=windows.baseline_samples)
        self.trends = TrendAnalyzer(self.store, window_seconds=windows.trend_window_seconds)
        self.anomalies = AnomalyDetector(
            self.store,
            self.baselines,
            sensitivity=config.anomaly.sensitivity,
            high_severity_sigma=config.anomaly.high_severity_sigma,
            log_size=windows.anomaly_log_size,
        )
        self.scorer = HealthScorer(config.metrics)
        self.alerts = AlertManager(
            cooldown_seconds=config.alerting.cooldown_seconds,
            escalation_seconds=config.alerting.escalation_seconds,
            history_size=windows.alert_history_size,
            messages={name: p.recommendation for name, p in config.metrics.items() if p.recommendation},
        )
        self.recommender = RecommendationEngine(
            config.metrics,
            significant_level_score=config.recommendations.significant_level_score,
        )

        self.telemetry = telemetry or EngineTelemetry(
            enable_prometheus=config.telemetry.enable_prometheus,
            prometheus_port=config.telemetry.prometheus_port,
        )
        self.dispatcher = dispatcher if dispatcher is not None else self._build_dispatcher()

        self.runner = PeriodicTaskRunner(telemetry=self.telemetry)
        intervals = config.intervals
        self.runner.add("collection", self.collect_once, intervals.collection_seconds)
        self.runner.add("alerts", self.run_alert_cycle, intervals.alert_evaluation_seconds)
        self.runner.add("analysis", self.run_analysis_cycle, intervals.analysis_seconds, offload=True)
        self.runner.add("cleanup", self.run_cleanup_cycle, intervals.cleanup_seconds)

        self._last_analysis: Optional[AnalysisResult] = None
        self._stopped = False

        logger.info(
            f"Performance engine initialized with {len(config.metrics)} metrics "
            f"({len(config.weighted_metrics())} weighted)",
            extra={"context": {"metrics": sorted(config.metrics)}},
        )

    def _build_dispatcher(self) -> AlertDispatcher:
        notifications = self.config.notifications
        min_level = PerformanceLevel.from_name(notifications.min_level)
        dispatcher = AlertDispatcher(timeout_seconds=notifications.timeout_seconds)
        if notifications.enable_log_channel:
            dispatcher.add_channel(LogChannel(min_level=min_level))
        if notifications.webhook_url:
            dispatcher.add_channel(WebhookChannel(
                notifications.webhook_url,
                headers=notifications.webhook_headers,
                min_level=min_level,
                timeout_seconds=notifications.timeout_seconds,
            ))
        return dispatcher

    # ========================================================================
    # Ingestion
    # ========================================================================

    def ingest(self, metric: str, value: float, timestamp: Optional[float] = None) -> bool:
        """
        Record one reading.

        Returns:
            False if the sample was rejected (non-numeric or non-finite value)
        """
        metric = normalize_metric_name(metric)
        if timestamp is None:
            timestamp = self.clock()
        if not self.store.ingest(metric, value, timestamp):
            self.telemetry.track_rejected_sample(metric)
            return False
        self.telemetry.track_sample(metric, float(value))
        return True

    def ingest_many(self, values: Mapping[str, float], timestamp: Optional[float] = None) -> int:
        """Record several readings taken at the same instant."""
        if timestamp is None:
            timestamp = self.clock()
        return sum(1 for metric, value in values.items() if self.ingest(metric, value, timestamp))

    def collect_once(self) -> int:
        """
        Poll every source once.

        A source that fails is logged and skipped; the others still report.

        Returns:
            Number of samples stored
        """
        now = self.clock()
        stored = 0
        for source in self.sources:
            try:
                readings = source.read()
            except Exception as e:
                logger.error(f"Metric source {source.name} failed: {e}")
                continue
            stored += self.ingest_many(readings, timestamp=now)
        return stored

    # ========================================================================
    # Cycles
    # ========================================================================

    def run_alert_cycle(self) -> List[AlertEvent]:
        """Classify current values and advance every alert's lifecycle."""
        now = self.clock()
        values = self.store.current_values()
        levels = self.scorer.classify(values)

        report = self.scorer.evaluate(values, now)
        if report is not None:
            self.telemetry.track_health_score(report.score)

        events = self.alerts.evaluate(levels, now)
        for event in events:
            if event.kind == AlertEventKind.CREATED:
                self.telemetry.track_alert_created(event.alert.metric_type, event.alert.level.value)
            elif event.kind == AlertEventKind.ESCALATED:
                self.telemetry.track_alert_escalated(event.alert.metric_type)
        self.telemetry.track_active_alerts(len(self.alerts.get_active()))

        self.dispatcher.submit(events)
        return events

    def run_analysis_cycle(self) -> AnalysisResult:
        """
        Refresh baselines, then trends and anomalies, then recommendations.

        Baselines are refreshed first so anomaly detection compares against the
        freshest reference available.
        """
        now = self.clock()
        result = AnalysisResult(computed_at=now)

        for metric in self.store.metrics():
            if self.baselines.recompute(metric, now) is not None:
                result.baselines_updated.append(metric)
            result.trends[metric] = self.trends.compute_trend(metric, now)
            anomaly = self.anomalies.detect(metric)
            if anomaly is not None:
                result.anomalies.append(anomaly)
                self.telemetry.track_anomaly(metric, anomaly.severity.value)

        report = self.scorer.evaluate(self.store.current_values(), now)
        advisory_since = now - self.config.windows.trend_window_seconds
        result.recommendations = self.recommender.analyze(
            report, self.anomalies.recent(since=advisory_since), now
        )

        self._last_analysis = result
        logger.debug(
            f"Analysis cycle: {len(result.baselines_updated)} baselines, "
            f"{len(result.trends)} trends, {len(result.anomalies)} anomalies"
        )
        return result

    def run_cleanup_cycle(self) -> Dict[str, int]:
        """Drop samples, anomalies and resolved alerts older than the retention window."""
        cutoff = self.clock() - self.config.windows.retention_seconds
        removed = {
            "samples": self.store.prune(cutoff),
            "anomalies": self.anomalies.prune(cutoff),
            "alerts": self.alerts.prune(cutoff),
        }
        if any(removed.values()):
            logger.info(f"Cleanup removed {removed}", extra={"context": removed})
        return removed

    # ========================================================================
    # Queries
    # ========================================================================

    def _require_metric(self, metric: str) -> str:
        metric = normalize_metric_name(metric)
        if not self.store.has_metric(metric):
            raise MetricNotFoundError(metric)
        return metric

    def get_current_metrics(self) -> Dict[str, float]:
        return self.store.current_values()

    def get_history(self, metric: str, window: int) -> List[MetricSample]:
        """Most recent ``window`` samples of ``metric``, chronological."""
        return self.store.snapshot(self._require_metric(metric), window)

    def get_baseline(self, metric: str) -> Optional[Baseline]:
        """Latest baseline, or None while history is too short."""
        return self.baselines.get(self._require_metric(metric))

    def get_trend(self, metric: str) -> Optional[Trend]:
        """Trend from the last analysis cycle, or None before the first one."""
        return self.trends.get(self._require_metric(metric))

    def compute_trend(self, metric: str, window_seconds: Optional[float] = None) -> Trend:
        """Compute the trend of ``metric`` now, over an optional custom window."""
        return self.trends.compute_trend(self._require_metric(metric), self.clock(), window_seconds)

    def get_level(self, metric: str) -> Optional[LevelResult]:
        """
        Current performance level of ``metric``.

        None for a known metric with no threshold table or with no samples
        left after retention cleanup.
        """
        metric = self._require_metric(metric)
        policy = self.config.metrics.get(metric)
        if policy is None or policy.thresholds is None:
            return None
        latest = self.store.latest(metric)
        if latest is None:
            return None
        return self.scorer.level(metric, latest.value)

    def get_active_alerts(self) -> List[Alert]:
        return self.alerts.get_active()

    def get_alert_history(self, limit: Optional[int] = None) -> List[Alert]:
        return self.alerts.get_history(limit)

    def get_alert(self, alert_id: str) -> Alert:
        return self.alerts.get(alert_id)

    def get_alert_statistics(self) -> AlertStatistics:
        return self.alerts.statistics()

    def acknowledge_alert(self, alert_id: str) -> bool:
        return self.alerts.acknowledge(alert_id, self.clock())

    def get_health_report(self) -> Optional[HealthReport]:
        """Freshly computed health report, None before any weighted metric is measured."""
        return self.scorer.evaluate(self.store.current_values(), self.clock())

    def get_health_score(self) -> Optional[int]:
        report = self.get_health_report()
        return report.score if report else None

    def get_recommendations(self) -> List[Recommendation]:
        """Recommendations from the last analysis cycle."""
        latest = self.recommender.latest()
        return list(latest.recommendations) if latest else []

    def get_bottleneck(self) -> Optional[Bottleneck]:
        latest = self.recommender.latest()
        return latest.bottleneck if latest else None

    def get_anomalies(self, since: Optional[float] = None) -> List[Anomaly]:
        return self.anomalies.recent(since)

    def get_last_analysis(self) -> Optional[AnalysisResult]:
        return self._last_analysis

    def status(self) -> Dict[str, Any]:
        """Summary suitable for a dashboard or JSON report."""
        report = self.get_health_report()
        return {
            "running": self.runner.running,
            "timestamp": self.clock(),
            "health_score": report.score if report else None,
            "current_metrics": self.get_current_metrics(),
            "levels": {name: lvl.to_dict() for name, lvl in report.levels.items()} if report else {},
            "active_alerts": [a.to_dict() for a in self.get_active_alerts()],
            "alert_statistics": self.get_alert_statistics().to_dict(),
            "bottleneck": self.get_bottleneck().to_dict() if self.get_bottleneck() else None,
            "recommendations": [r.to_dict() for r in self.get_recommendations()],
            "anomalies": len(self.anomalies.recent()),
            "tasks": self.runner.statistics(),
            "notifications": self.dispatcher.statistics(),
        }

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """
        Start the periodic tasks on the running event loop.

        Raises:
            EngineStateError: already running, or stopped for good
        """
        if self._stopped:
            raise EngineStateError("engine has been stopped and cannot be restarted")
        if self.runner.running:
            raise EngineStateError("engine already running")
        self.telemetry.start_server()
        await self.runner.start()
        logger.info("Performance engine started")

    async def stop(self, drain_timeout: Optional[float] = None) -> None:
        """
        Stop the periodic tasks and drain pending notifications.

        In-flight cycles finish before their tasks exit; loops or deliveries
        still busy after ``drain_timeout`` seconds are cancelled.
        """
        if self._stopped:
            return
        self._stopped = True
        await self.runner.stop(timeout=drain_timeout)
        await self.dispatcher.drain(timeout=drain_timeout)
        await self.dispatcher.aclose()
        logger.info("Performance engine stopped", extra={"context": self.dispatcher.statistics()})

    async def __aenter__(self) -> "PerformanceEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
