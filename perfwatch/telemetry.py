"""
Telemetry Collector for perfwatch Internals

Exports what the engine sees and does as Prometheus metrics:
- Latest value per monitored metric
- Composite health score
- Alert creation / escalation counts and the active alert gauge
- Anomaly counts
- Periodic task durations and failures
- Rejected (non-finite) samples
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)


class EngineTelemetry:
    """
    Collects internal telemetry for one engine instance.

    Each instance owns its registry so several engines (or tests) can coexist
    in one process.
    """

    def __init__(
        self,
        enable_prometheus: bool = False,
        prometheus_port: int = 9108,
        registry: Optional[CollectorRegistry] = None,
    ):
        """
        Initialize telemetry collector.

        Args:
            enable_prometheus: Serve the registry over HTTP
            prometheus_port: Port for the Prometheus metrics server
            registry: Registry to register into (a private one by default)
        """
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port
        self.registry = registry or CollectorRegistry()

        self.metric_value = Gauge(
            'perfwatch_metric_value',
            'Latest ingested value per metric',
            ['metric'],
            registry=self.registry,
        )

        self.health_score = Gauge(
            'perfwatch_health_score',
            'Composite health score (0-100)',
            registry=self.registry,
        )

        self.active_alerts = Gauge(
            'perfwatch_active_alerts',
            'Currently active alerts',
            registry=self.registry,
        )

        self.alerts_total = Counter(
            'perfwatch_alerts_total',
            'Alerts created',
            ['metric', 'level'],
            registry=self.registry,
        )

        self.alert_escalations_total = Counter(
            'perfwatch_alert_escalations_total',
            'Critical alerts escalated',
            ['metric'],
            registry=self.registry,
        )

        self.anomalies_total = Counter(
            'perfwatch_anomalies_total',
            'Anomalies detected',
            ['metric', 'severity'],
            registry=self.registry,
        )

        self.task_duration = Histogram(
            'perfwatch_task_duration_seconds',
            'Periodic task run duration',
            ['task'],
            registry=self.registry,
        )

        self.task_failures_total = Counter(
            'perfwatch_task_failures_total',
            'Periodic task runs that raised',
            ['task'],
            registry=self.registry,
        )

        self.rejected_samples_total = Counter(
            'perfwatch_rejected_samples_total',
            'Samples rejected at ingestion',
            ['metric'],
            registry=self.registry,
        )

        self._server_started = False

    def start_server(self) -> bool:
        """Start Prometheus metrics HTTP server if enabled."""
        if not self.enable_prometheus or self._server_started:
            return False
        try:
            start_http_server(self.prometheus_port, registry=self.registry)
        except OSError as e:
            logger.error(f"Failed to start Prometheus server on port {self.prometheus_port}: {e}")
            return False
        self._server_started = True
        logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        return True

    def track_sample(self, metric: str, value: float):
        self.metric_value.labels(metric=metric).set(value)

    def track_rejected_sample(self, metric: str):
        self.rejected_samples_total.labels(metric=metric).inc()

    def track_health_score(self, score: float):
        self.health_score.set(score)

    def track_alert_created(self, metric: str, level: str):
        self.alerts_total.labels(metric=metric, level=level).inc()

    def track_alert_escalated(self, metric: str):
        self.alert_escalations_total.labels(metric=metric).inc()

    def track_active_alerts(self, count: int):
        self.active_alerts.set(count)

    def track_anomaly(self, metric: str, severity: str):
        self.anomalies_total.labels(metric=metric, severity=severity).inc()

    def track_task_run(self, task: str, duration_seconds: float, failed: bool = False):
        """
        Track one periodic task run.

        Args:
            task: Task name
            duration_seconds: Run duration
            failed: Whether the run raised
        """
        self.task_duration.labels(task=task).observe(duration_seconds)
        if failed:
            self.task_failures_total.labels(task=task).inc()

    def sample_value(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        """Read back a sample from the registry (used by status reports)."""
        return self.registry.get_sample_value(name, labels or {})
