"""
Threshold Alerting - Alert Lifecycle and Notification Dispatch

This module implements the alert side of the engine:
1. AlertManager evaluates per-metric performance levels each alert cycle and
   drives every alert through Normal -> Active -> Escalated -> Resolved
2. Per-metric cooldown limits how often a metric may open a new alert
3. Critical alerts that stay unresolved past their deadline escalate once
4. Every transition is returned as an AlertEvent
5. AlertDispatcher fans events out to notification channels on the event
   loop, each delivery bounded by its own timeout

Alert Levels:
- Fair / Poor / Critical open an alert
- Good / Excellent resolve the active alert of that metric
"""

import asyncio
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional, Set

import httpx

from perfwatch.exceptions import AlertNotFoundError, NotificationError
from perfwatch.health import LevelResult, PerformanceLevel

logger = logging.getLogger(__name__)

ALERTING_LEVELS = (PerformanceLevel.FAIR, PerformanceLevel.POOR, PerformanceLevel.CRITICAL)


# ============================================================================
# Enums & Data Classes
# ============================================================================

class AlertEventKind(str, Enum):
    """Observable alert transitions."""
    CREATED = "created"
    UPGRADED = "upgraded"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


@dataclass
class Alert:
    """A threshold alert for one metric."""
    id: str
    metric_type: str
    level: PerformanceLevel
    value: float
    threshold: float
    message: str
    created_at: float
    acknowledged: bool = False
    escalated: bool = False
    resolved_at: Optional[float] = None

    # Lifecycle bookkeeping
    escalation_deadline: Optional[float] = None
    escalated_at: Optional[float] = None
    acknowledged_at: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.resolved_at is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert alert to dictionary."""
        data = asdict(self)
        data["level"] = self.level.value
        return data


@dataclass(frozen=True)
class AlertEvent:
    """One alert transition, carrying a snapshot of the alert after it."""
    kind: AlertEventKind
    alert: Alert
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp,
            "alert": self.alert.to_dict(),
        }


@dataclass
class AlertStatistics:
    """Running alert counters."""
    active_alerts: int = 0
    total_created: int = 0
    total_escalated: int = 0
    total_resolved: int = 0
    total_acknowledged: int = 0
    by_level: Dict[str, int] = field(default_factory=dict)
    by_metric: Dict[str, int] = field(default_factory=dict)
    mean_resolution_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================================
# Alert Manager
# ============================================================================

class AlertManager:
    """
    Owns the active alert set, the cooldown registry and the alert history.

    At most one alert is active per metric. A metric that worsens while its
    alert is active upgrades that alert in place instead of opening another
    one; cooldown only gates the creation of new alerts, so escalation and
    resolution are re-checked every cycle.

    All state sits behind one mutex; callers only ever receive copies.
    """

    def __init__(
        self,
        cooldown_seconds: float = 60.0,
        escalation_seconds: float = 300.0,
        history_size: int = 1000,
        messages: Optional[Mapping[str, str]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            cooldown_seconds: Minimum gap between two new alerts for a metric
            escalation_seconds: How long a Critical alert may stay unresolved
            history_size: Resolved alert history capacity
            messages: Optional per-metric hint appended to alert messages
            id_factory: Alert id generator (uuid4 hex by default)
        """
        self.cooldown_seconds = cooldown_seconds
        self.escalation_seconds = escalation_seconds
        self.messages = dict(messages or {})
        self._new_id = id_factory or (lambda: uuid.uuid4().hex[:12])

        self._active: Dict[str, Alert] = {}
        self._active_by_metric: Dict[str, str] = {}
        self._last_fired: Dict[str, float] = {}
        self._history: Deque[Alert] = deque(maxlen=history_size)
        self._stats = AlertStatistics()
        self._resolution_total = 0.0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, levels: Mapping[str, LevelResult], now: float) -> List[AlertEvent]:
        """
        Run one alert-evaluation pass.

        Args:
            levels: Current level of every classified metric
            now: Evaluation time

        Returns:
            Events for every transition that happened, in order
        """
        events: List[AlertEvent] = []
        with self._lock:
            for metric, result in levels.items():
                alert_id = self._active_by_metric.get(metric)
                if alert_id is not None:
                    events.extend(self._reevaluate(self._active[alert_id], result, now))
                elif result.level in ALERTING_LEVELS and self._cooldown_elapsed(metric, now):
                    events.append(self._create(result, now))

            for alert in list(self._active.values()):
                if self._escalation_due(alert, now):
                    events.append(self._escalate(alert, now))

            self._stats.active_alerts = len(self._active)
        return events

    def _cooldown_elapsed(self, metric: str, now: float) -> bool:
        last = self._last_fired.get(metric)
        return last is None or now - last >= self.cooldown_seconds

    def _escalation_due(self, alert: Alert, now: float) -> bool:
        return (
            not alert.escalated
            and alert.level == PerformanceLevel.CRITICAL
            and alert.escalation_deadline is not None
            and now >= alert.escalation_deadline
        )

    def _format_message(self, result: LevelResult) -> str:
        message = (
            f"{result.metric} is {result.level.value}: value {result.value:g} "
            f"(threshold {result.threshold:g})"
        )
        hint = self.messages.get(result.metric)
        return f"{message}. {hint}" if hint else message

    def _create(self, result: LevelResult, now: float) -> AlertEvent:
        alert = Alert(
            id=self._new_id(),
            metric_type=result.metric,
            level=result.level,
            value=result.value,
            threshold=result.threshold,
            message=self._format_message(result),
            created_at=now,
        )
        if alert.level == PerformanceLevel.CRITICAL:
            alert.escalation_deadline = now + self.escalation_seconds

        self._active[alert.id] = alert
        self._active_by_metric[alert.metric_type] = alert.id
        self._last_fired[alert.metric_type] = now

        self._stats.total_created += 1
        self._stats.by_level[alert.level.value] = self._stats.by_level.get(alert.level.value, 0) + 1
        self._stats.by_metric[alert.metric_type] = self._stats.by_metric.get(alert.metric_type, 0) + 1

        logger.warning(
            f"Alert {alert.id} created: {alert.message}",
            extra={"context": alert.to_dict()},
        )
        return AlertEvent(AlertEventKind.CREATED, replace(alert), now)

    def _reevaluate(self, alert: Alert, result: LevelResult, now: float) -> List[AlertEvent]:
        if result.level not in ALERTING_LEVELS:
            return [self._resolve(alert, result.value, now)]

        if result.level == alert.level:
            return []

        worsened = result.level.is_worse_than(alert.level)
        alert.level = result.level
        alert.value = result.value
        alert.threshold = result.threshold
        alert.message = self._format_message(result)

        if alert.level == PerformanceLevel.CRITICAL:
            if alert.escalation_deadline is None:
                alert.escalation_deadline = now + self.escalation_seconds
        elif not alert.escalated:
            alert.escalation_deadline = None

        if not worsened:
            logger.debug(f"Alert {alert.id} eased to {alert.level.value}")
            return []

        logger.warning(
            f"Alert {alert.id} upgraded: {alert.message}",
            extra={"context": alert.to_dict()},
        )
        return [AlertEvent(AlertEventKind.UPGRADED, replace(alert), now)]

    def _escalate(self, alert: Alert, now: float) -> AlertEvent:
        alert.escalated = True
        alert.escalated_at = now
        self._stats.total_escalated += 1
        logger.error(
            f"Alert {alert.id} escalated: {alert.metric_type} Critical for "
            f"{now - alert.created_at:.0f}s",
            extra={"context": alert.to_dict()},
        )
        return AlertEvent(AlertEventKind.ESCALATED, replace(alert), now)

    def _resolve(self, alert: Alert, value: float, now: float) -> AlertEvent:
        alert.resolved_at = now
        alert.value = value
        del self._active[alert.id]
        del self._active_by_metric[alert.metric_type]
        self._history.append(alert)

        self._stats.total_resolved += 1
        self._resolution_total += now - alert.created_at
        self._stats.mean_resolution_seconds = self._resolution_total / self._stats.total_resolved

        logger.info(
            f"Alert {alert.id} resolved: {alert.metric_type} back to {value:g}",
            extra={"context": alert.to_dict()},
        )
        return AlertEvent(AlertEventKind.RESOLVED, replace(alert), now)

    # ------------------------------------------------------------------
    # Operator actions & queries
    # ------------------------------------------------------------------

    def acknowledge(self, alert_id: str, now: float) -> bool:
        """
        Mark an active alert as acknowledged.

        Returns:
            True if the alert is active (acknowledging twice is harmless),
            False if no active alert has this id
        """
        with self._lock:
            alert = self._active.get(alert_id)
            if alert is None:
                return False
            if not alert.acknowledged:
                alert.acknowledged = True
                alert.acknowledged_at = now
                self._stats.total_acknowledged += 1
                logger.info(f"Alert {alert_id} acknowledged")
            return True

    def get(self, alert_id: str) -> Alert:
        """
        Look up an alert by id among active and historical alerts.

        Raises:
            AlertNotFoundError: no such alert
        """
        with self._lock:
            alert = self._active.get(alert_id)
            if alert is None:
                alert = next((a for a in self._history if a.id == alert_id), None)
            if alert is None:
                raise AlertNotFoundError(alert_id)
            return replace(alert)

    def get_active(self) -> List[Alert]:
        """Active alerts, oldest first."""
        with self._lock:
            alerts = [replace(a) for a in self._active.values()]
        return sorted(alerts, key=lambda a: a.created_at)

    def get_history(self, limit: Optional[int] = None) -> List[Alert]:
        """Resolved alerts, oldest first; ``limit`` keeps the most recent ones."""
        with self._lock:
            alerts = [replace(a) for a in self._history]
        if limit is not None:
            alerts = alerts[-limit:] if limit > 0 else []
        return alerts

    def statistics(self) -> AlertStatistics:
        with self._lock:
            stats = replace(self._stats)
            stats.by_level = dict(self._stats.by_level)
            stats.by_metric = dict(self._stats.by_metric)
            stats.active_alerts = len(self._active)
        return stats

    def prune(self, before: float) -> int:
        """Drop resolved alerts that resolved before ``before``."""
        with self._lock:
            kept = [a for a in self._history if a.resolved_at is not None and a.resolved_at >= before]
            removed = len(self._history) - len(kept)
            self._history.clear()
            self._history.extend(kept)
        return removed


# ============================================================================
# Notification Channels
# ============================================================================

class AlertChannel(ABC):
    """Abstract base class for notification channels."""

    name = "channel"

    def __init__(self, min_level: PerformanceLevel = PerformanceLevel.FAIR):
        self.min_level = min_level

    @abstractmethod
    async def send(self, event: AlertEvent) -> None:
        """
        Deliver one event.

        Raises:
            NotificationError: delivery failed
        """

    def accepts(self, event: AlertEvent) -> bool:
        """Only events for alerts at or below the channel's minimum level."""
        return event.alert.level.score <= self.min_level.score

    async def aclose(self) -> None:
        """Release channel resources."""


class LogChannel(AlertChannel):
    """Writes alert events as structured log records."""

    name = "log"

    _LOG_LEVELS = {
        AlertEventKind.CREATED: logging.WARNING,
        AlertEventKind.UPGRADED: logging.WARNING,
        AlertEventKind.ESCALATED: logging.CRITICAL,
        AlertEventKind.RESOLVED: logging.INFO,
    }

    def __init__(
        self,
        min_level: PerformanceLevel = PerformanceLevel.FAIR,
        logger_name: str = "perfwatch.notifications",
    ):
        super().__init__(min_level)
        self.logger = logging.getLogger(logger_name)

    async def send(self, event: AlertEvent) -> None:
        alert = event.alert
        self.logger.log(
            self._LOG_LEVELS[event.kind],
            f"[{event.kind.value.upper()}] {alert.level.value} {alert.metric_type}: {alert.message}",
            extra={"context": event.to_dict()},
        )


class WebhookChannel(AlertChannel):
    """POSTs alert events as JSON to a webhook endpoint."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        min_level: PerformanceLevel = PerformanceLevel.FAIR,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(min_level)
        self.url = url
        self.headers = dict(headers or {})
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    def _generate_payload(self, event: AlertEvent) -> Dict[str, Any]:
        alert = event.alert
        return {
            "source": "perfwatch",
            "event": event.kind.value,
            "timestamp": event.timestamp,
            "summary": f"{alert.level.value} {alert.metric_type} alert {event.kind.value}",
            "alert": alert.to_dict(),
        }

    async def send(self, event: AlertEvent) -> None:
        try:
            response = await self.client.post(
                self.url, json=self._generate_payload(event), headers=self.headers
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook delivery to {self.url} failed: {e}") from e
        logger.debug(f"WebhookChannel: delivered {event.kind.value} for alert {event.alert.id}")

    async def aclose(self) -> None:
        await self.client.aclose()


# ============================================================================
# Dispatcher
# ============================================================================

class AlertDispatcher:
    """
    Fans alert events out to channels without blocking the caller.

    ``submit`` schedules delivery as tasks on the running event loop and
    returns immediately. Events submitted with no running loop wait in a
    backlog until the next ``flush``/``drain``. Failures and timeouts are
    logged and counted, never raised to the submitter.
    """

    def __init__(self, channels: Optional[Iterable[AlertChannel]] = None, timeout_seconds: float = 5.0):
        self.channels: List[AlertChannel] = list(channels or [])
        self.timeout_seconds = timeout_seconds
        self.delivered = 0
        self.failed = 0
        self.timed_out = 0
        self._pending: Set[asyncio.Task] = set()
        self._backlog: Deque[AlertEvent] = deque()

    def add_channel(self, channel: AlertChannel) -> None:
        self.channels.append(channel)

    @property
    def pending(self) -> int:
        return len(self._pending) + len(self._backlog)

    def submit(self, events: Iterable[AlertEvent]) -> None:
        """Schedule delivery of ``events`` to every accepting channel."""
        events = list(events)
        if not events or not self.channels:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._backlog.extend(events)
            return
        for event in events:
            self._schedule(loop, event)

    def _schedule(self, loop: asyncio.AbstractEventLoop, event: AlertEvent) -> None:
        for channel in self.channels:
            if not channel.accepts(event):
                continue
            task = loop.create_task(self._deliver(channel, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, channel: AlertChannel, event: AlertEvent) -> None:
        try:
            await asyncio.wait_for(channel.send(event), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self.timed_out += 1
            logger.warning(
                f"Delivery of alert {event.alert.id} to {channel.name} timed out "
                f"after {self.timeout_seconds}s"
            )
        except Exception as e:
            self.failed += 1
            logger.error(f"Failed to deliver alert {event.alert.id} to {channel.name}: {e}")
        else:
            self.delivered += 1

    async def flush(self) -> None:
        """Schedule any backlog collected while no event loop was running."""
        loop = asyncio.get_running_loop()
        while self._backlog:
            self._schedule(loop, self._backlog.popleft())

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight deliveries.

        Returns:
            True if everything finished, False if ``timeout`` expired first
        """
        await self.flush()
        if not self._pending:
            return True
        _, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} alert deliveries still pending after drain")
        return not not_done

    async def aclose(self) -> None:
        """Cancel outstanding deliveries and close every channel."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        for channel in self.channels:
            await channel.aclose()

    def statistics(self) -> Dict[str, int]:
        return {
            "channels": len(self.channels),
            "delivered": self.delivered,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "pending": self.pending,
        }
