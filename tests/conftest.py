"""
Shared pytest fixtures for the perfwatch test suite

Provides:
- A manually advanced clock
- A compact two-metric configuration for mechanism tests
- Engines wired to the fake clock with a private telemetry registry
- A recording notification channel
"""

import os
import sys
from typing import List

import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from perfwatch.alerting import AlertChannel, AlertDispatcher, AlertEvent
from perfwatch.config.schema import (
    EngineConfig,
    MetricDirection,
    MetricPolicy,
    ThresholdTable,
)
from perfwatch.engine import PerformanceEngine
from perfwatch.health import PerformanceLevel
from perfwatch.telemetry import EngineTelemetry


# ============================================================================
# CLOCK
# ============================================================================

class FakeClock:
    """Deterministic clock advanced by the test."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now

    def set(self, when: float) -> float:
        self.now = when
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=0.0)


# ============================================================================
# CONFIGURATION
# ============================================================================

def two_metric_policies():
    """
    ``throughput`` gets better as it grows (target 100), ``lag`` gets worse
    (penalty 1 point per unit); equal weights; ``sessions`` is tracked only.
    """
    return {
        "throughput": MetricPolicy(
            direction=MetricDirection.HIGHER_IS_BETTER,
            thresholds=ThresholdTable(excellent=90, good=70, fair=50, poor=30, critical=10),
            weight=0.5,
            target=100.0,
            recommendation="Scale out the workers",
        ),
        "lag": MetricPolicy(
            direction=MetricDirection.HIGHER_IS_WORSE,
            thresholds=ThresholdTable(excellent=10, good=20, fair=30, poor=40, critical=50),
            weight=0.5,
            penalty=1.0,
        ),
        "sessions": MetricPolicy(),
    }


@pytest.fixture
def default_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def small_config() -> EngineConfig:
    return EngineConfig(metrics=two_metric_policies())


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class RecordingChannel(AlertChannel):
    """Keeps every event it is sent."""

    name = "recording"

    def __init__(self, min_level: PerformanceLevel = PerformanceLevel.FAIR):
        super().__init__(min_level)
        self.events: List[AlertEvent] = []

    async def send(self, event: AlertEvent) -> None:
        self.events.append(event)


@pytest.fixture
def recording_channel() -> RecordingChannel:
    return RecordingChannel()


# ============================================================================
# ENGINES
# ============================================================================

@pytest.fixture
def telemetry() -> EngineTelemetry:
    return EngineTelemetry()


@pytest.fixture
def engine(default_config, clock, telemetry, recording_channel) -> PerformanceEngine:
    """Default-configured engine on the fake clock."""
    dispatcher = AlertDispatcher([recording_channel])
    return PerformanceEngine(default_config, clock=clock, telemetry=telemetry, dispatcher=dispatcher)


@pytest.fixture
def frame_drop_engine(clock, telemetry, recording_channel) -> PerformanceEngine:
    """Engine with a 50-sample baseline window for the frame-drop scenario."""
    config = EngineConfig(windows={"baseline_samples": 50})
    dispatcher = AlertDispatcher([recording_channel])
    return PerformanceEngine(config, clock=clock, telemetry=telemetry, dispatcher=dispatcher)
