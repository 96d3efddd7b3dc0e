"""
Exception hierarchy for the perfwatch engine.

Each exception carries the process exit code the CLI reports when the error
escapes to the top level.

Exit Codes (90-99):
- 0: Success
- 91: Invalid configuration (fatal at startup)
- 92: Unknown metric requested
- 93: Unknown alert requested
- 94: Notification dispatch failure
- 95: Engine lifecycle misuse (start twice, query after shutdown)
- 99: General engine error
"""

# ============================================================================
# Exit Codes (90-99)
# ============================================================================

EXIT_SUCCESS = 0
EXIT_CONFIGURATION_ERROR = 91
EXIT_METRIC_NOT_FOUND = 92
EXIT_ALERT_NOT_FOUND = 93
EXIT_NOTIFICATION_FAILURE = 94
EXIT_ENGINE_STATE_ERROR = 95
EXIT_GENERAL_ERROR = 99


# ============================================================================
# Custom Exceptions
# ============================================================================

class PerfwatchError(Exception):
    """Base exception for perfwatch errors."""
    exit_code = EXIT_GENERAL_ERROR


class ConfigurationError(PerfwatchError):
    """Configuration is invalid; the engine refuses to initialize."""
    exit_code = EXIT_CONFIGURATION_ERROR


class MetricNotFoundError(PerfwatchError, KeyError):
    """A query named a metric that has never been measured."""
    exit_code = EXIT_METRIC_NOT_FOUND

    def __init__(self, metric: str):
        super().__init__(metric)
        self.metric = metric

    def __str__(self) -> str:
        return f"Unknown metric: {self.metric!r}"


class AlertNotFoundError(PerfwatchError, KeyError):
    """No alert with the given id exists."""
    exit_code = EXIT_ALERT_NOT_FOUND

    def __init__(self, alert_id: str):
        super().__init__(alert_id)
        self.alert_id = alert_id

    def __str__(self) -> str:
        return f"Unknown alert: {self.alert_id!r}"


class NotificationError(PerfwatchError):
    """Failed to deliver an alert notification to a channel."""
    exit_code = EXIT_NOTIFICATION_FAILURE


class EngineStateError(PerfwatchError):
    """Engine lifecycle method called in the wrong state."""
    exit_code = EXIT_ENGINE_STATE_ERROR
