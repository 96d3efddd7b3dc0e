"""Version information for perfwatch."""

__version__ = "1.2.0"
__version_info__ = tuple(
    int(part) if part.isdigit() else part
    for part in __version__.replace("-", ".").split(".")
)

MODULE_NAME = "perfwatch"
MODULE_LICENSE = "MIT"

# Feature flags
FEATURES = {
    "baseline_estimation": True,
    "trend_analysis": True,
    "anomaly_detection": True,
    "health_scoring": True,
    "threshold_alerting": True,
    "alert_escalation": True,
    "recommendations": True,
    "prometheus_export": True,
    "webhook_notifications": True,
}


def get_version_string() -> str:
    """Get formatted version string."""
    return f"perfwatch v{__version__}"


def get_full_version_info() -> dict:
    """Get complete version information."""
    return {
        "version": __version__,
        "version_info": __version_info__,
        "module_name": MODULE_NAME,
        "license": MODULE_LICENSE,
        "features": FEATURES,
    }


if __name__ == "__main__":
    print(get_version_string())
    import json
    print(json.dumps(get_full_version_info(), indent=2))
