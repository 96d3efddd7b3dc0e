"""
perfwatch Command Line Interface

Usage:
    perfwatch validate-config perfwatch.yaml
    perfwatch show-config --config perfwatch.yaml
    perfwatch simulate --scenario frame-drop --duration 600 --output report.json

Exit Codes (90-99):
    0  - Success
    91 - Invalid configuration
    99 - General engine error
"""

import argparse
import asyncio
import json
import random
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from perfwatch.__version__ import get_full_version_info, get_version_string
from perfwatch.config.loader import load_config
from perfwatch.config.schema import EngineConfig
from perfwatch.engine import PerformanceEngine
from perfwatch.exceptions import EXIT_GENERAL_ERROR, EXIT_SUCCESS, PerfwatchError
from perfwatch.logging_config import configure_logging
from perfwatch.sources import CallableMetricSource

SCENARIOS = ("steady", "frame-drop", "memory-leak")


# ============================================================================
# Simulation
# ============================================================================

class SimulatedClock:
    """Manually advanced clock so a long session runs in a moment."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def scenario_readings(
    scenario: str,
    clock: SimulatedClock,
    duration: float,
    seed: int = 7,
) -> Callable[[], Dict[str, float]]:
    """
    Build a reading function for a synthetic session.

    - steady: healthy values with light noise
    - frame-drop: healthy until 60% of the session, then frame rate collapses
      and CPU saturates
    - memory-leak: memory grows linearly for the whole session
    """
    if scenario not in SCENARIOS:
        raise ValueError(f"Unknown scenario: {scenario}")
    rng = random.Random(seed)
    start = clock.now

    def read() -> Dict[str, float]:
        elapsed = clock.now - start
        readings = {
            "frame_rate": 59.0 + rng.uniform(-1.0, 1.0),
            "cpu_percent": 35.0 + rng.uniform(-3.0, 3.0),
            "memory_mb": 450.0 + rng.uniform(-10.0, 10.0),
            "network_latency_ms": 40.0 + rng.uniform(-5.0, 5.0),
            "concurrent_users": float(20 + int(elapsed // 60)),
        }
        if scenario == "frame-drop" and elapsed >= 0.6 * duration:
            readings["frame_rate"] = 8.0 + rng.uniform(-1.0, 1.0)
            readings["cpu_percent"] = 92.0 + rng.uniform(-2.0, 2.0)
        elif scenario == "memory-leak":
            readings["memory_mb"] += 1.5 * elapsed
        return readings

    return read


async def run_simulation(
    config: EngineConfig,
    scenario: str,
    duration: float,
    seed: int = 7,
) -> Dict[str, Any]:
    """
    Drive an engine through ``duration`` simulated seconds and report on it.

    Cycles fire on their configured cadence against the simulated clock, so
    alert cooldown, escalation and baselines behave as in a live session.
    """
    clock = SimulatedClock()
    source = CallableMetricSource(scenario_readings(scenario, clock, duration, seed), name=scenario)
    engine = PerformanceEngine(config, sources=[source], clock=clock)

    intervals = config.intervals
    cadences = [
        (intervals.alert_evaluation_seconds, engine.run_alert_cycle),
        (intervals.analysis_seconds, engine.run_analysis_cycle),
        (intervals.cleanup_seconds, engine.run_cleanup_cycle),
    ]
    next_due = [interval for interval, _ in cadences]
    events: List[Dict[str, Any]] = []

    while clock.now < duration:
        clock.advance(intervals.collection_seconds)
        engine.collect_once()
        for index, (interval, cycle) in enumerate(cadences):
            if clock.now >= next_due[index]:
                result = cycle()
                if cycle is cadences[0][1]:
                    events.extend(event.to_dict() for event in result)
                next_due[index] += interval
        # let notification deliveries run
        await asyncio.sleep(0)

    engine.run_analysis_cycle()
    report = engine.status()
    report["perfwatch"] = get_full_version_info()
    report["scenario"] = scenario
    report["duration_seconds"] = duration
    report["alert_events"] = events
    report["trends"] = {name: trend.to_dict() for name, trend in engine.trends.all().items()}
    report["baselines"] = {name: b.to_dict() for name, b in engine.baselines.all().items()}
    report["alert_history"] = [a.to_dict() for a in engine.get_alert_history()]

    await engine.stop()
    return report


# ============================================================================
# Commands
# ============================================================================

def cmd_validate_config(args: argparse.Namespace) -> int:
    config = load_config(args.file)
    weighted = ", ".join(f"{name}={p.weight}" for name, p in config.weighted_metrics().items())
    print(f"Configuration OK: {len(config.metrics)} metrics, weights {weighted}")
    return EXIT_SUCCESS


def cmd_show_config(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    print(config.to_json())
    return EXIT_SUCCESS


def cmd_simulate(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    report = asyncio.run(run_simulation(config, args.scenario, args.duration, seed=args.seed))
    output = json.dumps(report, indent=2, default=str)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(output)
        print(f"Report written to {args.output}")
    else:
        print(output)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="perfwatch",
        description="Real-time performance telemetry and alerting engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check a configuration file before deploying it
  perfwatch validate-config ./perfwatch.yaml

  # Print the effective configuration (defaults + file + PERFWATCH_* env)
  perfwatch show-config --config ./perfwatch.yaml

  # Replay a 10 minute session where the frame rate collapses
  perfwatch simulate --scenario frame-drop --duration 600

Exit Codes:
  0  - Success
  91 - Invalid configuration
  99 - General engine error
        """
    )
    parser.add_argument("--version", action="version", version=get_version_string())
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)"
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        default="text",
        help="Log output format (default: text)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate-config", help="Validate a configuration file")
    validate.add_argument("file", type=Path, help="YAML or JSON configuration file")
    validate.set_defaults(func=cmd_validate_config)

    show = subparsers.add_parser("show-config", help="Print the effective configuration")
    show.add_argument("--config", type=Path, help="YAML or JSON configuration file")
    show.set_defaults(func=cmd_show_config)

    simulate = subparsers.add_parser("simulate", help="Run the engine against a synthetic session")
    simulate.add_argument("--config", type=Path, help="YAML or JSON configuration file")
    simulate.add_argument(
        "--scenario",
        choices=SCENARIOS,
        default="steady",
        help="Synthetic session shape (default: steady)"
    )
    simulate.add_argument(
        "--duration",
        type=float,
        default=600.0,
        help="Simulated session length in seconds (default: 600)"
    )
    simulate.add_argument("--seed", type=int, default=7, help="Noise seed (default: 7)")
    simulate.add_argument("--output", type=Path, help="Write the JSON report here instead of stdout")
    simulate.set_defaults(func=cmd_simulate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format, stream=sys.stderr)

    try:
        return args.func(args)
    except PerfwatchError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("\nAborted by user", file=sys.stderr)
        return EXIT_GENERAL_ERROR


if __name__ == "__main__":
    sys.exit(main())
