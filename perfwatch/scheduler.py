"""
Periodic task runner for the engine's independent cycles.

Each task runs on its own asyncio task at its own interval. A run that raises
is logged and counted, and the task keeps its schedule; one failing analysis
pass never stops collection. Stopping signals every loop to finish its current
run and exit, so nothing is killed mid-write.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from perfwatch.exceptions import EngineStateError
from perfwatch.telemetry import EngineTelemetry

logger = logging.getLogger(__name__)


@dataclass
class PeriodicTask:
    """A named callable and its cadence."""
    name: str
    func: Callable[[], Any]
    interval_seconds: float
    offload: bool = False  # run in a worker thread

    runs: int = 0
    failures: int = 0
    last_duration_seconds: Optional[float] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interval_seconds": self.interval_seconds,
            "offload": self.offload,
            "runs": self.runs,
            "failures": self.failures,
            "last_duration_seconds": self.last_duration_seconds,
            "last_error": self.last_error,
        }


class PeriodicTaskRunner:
    """Runs PeriodicTasks until stopped."""

    def __init__(self, telemetry: Optional[EngineTelemetry] = None):
        self.telemetry = telemetry
        self.tasks: Dict[str, PeriodicTask] = {}
        self._handles: List[asyncio.Task] = []
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return bool(self._handles)

    def add(
        self,
        name: str,
        func: Callable[[], Any],
        interval_seconds: float,
        offload: bool = False,
    ) -> PeriodicTask:
        if interval_seconds <= 0:
            raise ValueError(f"interval for task {name} must be > 0")
        if name in self.tasks:
            raise ValueError(f"task {name} already registered")
        task = PeriodicTask(name=name, func=func, interval_seconds=interval_seconds, offload=offload)
        self.tasks[name] = task
        return task

    async def run_once(self, task: PeriodicTask) -> bool:
        """
        Execute one run of ``task``, isolating failures.

        Returns:
            True if the run succeeded
        """
        started = time.perf_counter()
        failed = False
        try:
            if task.offload:
                await asyncio.to_thread(task.func)
            else:
                task.func()
        except Exception as e:
            failed = True
            task.failures += 1
            task.last_error = f"{type(e).__name__}: {e}"
            logger.exception(
                f"Periodic task {task.name} failed",
                extra={"context": {"task": task.name, "failures": task.failures}},
            )
        finally:
            task.runs += 1
            task.last_duration_seconds = time.perf_counter() - started

        if self.telemetry:
            self.telemetry.track_task_run(task.name, task.last_duration_seconds, failed=failed)
        return not failed

    async def _loop(self, task: PeriodicTask, stop_event: asyncio.Event) -> None:
        logger.debug(f"Periodic task {task.name} started (every {task.interval_seconds}s)")
        while not stop_event.is_set():
            await self.run_once(task)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=task.interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.debug(f"Periodic task {task.name} stopped after {task.runs} runs")

    async def start(self) -> None:
        """Launch every registered task on the running loop."""
        if self.running:
            raise EngineStateError("periodic tasks already running")
        self._stop_event = asyncio.Event()
        self._handles = [
            asyncio.create_task(self._loop(task, self._stop_event), name=f"perfwatch-{task.name}")
            for task in self.tasks.values()
        ]
        logger.info(f"Started {len(self._handles)} periodic tasks: {', '.join(self.tasks)}")

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Let in-flight runs finish, then stop every loop.

        Loops still busy after ``timeout`` seconds are cancelled.
        """
        if not self.running:
            return
        self._stop_event.set()
        _, pending = await asyncio.wait(self._handles, timeout=timeout)
        for handle in pending:
            logger.warning(f"Cancelling {handle.get_name()} after {timeout}s drain timeout")
            handle.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._handles = []
        logger.info("Periodic tasks stopped")

    def statistics(self) -> Dict[str, Dict[str, Any]]:
        return {name: task.to_dict() for name, task in self.tasks.items()}
