"""
Load profile driver: ramps concurrent virtual users through stages.

The target at any instant is a linear interpolation between the previous
stage's target and the current stage's target. Every tick the driver starts
virtual users up to the target and asks the highest-numbered ones to retire
beyond it. A retiring user finishes its current iteration; one that is still
running when its graceful window expires is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from chatload.exceptions import ChatloadConfigError
from chatload.metrics.collector import MetricsRegistry
from chatload.models import Stage

logger = logging.getLogger(__name__)

VUBody = Callable[[int, asyncio.Event], Awaitable[None]]


@dataclass
class _VirtualUserTask:
    vu_id: int
    task: "asyncio.Task[None]"
    stop: asyncio.Event
    retire_deadline: Optional[float] = None
    cancelled: bool = False

    def cancel(self) -> bool:
        if self.cancelled or self.task.done():
            return False
        self.cancelled = True
        self.task.cancel()
        return True


@dataclass
class DriverReport:
    """
    What the driver did during a run.

    Attributes:
        started: Virtual users started in total (slots may be reused).
        peak: Highest number of simultaneously running virtual users.
        cancelled: Virtual users cancelled after their graceful window.
        crashed: Virtual users whose body raised.
        duration_seconds: Wall-clock time from first tick to last task gone.
    """

    started: int = 0
    peak: int = 0
    cancelled: int = 0
    crashed: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "started": self.started,
            "peak": self.peak,
            "cancelled": self.cancelled,
            "crashed": self.crashed,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class LoadProfileDriver:
    """
    Drive a stage list against a virtual user body.

    Example:
        driver = LoadProfileDriver([Stage.parse("10s", 5), Stage.parse("5s", 0)])
        report = await driver.run(executor_body)

    The body receives the 1-based virtual user id and a stop event; it should
    return soon after the event is set.
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        *,
        metrics: Optional[MetricsRegistry] = None,
        tick_seconds: float = 0.5,
        graceful_ramp_down_seconds: float = 30.0,
        max_vus: Optional[int] = None,
    ) -> None:
        stages = list(stages)
        if not stages:
            raise ChatloadConfigError("Load profile has no stages", code="invalid_profile")
        if stages[-1].target != 0:
            raise ChatloadConfigError(
                "Load profile must end with a stage ramping to 0 virtual users",
                code="invalid_profile",
                details={"last_target": stages[-1].target},
            )
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self._stages = stages
        self._metrics = metrics or MetricsRegistry()
        self._tick = tick_seconds
        self._graceful = graceful_ramp_down_seconds
        self._max_vus = max_vus

    @property
    def stages(self) -> List[Stage]:
        return list(self._stages)

    @property
    def total_duration(self) -> float:
        return sum(s.duration_seconds for s in self._stages)

    @property
    def budget_seconds(self) -> float:
        """Hard wall-clock limit: all stages plus the graceful ramp-down."""
        return self.total_duration + self._graceful

    def target_at(self, elapsed: float) -> int:
        """Target virtual users `elapsed` seconds into the run (0 after the last stage)."""
        previous = 0
        start = 0.0
        for stage in self._stages:
            end = start + stage.duration_seconds
            if elapsed < end:
                fraction = max(0.0, elapsed - start) / stage.duration_seconds
                value = int(round(previous + (stage.target - previous) * fraction))
                if self._max_vus is not None:
                    value = min(value, self._max_vus)
                return value
            previous = stage.target
            start = end
        return 0

    async def run(self, body: VUBody) -> DriverReport:
        loop = asyncio.get_running_loop()
        report = DriverReport()
        running: Dict[int, _VirtualUserTask] = {}
        started = loop.time()
        wall_start = time.perf_counter()

        def now() -> float:
            return loop.time() - started

        logger.info(
            "Driver starting: %d stages, %.0fs total, budget %.0fs",
            len(self._stages),
            self.total_duration,
            self.budget_seconds,
        )
        try:
            while now() < self.total_duration:
                self._reap(running, report)
                self._enforce_deadlines(running, report, loop.time())
                self._scale(running, self.target_at(now()), body, report, loop.time())
                self._publish(running, report)
                remaining = self.total_duration - now()
                await asyncio.sleep(max(0.0, min(self._tick, remaining)))

            # Final stage reached zero: everyone retires with the graceful window.
            for vu in running.values():
                vu.stop.set()
            pending = [vu.task for vu in running.values() if not vu.task.done()]
            if pending:
                window = max(0.0, min(self._graceful, self.budget_seconds - now()))
                await asyncio.wait(pending, timeout=window)
        finally:
            for vu in running.values():
                if vu.cancel():
                    report.cancelled += 1
            if running:
                await asyncio.gather(*(vu.task for vu in running.values()), return_exceptions=True)
            self._reap(running, report)
            self._publish(running, report)
            report.duration_seconds = time.perf_counter() - wall_start

        logger.info(
            "Driver finished: started=%d peak=%d cancelled=%d crashed=%d",
            report.started,
            report.peak,
            report.cancelled,
            report.crashed,
        )
        return report

    def _scale(
        self,
        running: Dict[int, _VirtualUserTask],
        target: int,
        body: VUBody,
        report: DriverReport,
        clock: float,
    ) -> None:
        active = sorted(vu_id for vu_id, vu in running.items() if not vu.stop.is_set())
        if len(active) < target:
            vu_id = 1
            for _ in range(target - len(active)):
                while vu_id in running:
                    vu_id += 1
                stop = asyncio.Event()
                task = asyncio.create_task(body(vu_id, stop), name=f"vu-{vu_id}")
                running[vu_id] = _VirtualUserTask(vu_id=vu_id, task=task, stop=stop)
                report.started += 1
        elif len(active) > target:
            for vu_id in reversed(active[target:]):
                vu = running[vu_id]
                vu.stop.set()
                vu.retire_deadline = clock + self._graceful

    def _enforce_deadlines(
        self,
        running: Dict[int, _VirtualUserTask],
        report: DriverReport,
        clock: float,
    ) -> None:
        for vu in running.values():
            if vu.retire_deadline is not None and clock >= vu.retire_deadline and vu.cancel():
                logger.debug("VU %d exceeded graceful window, cancelling", vu.vu_id)
                report.cancelled += 1

    def _reap(self, running: Dict[int, _VirtualUserTask], report: DriverReport) -> None:
        for vu_id in [v for v, vu in running.items() if vu.task.done()]:
            vu = running.pop(vu_id)
            if vu.task.cancelled():
                continue
            exc = vu.task.exception()
            if exc is not None:
                report.crashed += 1
                logger.error("VU %d crashed: %s", vu_id, exc, exc_info=exc)

    def _publish(self, running: Dict[int, _VirtualUserTask], report: DriverReport) -> None:
        live = sum(1 for vu in running.values() if not vu.task.done())
        report.peak = max(report.peak, live)
        self._metrics.gauge("vus").set(live)
        self._metrics.gauge("vus_max").set(report.peak)
