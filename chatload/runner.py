"""
End-to-end run orchestration.

Usage:
    from chatload.config import Settings
    from chatload.runner import LoadRunner

    result = asyncio.run(LoadRunner(Settings.from_env()).run())
    print(result.passed)
    result.raise_for_thresholds()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from chatload.client import ChatApiClient
from chatload.config import Settings
from chatload.driver import DriverReport, LoadProfileDriver
from chatload.exceptions import ChatloadThresholdError
from chatload.executor import SessionExecutor
from chatload.fixtures import CleanupReport, SetupCoordinator, SetupReport
from chatload.metrics.collector import MetricsRegistry
from chatload.metrics.events import (
    EventReporter,
    FanoutEventReporter,
    JsonlEventReporter,
    LoggingEventReporter,
    ThresholdEvent,
)
from chatload.metrics.report import format_summary, summary_json
from chatload.metrics.thresholds import ThresholdResult, evaluate_thresholds
from chatload.models import build_user_pool
from chatload.random_source import RandomSource
from chatload.session import TokenCache
from chatload.suites import Suite, get_suite, resolve_profile

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """
    Outcome of a complete run.

    Attributes:
        suite: Suite name.
        profile: Profile name.
        seed: Random seed used (None when unseeded).
        summary: MetricsRegistry.summary() at run end.
        thresholds: Evaluated thresholds.
        setup: Setup coordinator report.
        driver: Load driver report.
        cleanup: Cleanup report (None when cleanup is disabled).
        sequence_duplicates: Duplicate sequences found at teardown, if checked.
    """

    suite: str
    profile: str
    seed: Optional[int]
    summary: Dict[str, Dict[str, Any]]
    thresholds: List[ThresholdResult] = field(default_factory=list)
    setup: SetupReport = field(default_factory=SetupReport)
    driver: DriverReport = field(default_factory=DriverReport)
    cleanup: Optional[CleanupReport] = None
    sequence_duplicates: Optional[int] = None

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.thresholds)

    def breaches(self) -> List[str]:
        return [r.describe() for r in self.thresholds if not r.passed]

    def raise_for_thresholds(self) -> None:
        """Raise ChatloadThresholdError if any threshold was breached."""
        breaches = self.breaches()
        if breaches:
            raise ChatloadThresholdError(
                f"{len(breaches)} of {len(self.thresholds)} thresholds breached",
                breaches=breaches,
                code="threshold_breach",
            )

    def info(self) -> Dict[str, Any]:
        return {
            "suite": self.suite,
            "profile": self.profile,
            "seed": self.seed,
            "peak_vus": self.driver.peak,
            "duration_s": round(self.driver.duration_seconds, 1),
            "shared_rooms": len(self.setup.rooms),
            "cleanup_deleted": self.cleanup.deleted_count if self.cleanup else None,
        }

    def format(self) -> str:
        return format_summary(
            self.summary,
            self.thresholds,
            title=f"CHATLOAD {self.suite.upper()} / {self.profile}",
            info=self.info(),
        )

    def to_json(self) -> str:
        return summary_json(
            self.summary,
            self.thresholds,
            suite=self.suite,
            profile=self.profile,
            seed=self.seed,
            setup=self.setup.to_dict(),
            driver=self.driver.to_dict(),
            cleanup=self.cleanup.to_dict() if self.cleanup else None,
            sequence_duplicates=self.sequence_duplicates,
        )


class LoadRunner:
    """
    Wires configuration, fixtures, the executor and the driver into one run.

    Everything is resolved and validated in the constructor so a bad suite,
    profile or threshold fails before any request is sent.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        metrics: Optional[MetricsRegistry] = None,
        reporter: Optional[EventReporter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        suite: Optional[Suite] = None,
    ) -> None:
        self.settings = settings
        self.suite = suite or get_suite(settings.suite)
        self.suite.validate()
        self.profile = resolve_profile(self.suite, settings.profile)
        self.stages = self.suite.stages(self.profile)
        self.table = self.suite.table(self.profile, ai_available=settings.ai_available)
        self.thresholds = self.suite.parsed_thresholds()
        self.plan = self.suite.fixture_plan(self.profile)
        self.metrics = metrics or MetricsRegistry()
        self._transport = transport
        self._reporter = reporter

    async def run(self) -> RunResult:
        settings = self.settings
        pool = build_user_pool(
            self.suite.user_pool_size or settings.user_pool_size,
            password=settings.user_password,
        )
        rng = RandomSource(settings.seed)
        jsonl: Optional[JsonlEventReporter] = None
        reporter = self._reporter
        if reporter is None:
            reporter = LoggingEventReporter()
            if settings.events_path:
                jsonl = JsonlEventReporter(settings.events_path)
                reporter = FanoutEventReporter(reporter, jsonl)
        tokens = TokenCache()
        driver = LoadProfileDriver(
            self.stages,
            metrics=self.metrics,
            tick_seconds=settings.tick_seconds,
            graceful_ramp_down_seconds=settings.graceful_ramp_down_seconds,
            max_vus=settings.max_vus,
        )
        logger.info(
            "Run starting: suite=%s profile=%s base_url=%s stages=%d pool=%d seed=%s",
            self.suite.name,
            self.profile,
            settings.base_url,
            len(self.stages),
            len(pool),
            settings.seed,
        )
        peak = max(stage.target for stage in self.stages)
        if settings.max_vus is not None:
            peak = min(peak, settings.max_vus)
        if peak > len(pool):
            logger.warning(
                "Peak of %d VUs exceeds the user pool of %d: slots share users (%d per user at peak)",
                peak,
                len(pool),
                -(-peak // len(pool)),
            )

        try:
            async with ChatApiClient(
                settings,
                self.metrics,
                reporter=reporter,
                transport=self._transport,
            ) as api:
                coordinator = SetupCoordinator(
                    api, pool, tokens, self.plan, think_scale=settings.think_scale
                )
                setup = await coordinator.run()
                executor = SessionExecutor(
                    api,
                    self.table,
                    tokens,
                    pool,
                    fixtures=setup.rooms,
                    think_scale=settings.think_scale,
                    iteration_pause=self.suite.iteration_pause,
                )

                async def body(vu_id: int, stop: asyncio.Event) -> None:
                    await executor.run_vu(vu_id, stop, rng.spawn(vu_id))

                duplicates: Optional[int] = None
                cleanup: Optional[CleanupReport] = None
                try:
                    driver_report = await driver.run(body)
                finally:
                    if self.profile in self.suite.verify_sequences and setup.rooms:
                        duplicates = await coordinator.verify_sequences(setup.rooms[0])
                    if settings.cleanup:
                        cleanup = await coordinator.cleanup()

            results = evaluate_thresholds(self.thresholds, self.metrics)
            for r in results:
                reporter.report(
                    ThresholdEvent(
                        metric=r.threshold.metric,
                        expression=r.threshold.expression,
                        observed=r.observed,
                        passed=r.passed,
                    )
                )
        finally:
            if jsonl is not None:
                jsonl.close()

        return RunResult(
            suite=self.suite.name,
            profile=self.profile,
            seed=settings.seed,
            summary=self.metrics.summary(),
            thresholds=results,
            setup=setup,
            driver=driver_report,
            cleanup=cleanup,
            sequence_duplicates=duplicates,
        )

