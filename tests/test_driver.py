"""Tests for the load profile driver."""

from __future__ import annotations

import asyncio

import pytest

from chatload.driver import LoadProfileDriver
from chatload.exceptions import ChatloadConfigError
from chatload.metrics import MetricsRegistry
from chatload.models import Stage


def _stages(*pairs):
    return [Stage(duration_seconds=d, target=t) for d, t in pairs]


class TestTargets:
    def test_linear_ramp(self):
        driver = LoadProfileDriver(_stages((10, 10), (10, 0)))
        assert driver.target_at(0) == 0
        assert driver.target_at(5) == 5
        assert driver.target_at(10) == 10
        assert driver.target_at(15) == 5
        assert driver.target_at(20) == 0
        assert driver.target_at(100) == 0

    def test_hold_stage(self):
        driver = LoadProfileDriver(_stages((10, 50), (30, 50), (10, 0)))
        assert driver.target_at(25) == 50

    def test_max_vus_caps_target(self):
        driver = LoadProfileDriver(_stages((10, 100), (10, 0)), max_vus=20)
        assert driver.target_at(5) == 20
        assert driver.target_at(9) == 20

    def test_budget(self):
        driver = LoadProfileDriver(_stages((10, 5), (20, 0)), graceful_ramp_down_seconds=30)
        assert driver.total_duration == 30
        assert driver.budget_seconds == 60

    def test_profile_must_end_at_zero(self):
        with pytest.raises(ChatloadConfigError) as exc_info:
            LoadProfileDriver(_stages((10, 5)))
        assert exc_info.value.code == "invalid_profile"

    def test_empty_profile(self):
        with pytest.raises(ChatloadConfigError):
            LoadProfileDriver([])


class TestRun:
    @pytest.mark.anyio
    async def test_ramps_up_and_down(self):
        registry = MetricsRegistry()
        driver = LoadProfileDriver(
            _stages((0.3, 3), (0.2, 0)),
            metrics=registry,
            tick_seconds=0.02,
            graceful_ramp_down_seconds=1.0,
        )
        seen = set()

        async def body(vu_id: int, stop: asyncio.Event) -> None:
            seen.add(vu_id)
            while not stop.is_set():
                await asyncio.sleep(0.005)

        report = await driver.run(body)

        assert seen <= {1, 2, 3}
        assert 1 <= report.peak <= 3
        assert report.started >= report.peak
        assert report.cancelled == 0
        assert report.crashed == 0
        assert registry.gauge("vus").get() == 0
        assert registry.gauge("vus_max").get() == report.peak

    @pytest.mark.anyio
    async def test_stuck_users_are_cancelled_after_grace(self):
        driver = LoadProfileDriver(
            _stages((0.1, 2), (0.1, 0)),
            tick_seconds=0.02,
            graceful_ramp_down_seconds=0.1,
        )

        async def body(vu_id: int, stop: asyncio.Event) -> None:
            await asyncio.sleep(60)

        report = await asyncio.wait_for(driver.run(body), timeout=5)

        assert report.started >= 1
        assert report.cancelled == report.started
        assert report.duration_seconds < 2

    @pytest.mark.anyio
    async def test_crashing_body_is_contained(self):
        driver = LoadProfileDriver(
            _stages((0.1, 2), (0.1, 0)),
            tick_seconds=0.02,
            graceful_ramp_down_seconds=0.1,
        )

        async def body(vu_id: int, stop: asyncio.Event) -> None:
            raise RuntimeError("boom")

        report = await driver.run(body)

        assert report.crashed >= 1
        assert report.cancelled == 0
