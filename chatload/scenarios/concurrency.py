"""
Contention profiles that hammer a few rooms with near-simultaneous sends,
plus the read-only profile of the quick smoke suite.
"""

from __future__ import annotations

import time
from typing import Tuple

from chatload.models import RoomFixture
from chatload.scenarios.base import ScenarioContext, scenario

# Sends slower than this are assumed to have waited on the room lock.
LOCK_WAIT_BASELINE_MS = 1000.0


async def _burst(
    ctx: ScenarioContext,
    room: RoomFixture,
    count: int,
    pause_ms: Tuple[int, int],
    label: str,
) -> None:
    metrics = ctx.api.metrics
    metrics.gauge("active_concurrent_users").add(1)
    try:
        await ctx.join_fixture(room, pause=0.1)
        for i in range(count):
            result = await ctx.api.send_message(
                ctx.caller,
                room.id,
                f"{label} {i + 1} from {ctx.user.nickname} at {int(time.time() * 1000)}",
                room.room_type,
                endpoint="concurrentSend",
                extra_trends=("concurrent_send_latency",),
                extra_rates=("concurrency_success_rate",),
                extra_timeout_rates=("concurrency_timeout_rate",),
            )
            metrics.counter("messages_sent_concurrent").add()
            if result.ok:
                metrics.counter("messages_success_concurrent").add()
            else:
                metrics.counter("messages_failed_concurrent").add()
            if result.elapsed_ms > LOCK_WAIT_BASELINE_MS:
                metrics.trend("lock_wait_time").add(result.elapsed_ms - LOCK_WAIT_BASELINE_MS)
            await ctx.think(ctx.rng.randint(*pause_ms) / 1000.0)
    finally:
        metrics.gauge("active_concurrent_users").add(-1)


@scenario("single_room_burst")
async def single_room_burst(ctx: ScenarioContext) -> None:
    """Everyone bombards the single shared room, 0-100ms apart."""
    if not ctx.fixtures:
        return
    await _burst(ctx, ctx.fixtures[0], ctx.rng.randint(5, 15), (0, 100), "Burst")


@scenario("multi_room")
async def multi_room(ctx: ScenarioContext) -> None:
    if not ctx.fixtures:
        return
    room = ctx.rng.choice(ctx.fixtures)
    await _burst(ctx, room, ctx.rng.randint(3, 8), (50, 200), "Multi-room message")


@scenario("spike")
async def spike(ctx: ScenarioContext) -> None:
    if not ctx.fixtures:
        return
    await _burst(ctx, ctx.fixtures[0], ctx.rng.randint(10, 20), (0, 10), "SPIKE")


@scenario("message_reader")
async def message_reader(ctx: ScenarioContext) -> None:
    if not ctx.fixtures:
        return
    await ctx.read(ctx.fixtures[0], size=25)
