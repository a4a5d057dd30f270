from __future__ import annotations

import asyncio

import pytest

from chatload.executor import SessionExecutor
from chatload.models import RoomFixture, build_user_pool
from chatload.random_source import RandomSource
from chatload.scenarios import base as scenarios_base
from chatload.selector import ScenarioTable
from chatload.session import TokenCache

from fake_backend import FakeChatBackend, make_api


def _executor(api, backend, *, weights=None, fixtures=(), pool_size=10, tokens=None):
    return SessionExecutor(
        api,
        ScenarioTable.from_weights(weights or {"message_reader": 100}),
        tokens if tokens is not None else TokenCache(),
        build_user_pool(pool_size),
        fixtures=fixtures,
        think_scale=0,
        iteration_pause=(0, 0),
    )


@pytest.mark.anyio
async def test_token_is_reused_across_iterations():
    backend = FakeChatBackend()
    room = backend.add_room("[LOAD_TEST] shared", owner_id=1, members={1, 2, 3})
    api, registry, _ = make_api(backend)
    tokens = TokenCache()
    async with api:
        executor = _executor(api, backend, fixtures=[RoomFixture(id=room.id)], tokens=tokens)
        for iteration in range(3):
            name = await executor.run_iteration(2, RandomSource(1), iteration)
            assert name == "message_reader"

    assert backend.login_calls == {2: 1}
    assert tokens.get(2) == "token-2"
    assert backend.route_count("messages") == 3
    assert registry.counter("scenario_runs{scenario:message_reader}").get() == 3
    assert registry.gauge("active_users").get() == 0


@pytest.mark.anyio
async def test_cached_token_skips_login():
    backend = FakeChatBackend()
    api, _, _ = make_api(backend)
    async with api:
        executor = _executor(api, backend, tokens=TokenCache({4: "token-4"}))
        await executor.run_iteration(4, RandomSource(1))

    assert backend.login_calls == {}


@pytest.mark.anyio
async def test_failed_login_skips_iteration():
    backend = FakeChatBackend()
    backend.fail_users.add(5)
    api, registry, _ = make_api(backend)
    async with api:
        executor = _executor(api, backend)
        name = await executor.run_iteration(5, RandomSource(1))

    assert name is None
    assert registry.counter("iterations_skipped").get() == 1
    assert backend.route_count("messages") == 0
    assert registry.get("scenario_runs{scenario:message_reader}") is None


@pytest.mark.anyio
async def test_scenario_exception_is_counted(monkeypatch: pytest.MonkeyPatch):
    async def exploding(ctx):
        raise RuntimeError("scenario bug")

    monkeypatch.setitem(scenarios_base._REGISTRY, "exploding", exploding)
    backend = FakeChatBackend()
    api, registry, _ = make_api(backend)
    async with api:
        executor = _executor(api, backend, weights={"exploding": 100})
        name = await executor.run_iteration(1, RandomSource(1))

    assert name == "exploding"
    assert registry.counter("scenario_errors").get() == 1
    assert registry.gauge("active_users").get() == 0


@pytest.mark.anyio
async def test_vu_slots_cycle_through_pool():
    backend = FakeChatBackend()
    api, _, _ = make_api(backend)
    async with api:
        executor = _executor(api, backend, pool_size=3)
        await executor.run_iteration(5, RandomSource(1))

    assert backend.login_calls == {2: 1}


@pytest.mark.anyio
async def test_run_vu_stops_on_event():
    backend = FakeChatBackend()
    api, registry, _ = make_api(backend)
    stop = asyncio.Event()
    async with api:
        executor = _executor(api, backend)
        task = asyncio.create_task(executor.run_vu(1, stop, RandomSource(1)))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

    assert registry.counter("iterations").get() >= 1
    assert backend.login_calls == {1: 1}


@pytest.mark.anyio
async def test_rejected_token_is_evicted_and_refreshed():
    backend = FakeChatBackend()
    room = backend.add_room("[LOAD_TEST] shared", owner_id=1, members={1, 2})
    api, registry, _ = make_api(backend)
    tokens = TokenCache({2: "expired-token"})
    async with api:
        executor = _executor(api, backend, fixtures=[RoomFixture(id=room.id)], tokens=tokens)
        await executor.run_iteration(2, RandomSource(1), 0)
        assert tokens.get(2) is None
        await executor.run_iteration(2, RandomSource(1), 1)
        await executor.run_iteration(2, RandomSource(1), 2)

    assert backend.login_calls == {2: 1}
    assert tokens.get(2) == "token-2"
    assert registry.counter("tokens_evicted").get() == 1
    assert registry.rate("http_req_failed").summary()["passes"] == 1
