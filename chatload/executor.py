"""
Session executor: one virtual user's iteration loop.

Each iteration authenticates (token cache first), draws a scenario from the
suite's table, runs it with a fresh Session and pauses before the next one.
Nothing a scenario does can escape into other virtual users: remote errors
are outcomes, and unexpected exceptions are logged and counted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, Tuple

from chatload.client import ChatApiClient
from chatload.models import RoomFixture, VirtualUser, user_for_slot
from chatload.random_source import RandomSource
from chatload.scenarios import ScenarioContext, get_scenario
from chatload.selector import ScenarioTable
from chatload.session import Session, TokenCache

logger = logging.getLogger(__name__)


class SessionExecutor:
    """
    Runs scenario iterations for virtual users.

    Shared by every virtual user of a run; per-user state lives in the
    Session created for each iteration and in the RandomSource passed in.
    """

    def __init__(
        self,
        api: ChatApiClient,
        table: ScenarioTable,
        tokens: TokenCache,
        pool: Sequence[VirtualUser],
        *,
        fixtures: Sequence[RoomFixture] = (),
        think_scale: float = 1.0,
        iteration_pause: Tuple[float, float] = (1.0, 3.0),
    ) -> None:
        if not pool:
            raise ValueError("user pool is empty")
        self._api = api
        self._table = table
        self._tokens = tokens
        self._pool = list(pool)
        self._fixtures = list(fixtures)
        self._think_scale = think_scale
        self._iteration_pause = iteration_pause

    async def authenticate(self, user: VirtualUser, vu_id: int) -> Optional[str]:
        """Cached token for the user, or a fresh login published to the cache."""
        token = self._tokens.get(user.id)
        if token:
            return token
        token = await self._api.login(user, vu_id=vu_id)
        if token:
            self._tokens.put(user.id, token)
        return token

    async def run_iteration(
        self,
        vu_id: int,
        rng: RandomSource,
        iteration: int = 0,
    ) -> Optional[str]:
        """
        Run one iteration for virtual user `vu_id`.

        Returns:
            The scenario name that ran, or None if the iteration was skipped
            because login failed.
        """
        metrics = self._api.metrics
        user = user_for_slot(self._pool, vu_id)

        token = await self.authenticate(user, vu_id)
        if not token:
            metrics.counter("iterations_skipped").add()
            logger.debug("VU %d: login failed for %s, iteration skipped", vu_id, user.email)
            await self._pause(rng)
            return None

        name = self._table.draw(rng)
        session = Session(user=user, token=token, vu_id=vu_id, scenario=name, iteration=iteration)
        ctx = ScenarioContext(
            api=self._api,
            session=session,
            rng=rng,
            fixtures=self._fixtures,
            pool=self._pool,
            think_scale=self._think_scale,
        )

        metrics.counter(f"scenario_runs{{scenario:{name}}}").add()
        metrics.gauge("active_users").add(1)
        try:
            await get_scenario(name)(ctx)
        except asyncio.CancelledError:
            raise
        except Exception:
            metrics.counter("scenario_errors").add()
            logger.exception("VU %d: scenario %s raised", vu_id, name)
        finally:
            metrics.gauge("active_users").add(-1)

        if session.rejected_token is not None:
            if self._tokens.discard(user.id, session.rejected_token):
                metrics.counter("tokens_evicted").add()
                logger.info(
                    "VU %d: token for %s rejected with 401, logging in again next iteration",
                    vu_id,
                    user.email,
                )

        await self._pause(rng)
        return name

    async def run_vu(self, vu_id: int, stop: asyncio.Event, rng: RandomSource) -> None:
        """Loop iterations until `stop` is set; the current iteration always completes."""
        iteration = 0
        while not stop.is_set():
            await self.run_iteration(vu_id, rng, iteration)
            self._api.metrics.counter("iterations").add()
            iteration += 1

    async def _pause(self, rng: RandomSource) -> None:
        low, high = self._iteration_pause
        seconds = rng.uniform(low, high) * self._think_scale
        if seconds > 0:
            await asyncio.sleep(seconds)
        else:
            # Yield so a zero-pause loop cannot starve the driver.
            await asyncio.sleep(0)
