"""
Seedable randomness for scenario branching and think time.

Every random decision in the engine goes through a RandomSource so tests can
pin a seed (or script the draws) and get a deterministic trace.
"""

from __future__ import annotations

import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


class RandomSource:
    """
    Thin wrapper over random.Random exposing the draws the harness uses.

    Example:
        rng = RandomSource(seed=42)
        rng.percent()          # integer in [0, 100)
        rng.chance(0.3)        # True 30% of the time
        rng.randint(2, 5)      # inclusive bounds
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._seed = seed
        self._rng = random.Random(seed)

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def percent(self) -> int:
        """Uniform integer draw in [0, 100) for weighted scenario selection."""
        return self._rng.randrange(100)

    def random(self) -> float:
        return self._rng.random()

    def chance(self, p: float) -> bool:
        """True with probability p."""
        return self._rng.random() < p

    def randint(self, low: int, high: int) -> int:
        """Uniform integer in [low, high], both inclusive."""
        return self._rng.randint(low, high)

    def uniform(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("cannot choose from an empty sequence")
        return self._rng.choice(items)

    def spawn(self, index: int) -> "RandomSource":
        """
        Derive an independent source for one virtual user.

        With a seed, the child seed is stable per index so a rerun replays
        the same per-user draws regardless of scheduling order.
        """
        if self._seed is None:
            return RandomSource(self._rng.randrange(2**32))
        return RandomSource(self._seed * 10000 + index)


class ScriptedRandomSource(RandomSource):
    """
    RandomSource that replays fixed values, for deterministic scenario tests.

    `percents`, `chances` and `ints` are consumed in order; when a queue runs
    out the underlying seeded generator takes over. `choice` picks the item
    at the next scripted index when `choices` is given.
    """

    def __init__(
        self,
        *,
        percents: Sequence[int] = (),
        chances: Sequence[bool] = (),
        ints: Sequence[int] = (),
        choices: Sequence[int] = (),
        seed: int = 0,
    ) -> None:
        super().__init__(seed)
        self._percents = list(percents)
        self._chances = list(chances)
        self._ints = list(ints)
        self._choices = list(choices)

    def percent(self) -> int:
        if self._percents:
            return self._percents.pop(0)
        return super().percent()

    def chance(self, p: float) -> bool:
        if self._chances:
            return self._chances.pop(0)
        return super().chance(p)

    def randint(self, low: int, high: int) -> int:
        if self._ints:
            return max(low, min(high, self._ints.pop(0)))
        return super().randint(low, high)

    def uniform(self, low: float, high: float) -> float:
        return low

    def choice(self, items: Sequence[T]) -> T:
        if self._choices:
            return items[self._choices.pop(0) % len(items)]
        return super().choice(items)
