from __future__ import annotations

import pytest

from chatload.random_source import RandomSource, ScriptedRandomSource


def _draws(rng: RandomSource) -> list:
    return [rng.percent() for _ in range(20)] + [rng.randint(2, 5) for _ in range(5)]


def test_same_seed_same_draws():
    assert _draws(RandomSource(42)) == _draws(RandomSource(42))


def test_percent_in_range():
    rng = RandomSource(1)
    assert all(0 <= rng.percent() < 100 for _ in range(1000))


def test_spawn_is_stable_per_index():
    a = RandomSource(7).spawn(3)
    b = RandomSource(7).spawn(3)
    c = RandomSource(7).spawn(4)
    assert _draws(a) == _draws(b)
    assert _draws(a) != _draws(c)


def test_unseeded_spawn_still_works():
    child = RandomSource().spawn(1)
    assert 0 <= child.percent() < 100


def test_choice_rejects_empty():
    with pytest.raises(IndexError):
        RandomSource(0).choice([])


def test_scripted_values_replay_in_order():
    rng = ScriptedRandomSource(percents=[10, 90], chances=[True, False], ints=[3], choices=[2])
    assert rng.percent() == 10
    assert rng.percent() == 90
    assert rng.chance(0.1) is True
    assert rng.chance(0.9) is False
    assert rng.randint(1, 5) == 3
    assert rng.choice(["a", "b", "c"]) == "c"
    assert rng.uniform(2, 5) == 2


def test_scripted_ints_are_clamped():
    rng = ScriptedRandomSource(ints=[50, -1])
    assert rng.randint(3, 7) == 7
    assert rng.randint(3, 7) == 3
