"""
Weighted scenario selection.

A ScenarioTable is an ordered list of (threshold, scenario) pairs whose
thresholds are cumulative upper bounds over [0, 100). A draw d selects the
first entry whose threshold is greater than d.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Tuple

from chatload.exceptions import ChatloadConfigError
from chatload.random_source import RandomSource

TABLE_SPAN = 100


@dataclass(frozen=True)
class ScenarioEntry:
    threshold: int
    scenario: str


class ScenarioTable:
    """
    Validated cumulative-weight table.

    Example:
        table = ScenarioTable.from_weights({"casual": 60, "active_chat": 30, "room_manager": 10})
        table.select(59)   # "casual"
        table.select(60)   # "active_chat"
    """

    def __init__(self, entries: Iterable[Tuple[int, str]]) -> None:
        self._entries: List[ScenarioEntry] = [ScenarioEntry(int(t), s) for t, s in entries]
        self.validate()

    @classmethod
    def from_weights(cls, weights: Mapping[str, int]) -> "ScenarioTable":
        """Build a table from per-scenario weights (insertion order is kept)."""
        bad = {name: w for name, w in weights.items() if w <= 0}
        if bad:
            raise ChatloadConfigError(
                f"Scenario weights must be positive: {bad}",
                code="invalid_scenario_table",
                details={"weights": dict(weights)},
            )
        entries: List[Tuple[int, str]] = []
        total = 0
        for name, weight in weights.items():
            total += weight
            entries.append((total, name))
        return cls(entries)

    @property
    def entries(self) -> List[ScenarioEntry]:
        return list(self._entries)

    @property
    def scenarios(self) -> List[str]:
        return [e.scenario for e in self._entries]

    def weights(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        previous = 0
        for entry in self._entries:
            out[entry.scenario] = entry.threshold - previous
            previous = entry.threshold
        return out

    def validate(self) -> None:
        """Raise ChatloadConfigError unless the table partitions [0, 100) exactly."""
        if not self._entries:
            raise ChatloadConfigError("Scenario table is empty", code="invalid_scenario_table")
        previous = 0
        for entry in self._entries:
            if entry.threshold <= previous:
                raise ChatloadConfigError(
                    f"Scenario thresholds must be strictly increasing from 0 "
                    f"({entry.scenario!r} at {entry.threshold} after {previous})",
                    code="invalid_scenario_table",
                    details={"entries": [(e.threshold, e.scenario) for e in self._entries]},
                )
            previous = entry.threshold
        if previous != TABLE_SPAN:
            raise ChatloadConfigError(
                f"Scenario table must end at {TABLE_SPAN}, ends at {previous}",
                code="invalid_scenario_table",
                details={"entries": [(e.threshold, e.scenario) for e in self._entries]},
            )

    def select(self, draw: int) -> str:
        if not 0 <= draw < TABLE_SPAN:
            raise ValueError(f"draw must be in [0, {TABLE_SPAN}), got {draw}")
        for entry in self._entries:
            if draw < entry.threshold:
                return entry.scenario
        # Unreachable for a validated table.
        raise ValueError(f"no scenario for draw {draw}")

    def draw(self, rng: RandomSource) -> str:
        return self.select(rng.percent())

    def replace(self, old: str, new: str) -> "ScenarioTable":
        """
        Return a table where `old` is swapped for `new`, merging weights when
        `new` is already present.
        """
        merged: Dict[str, int] = {}
        for name, weight in self.weights().items():
            key = new if name == old else name
            merged[key] = merged.get(key, 0) + weight
        return ScenarioTable.from_weights(merged)

    def __repr__(self) -> str:
        return f"ScenarioTable({[(e.threshold, e.scenario) for e in self._entries]})"
