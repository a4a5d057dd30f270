"""
Behaviour profiles run by virtual users.

Importing this package registers every built-in scenario.
"""

from chatload.scenarios.base import (
    MESSAGE_TEMPLATES,
    ScenarioContext,
    ScenarioFn,
    get_scenario,
    scenario,
    scenario_names,
)
from chatload.scenarios import ai, chat, concurrency  # noqa: F401

__all__ = [
    "MESSAGE_TEMPLATES",
    "ScenarioContext",
    "ScenarioFn",
    "get_scenario",
    "scenario",
    "scenario_names",
]
