"""
chatload - Virtual-user load generator for a chat REST API.

Run a built-in suite:
    import asyncio
    from chatload import LoadRunner, Settings

    settings = Settings.from_env(suite="comprehensive", profile="short")
    result = asyncio.run(LoadRunner(settings).run())
    print(result.format())
    result.raise_for_thresholds()

Building blocks via submodules:
    from chatload.driver import LoadProfileDriver
    from chatload.selector import ScenarioTable
    from chatload.metrics import MetricsRegistry, parse_thresholds
    from chatload.fixtures import SetupCoordinator, FixturePlan
"""

# =============================================================================
# Core API
# =============================================================================
from chatload.config import Settings, get_settings, reset_settings  # noqa: F401
from chatload.runner import LoadRunner, RunResult  # noqa: F401
from chatload.suites import SUITES, Suite, get_suite  # noqa: F401

# =============================================================================
# Data types
# =============================================================================
from chatload.models import (  # noqa: F401
    AIRoomType,
    ChatRoomType,
    Outcome,
    RoomFixture,
    Stage,
    VirtualUser,
)

# =============================================================================
# Typed exceptions
# =============================================================================
from chatload.exceptions import (
    ChatloadError,
    ChatloadConfigError,
    ChatloadSetupError,
    ChatloadApiError,
    ChatloadThresholdError,
)

__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "LoadRunner",
    "RunResult",
    "SUITES",
    "Suite",
    "get_suite",
    "AIRoomType",
    "ChatRoomType",
    "Outcome",
    "RoomFixture",
    "Stage",
    "VirtualUser",
    "ChatloadError",
    "ChatloadConfigError",
    "ChatloadSetupError",
    "ChatloadApiError",
    "ChatloadThresholdError",
]
