"""
Built-in load-test suites.

A Suite bundles the load profiles, the weighted scenario table, the
pass/fail thresholds and the fixture plan of one kind of run.

Usage:
    from chatload.suites import get_suite

    suite = get_suite("comprehensive")
    stages = suite.stages("short")
    table = suite.table("short", ai_available=False)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from chatload.exceptions import ChatloadConfigError
from chatload.fixtures import FixturePlan
from chatload.metrics.thresholds import Threshold, parse_thresholds
from chatload.models import Stage
from chatload.scenarios import scenario_names
from chatload.selector import ScenarioTable


def _stages(stages: Sequence[Tuple[str, int]]) -> Tuple[Stage, ...]:
    return tuple(Stage.parse(duration, target) for duration, target in stages)


@dataclass(frozen=True)
class Suite:
    """
    Attributes:
        name: Suite identifier used by the CLI and config.
        description: One-line summary for --list.
        profiles: Named stage lists.
        weights: Scenario weights, summing to 100.
        thresholds: Metric name to threshold expressions.
        fixtures: Fixture plan used for every profile without an override.
        requires_ai: Refuse to run with the AI backend disabled.
        ai_fallbacks: Scenario replacements applied when AI is disabled.
        iteration_pause: Think time range between iterations, seconds.
        user_pool_size: Pool size override (None uses the configured size).
        profile_weights: Per-profile scenario weights overriding `weights`.
        profile_fixtures: Per-profile fixture plans overriding `fixtures`.
        verify_sequences: Profiles whose teardown checks message sequences.
        default: Profile used when none is configured (first profile if empty).
    """

    name: str
    description: str
    profiles: Mapping[str, Tuple[Stage, ...]]
    weights: Mapping[str, int]
    thresholds: Mapping[str, Sequence[str]]
    fixtures: FixturePlan = field(default_factory=FixturePlan)
    requires_ai: bool = False
    ai_fallbacks: Mapping[str, str] = field(default_factory=dict)
    iteration_pause: Tuple[float, float] = (1.0, 3.0)
    user_pool_size: Optional[int] = None
    profile_weights: Mapping[str, Mapping[str, int]] = field(default_factory=dict)
    profile_fixtures: Mapping[str, FixturePlan] = field(default_factory=dict)
    verify_sequences: Tuple[str, ...] = ()
    default: str = ""

    @property
    def default_profile(self) -> str:
        return self.default or next(iter(self.profiles))

    def stages(self, profile: str) -> List[Stage]:
        try:
            return list(self.profiles[profile])
        except KeyError:
            raise ChatloadConfigError(
                f"Unknown profile {profile!r} for suite {self.name!r}",
                code="unknown_profile",
                details={"suite": self.name, "known": sorted(self.profiles)},
            ) from None

    def table(self, profile: str, *, ai_available: bool = True) -> ScenarioTable:
        self.stages(profile)
        table = ScenarioTable.from_weights(self.profile_weights.get(profile, self.weights))
        if not ai_available:
            if self.requires_ai:
                raise ChatloadConfigError(
                    f"Suite {self.name!r} needs the AI backend, which is disabled",
                    code="ai_required",
                    details={"suite": self.name},
                )
            for old, new in self.ai_fallbacks.items():
                if old in table.scenarios:
                    table = table.replace(old, new)
        return table

    def fixture_plan(self, profile: str) -> FixturePlan:
        return self.profile_fixtures.get(profile, self.fixtures)

    def parsed_thresholds(self) -> List[Threshold]:
        return parse_thresholds(self.thresholds)

    def validate(self) -> None:
        """
        Check every profile ramps down to zero, every table partitions
        [0, 100) and references registered scenarios, and every threshold
        parses. Raises ChatloadConfigError otherwise.
        """
        if not self.profiles:
            raise ChatloadConfigError(f"Suite {self.name!r} has no profiles", code="invalid_profile")
        known = set(scenario_names())
        for profile, stages in self.profiles.items():
            if not stages or stages[-1].target != 0:
                raise ChatloadConfigError(
                    f"Profile {profile!r} of suite {self.name!r} must end with target 0",
                    code="invalid_profile",
                    details={"suite": self.name, "profile": profile},
                )
            table = self.table(profile)
            unknown = set(table.scenarios) - known
            for new in self.ai_fallbacks.values():
                if new not in known:
                    unknown.add(new)
            if unknown:
                raise ChatloadConfigError(
                    f"Suite {self.name!r} references unknown scenarios {sorted(unknown)}",
                    code="unknown_scenario",
                    details={"suite": self.name, "profile": profile},
                )
        self.parsed_thresholds()


_SHARED_ROOM_PLAN = FixturePlan(
    room_sizes=(10,) * 10,
    room_name="[LOAD_TEST] Shared Test Room {index}",
    members_per_room=5,
    seed_messages=20,
)

_SINGLE_ROOM_PLAN = FixturePlan(
    room_sizes=(50,),
    room_name="Concurrency Test - Single Room",
    members_per_room=49,
    seed_messages=0,
    joined_users=50,
    required=True,
)

DIRECT_GROUP = Suite(
    name="direct_group",
    default="full",
    description="Direct and group chat only, AI excluded",
    profiles={
        "short": _stages([("10s", 10), ("20s", 30), ("20s", 60), ("10s", 0)]),
        "medium": _stages([("20s", 20), ("30s", 50), ("40s", 80), ("40s", 120), ("30s", 150), ("20s", 0)]),
        "full": _stages([("20s", 20), ("30s", 50), ("40s", 80), ("40s", 120), ("40s", 150), ("20s", 0)]),
    },
    weights={
        "direct_focused": 20,
        "group_casual": 50,
        "group_active": 20,
        "room_manager": 5,
        "mixed": 5,
    },
    thresholds={
        "http_req_failed": ["rate<0.20"],
        "http_req_duration": ["p(95)<5000", "p(99)<15000"],
        "http_req_duration{endpoint:login}": ["p(95)<500"],
        "http_req_duration{endpoint:getDirectRoomList}": ["p(95)<2000"],
        "http_req_duration{endpoint:getGroupRoomList}": ["p(95)<2000"],
        "http_req_duration{endpoint:getMessages}": ["p(95)<3000"],
        "http_req_duration{endpoint:sendMessage}": ["p(95)<3000"],
        "http_req_duration{endpoint:createRoom}": ["p(95)<3000"],
        "http_req_duration{endpoint:joinRoom}": ["p(95)<2000"],
        "http_req_duration{endpoint:inviteMember}": ["p(95)<1500"],
        "http_req_duration{endpoint:kickMember}": ["p(95)<1500"],
        "message_success_rate": ["rate>0.99"],
        "auth_success_rate": ["rate>0.99"],
        "room_create_success_rate": ["rate>0.95"],
        "permission_denied_rate": ["rate<0.001"],
        "message_read_latency": ["p(95)<1000"],
        "message_send_latency": ["p(95)<3000"],
        "direct_room_list_latency": ["p(95)<1200"],
        "group_room_list_latency": ["p(95)<1200"],
        "room_create_latency": ["p(95)<1500"],
        "room_join_latency": ["p(95)<1200"],
    },
    fixtures=FixturePlan(
        room_sizes=(5, 5, 10, 10, 10, 20, 20, 30, 30, 50, 50, 50, 100, 100, 100),
        room_name="[LOAD_TEST] Shared Test Room {index} ({size} members)",
        login_all=True,
    ),
)

COMPREHENSIVE = Suite(
    name="comprehensive",
    default="full",
    description="Mixed chat traffic with a small share of AI rooms",
    profiles={
        "short": _stages([("30s", 20), ("1m", 50), ("1m", 100), ("30s", 0)]),
        "medium": _stages([("1m", 20), ("2m", 100), ("2m", 200), ("1m", 300), ("30s", 0)]),
        "full": _stages([("1m", 20), ("2m", 100), ("2m", 300), ("2m", 500), ("30s", 800), ("1m", 100), ("30s", 0)]),
    },
    weights={"casual": 60, "active_chat": 30, "room_manager": 5, "ai_chat": 5},
    thresholds={
        "http_req_failed": ["rate<0.01"],
        "http_req_duration": ["p(95)<2000", "p(99)<5000"],
        "http_req_duration{endpoint:login}": ["p(95)<500"],
        "http_req_duration{endpoint:getMessages}": ["p(95)<1000"],
        "http_req_duration{endpoint:sendMessage}": ["p(95)<1500"],
        "http_req_duration{endpoint:createRoom}": ["p(95)<1000"],
        "http_req_duration{endpoint:joinRoom}": ["p(95)<800"],
        "http_req_duration{endpoint:aiChat}": ["p(95)<10000"],
        "message_success_rate": ["rate>0.99"],
        "auth_success_rate": ["rate>0.99"],
        "permission_denied_rate": ["rate<0.001"],
        "message_read_latency": ["p(95)<1000"],
        "message_send_latency": ["p(95)<1500"],
        "room_list_latency": ["p(95)<800"],
        "ai_response_latency": ["p(95)<10000"],
    },
    fixtures=_SHARED_ROOM_PLAN,
    ai_fallbacks={"ai_chat": "casual"},
)

AI = Suite(
    name="ai",
    default="full",
    description="Translation, feedback and AI rooms under load",
    profiles={
        "short": _stages([("30s", 20), ("1m", 50), ("1m", 100), ("30s", 0)]),
        "medium": _stages([("1m", 30), ("2m", 100), ("2m", 200), ("2m", 300), ("1m", 50), ("30s", 0)]),
        "full": _stages([
            ("1m", 30), ("2m", 100), ("2m", 200), ("2m", 350),
            ("2m", 500), ("1m", 700), ("1m", 100), ("30s", 0),
        ]),
    },
    weights={
        "translation_focused": 20,
        "feedback_focused": 20,
        "ai_chat_focused": 15,
        "casual_ai": 30,
        "active": 10,
        "room_manager": 5,
    },
    thresholds={
        "http_req_failed": ["rate<0.02"],
        "http_req_duration": ["p(95)<3000", "p(99)<8000"],
        "http_req_duration{endpoint:login}": ["p(95)<500"],
        "http_req_duration{endpoint:getMessages}": ["p(95)<1000"],
        "http_req_duration{endpoint:sendMessage}": ["p(95)<2000"],
        "translation_success_rate": ["rate>0.90"],
        "translation_latency": ["p(95)<3000"],
        "translation_fallback_rate": ["rate<0.5"],
        "feedback_success_rate": ["rate>0.95"],
        "feedback_latency": ["p(95)<5000"],
        "ai_success_rate": ["rate>0.85"],
        "ai_response_latency": ["p(95)<15000"],
        "ai_timeout_rate": ["rate<0.15"],
        "message_success_rate": ["rate>0.98"],
        "auth_success_rate": ["rate>0.99"],
    },
    fixtures=_SHARED_ROOM_PLAN,
    requires_ai=True,
)

AI_STRESS = Suite(
    name="ai_stress",
    default="full",
    description="AI room conversations only, ramped to find the LLM saturation point",
    profiles={
        "light": _stages([("30s", 2), ("1m", 5), ("1m", 10), ("30s", 0)]),
        "medium": _stages([("30s", 2), ("1m", 5), ("1m", 10), ("1m", 20), ("1m", 5), ("30s", 0)]),
        "full": _stages([
            ("30s", 2), ("1m", 5), ("1m", 10), ("1m", 20),
            ("1m", 30), ("1m", 50), ("1m", 5), ("30s", 0),
        ]),
    },
    weights={
        "ai_roleplay": 30,
        "ai_tutor_personal": 25,
        "ai_tutor_similar": 20,
        "ai_feedback": 15,
        "ai_mixed": 10,
    },
    thresholds={
        "http_req_failed": ["rate<0.05"],
        "http_req_duration{endpoint:aiChat}": ["p(95)<15000", "p(99)<30000"],
        "ai_success_rate": ["rate>0.90"],
        "ai_timeout_rate": ["rate<0.10"],
        "ai_error_rate": ["rate<0.05"],
        "ai_response_latency": ["p(50)<5000", "p(95)<15000", "p(99)<30000"],
        "ai_roleplay_latency": ["p(95)<10000"],
        "ai_tutor_personal_latency": ["p(95)<20000"],
        "ai_tutor_similar_latency": ["p(95)<20000"],
        "feedback_latency": ["p(95)<10000"],
    },
    requires_ai=True,
    iteration_pause=(2.0, 5.0),
    user_pool_size=50,
)

CONCURRENCY = Suite(
    name="concurrency",
    default="single",
    description="Room lock and message sequence contention",
    profiles={
        "single": _stages([("10s", 10), ("30s", 50), ("30s", 100), ("10s", 200), ("30s", 20), ("10s", 0)]),
        "multi": _stages([("10s", 10), ("30s", 100), ("30s", 200), ("30s", 50), ("10s", 0)]),
        "spike": _stages([("10s", 10), ("5s", 500), ("20s", 10), ("5s", 500), ("20s", 10), ("10s", 0)]),
    },
    weights={"single_room_burst": 100},
    thresholds={
        "http_req_failed": ["rate<0.05"],
        "http_req_duration{endpoint:concurrentSend}": ["p(95)<5000", "p(99)<10000"],
        "concurrency_success_rate": ["rate>0.95"],
        "concurrency_timeout_rate": ["rate<0.05"],
        "concurrent_send_latency": ["p(50)<1000", "p(95)<5000", "p(99)<10000"],
    },
    fixtures=_SINGLE_ROOM_PLAN,
    iteration_pause=(0.0, 0.5),
    profile_weights={
        "single": {"single_room_burst": 100},
        "multi": {"multi_room": 100},
        "spike": {"spike": 100},
    },
    profile_fixtures={
        "multi": FixturePlan(
            room_sizes=(20,) * 10,
            room_name="Concurrency Test - Room {index}",
            member_stride=5,
            members_per_room=10,
            seed_messages=0,
            required=True,
        ),
    },
    verify_sequences=("single", "spike"),
)

QUICK = Suite(
    name="quick",
    description="Read-only smoke test against one seeded room",
    profiles={
        "default": _stages([
            ("30s", 50), ("1m", 50), ("30s", 100), ("1m", 100),
            ("30s", 200), ("1m", 200), ("30s", 0),
        ]),
    },
    weights={"message_reader": 100},
    thresholds={
        "http_req_duration": ["p(95)<1000"],
        "http_req_failed": ["rate<0.01"],
        "http_req_duration{endpoint:getMessages}": ["p(95)<800"],
    },
    fixtures=FixturePlan(
        room_sizes=(5,),
        room_name="LoadTestRoom",
        members_per_room=4,
        seed_messages=100,
        joined_users=5,
        required=True,
    ),
    iteration_pause=(1.0, 1.0),
    user_pool_size=5,
)

SUITES: Dict[str, Suite] = {s.name: s for s in (DIRECT_GROUP, COMPREHENSIVE, AI, AI_STRESS, CONCURRENCY, QUICK)}


def get_suite(name: str) -> Suite:
    try:
        return SUITES[name]
    except KeyError:
        raise ChatloadConfigError(
            f"Unknown suite {name!r}",
            code="unknown_suite",
            details={"known": sorted(SUITES)},
        ) from None


def resolve_profile(suite: Suite, profile: Optional[str]) -> str:
    """
    The profile to run: `profile` when the suite has it, otherwise the
    suite's default when `profile` is None. Unknown names are an error.
    """
    if profile is None:
        return suite.default_profile
    suite.stages(profile)
    return profile
