"""
Scenario plumbing: the per-iteration context and the scenario registry.

A scenario is an async function taking a ScenarioContext. It issues its
actions through ctx.api (which measures and reports them) and pauses with
ctx.think(). Scenarios never raise for remote failures; they give up on the
current iteration by returning.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from chatload.client import Caller, ChatApiClient
from chatload.models import ChatRoomType, RoomFixture, VirtualUser
from chatload.random_source import RandomSource
from chatload.session import Session

MESSAGE_TEMPLATES = (
    "Hello!",
    "The weather is really nice today",
    "What should we get for lunch?",
    "Could you confirm the meeting time?",
    "Sharing the project status now",
    "Great work, everyone!",
    "Thank you",
    "Sure, got it",
    "Confirmed",
    "That's a great idea!",
    "I agree",
    "Please wait a moment",
    "I'll share it shortly",
    "I have a question",
    "Any thoughts on this?",
)


@dataclass
class ScenarioContext:
    """
    Everything one scenario iteration may touch.

    Attributes:
        api: Shared measuring API client.
        session: Per-iteration session (user, token, known rooms).
        rng: The virtual user's random source.
        fixtures: Shared rooms created during setup (read-only).
        pool: The full virtual user pool, for picking partners and members.
        think_scale: Multiplier on every think-time pause.
    """

    api: ChatApiClient
    session: Session
    rng: RandomSource
    fixtures: Sequence[RoomFixture] = field(default_factory=list)
    pool: Sequence[VirtualUser] = field(default_factory=list)
    think_scale: float = 1.0

    @property
    def user(self) -> VirtualUser:
        return self.session.user

    @property
    def caller(self) -> Caller:
        return Caller(
            token=self.session.token,
            user=self.session.user,
            scenario=self.session.scenario,
            vu_id=self.session.vu_id,
            session=self.session,
        )

    async def think(self, low: float, high: Optional[float] = None) -> None:
        """Pause for a uniform duration in [low, high] seconds, scaled."""
        seconds = low if high is None else self.rng.uniform(low, high)
        seconds *= self.think_scale
        if seconds > 0:
            await asyncio.sleep(seconds)

    def template(self) -> str:
        return self.rng.choice(MESSAGE_TEMPLATES)

    def other_user(self) -> Optional[VirtualUser]:
        """A random pool member, or None when the draw lands on the session user."""
        candidate = self.rng.choice(self.pool)
        if candidate.id == self.user.id:
            return None
        return candidate

    async def list_rooms(self, room_type: ChatRoomType) -> List[RoomFixture]:
        rooms = await self.api.list_rooms(self.caller, room_type)
        for room in rooms:
            self.session.remember(room)
        return rooms

    async def join_fixture(self, room: RoomFixture, *, pause: float = 0.0) -> bool:
        result = await self.api.join_group_room(self.caller, room.id, password=room.password)
        if result.ok:
            self.session.remember(room)
        if pause:
            await self.think(pause)
        return result.ok

    async def ensure_group_rooms(
        self,
        *,
        public_fallback: bool = False,
        pause: float = 0.0,
    ) -> List[RoomFixture]:
        """
        List the user's group rooms, joining one when the list is empty.

        A random shared fixture is tried first; with `public_fallback` a
        random password-less public room is tried next.
        """
        rooms = await self.list_rooms(ChatRoomType.GROUP)
        if rooms:
            return rooms
        if self.fixtures:
            await self.join_fixture(self.rng.choice(self.fixtures), pause=pause)
            rooms = await self.list_rooms(ChatRoomType.GROUP)
        if not rooms and public_fallback:
            public = await self.api.list_public_rooms(self.caller)
            open_rooms = [r for r in public if not r.has_password]
            if open_rooms:
                await self.join_fixture(self.rng.choice(open_rooms), pause=pause)
                rooms = await self.list_rooms(ChatRoomType.GROUP)
        return rooms

    async def read(self, room: RoomFixture, *, size: int = 25) -> Optional[dict]:
        return await self.api.get_messages(self.caller, room.id, room.room_type, size=size)

    async def send(self, room: RoomFixture, content: str, **kwargs) -> bool:
        result = await self.api.send_message(
            self.caller,
            room.id,
            content,
            room.room_type,
            ai_room_type=room.ai_room_type,
            **kwargs,
        )
        return result.ok


ScenarioFn = Callable[[ScenarioContext], Awaitable[None]]

_REGISTRY: Dict[str, ScenarioFn] = {}


def scenario(name: str) -> Callable[[ScenarioFn], ScenarioFn]:
    """Register a scenario function under `name`."""

    def decorator(fn: ScenarioFn) -> ScenarioFn:
        if name in _REGISTRY:
            raise ValueError(f"scenario {name!r} registered twice")
        _REGISTRY[name] = fn
        return fn

    return decorator


def get_scenario(name: str) -> ScenarioFn:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise KeyError(f"unknown scenario {name!r}; known: {sorted(_REGISTRY)}") from None


def scenario_names() -> List[str]:
    return sorted(_REGISTRY)
