"""Direct and group chat behaviour profiles."""

from __future__ import annotations

import time
from typing import List

from chatload.models import ChatRoomType, RoomFixture
from chatload.scenarios.base import ScenarioContext, scenario


@scenario("direct_focused")
async def direct_focused(ctx: ScenarioContext) -> None:
    """Open direct rooms with a few partners and chat in up to three of them."""
    rooms = await ctx.list_rooms(ChatRoomType.DIRECT)

    for _ in range(ctx.rng.randint(2, 4)):
        partner = ctx.other_user()
        if partner is None:
            continue
        room = await ctx.api.create_direct_room(ctx.caller, partner.id)
        if room is not None:
            rooms.append(ctx.session.remember(room))
            await ctx.think(0.5)

    for room in rooms[:3]:
        await ctx.read(room, size=20)
        await ctx.think(1, 2)
        for _ in range(ctx.rng.randint(2, 5)):
            await ctx.send(room, ctx.template())
            await ctx.think(1, 3)


@scenario("group_casual")
async def group_casual(ctx: ScenarioContext) -> None:
    rooms = await ctx.ensure_group_rooms(public_fallback=True, pause=1.0)
    if not rooms:
        return
    room = ctx.rng.choice(rooms)

    if ctx.rng.chance(0.7):
        await ctx.read(room, size=30)
        await ctx.think(2, 4)

    if ctx.rng.chance(0.3):
        await ctx.send(room, ctx.template())
        await ctx.think(1, 3)


@scenario("group_active")
async def group_active(ctx: ScenarioContext) -> None:
    """Read then post a burst of messages in up to three group rooms."""
    rooms = await ctx.ensure_group_rooms()
    for room in rooms[:3]:
        await ctx.read(room)
        await ctx.think(1, 2)
        for _ in range(ctx.rng.randint(3, 7)):
            await ctx.send(room, ctx.template())
            await ctx.think(1, 2)
        await ctx.think(2, 4)


@scenario("room_manager")
async def room_manager(ctx: ScenarioContext) -> None:
    """
    Create a tagged group room and administer it.

    Invites one extra member 30% of the time, hands ownership to the first
    invited member 10% of the time and leaves the room 20% of the time.
    """
    members: List[int] = []
    for _ in range(ctx.rng.randint(3, 10)):
        candidate = ctx.other_user()
        if candidate is not None and candidate.id not in members:
            members.append(candidate.id)

    room = await ctx.api.create_group_room(
        ctx.caller,
        f"[LOAD_TEST] {ctx.user.nickname}'s room {ctx.rng.randint(1, 1000)}",
        members,
        description="Public load test room",
        topic="LOAD_TEST",
    )
    if room is None:
        return
    ctx.session.remember(room)
    await ctx.think(1)

    await ctx.send(room, "Welcome! Feel free to chat.")
    await ctx.think(1)

    if ctx.rng.chance(0.3):
        newcomer = ctx.other_user()
        if newcomer is not None and newcomer.id not in members:
            if await ctx.api.invite_member(ctx.caller, room.id, newcomer.id):
                await ctx.think(1)
                await ctx.send(room, f"Invited {newcomer.nickname}")

    await ctx.think(2)

    for _ in range(ctx.rng.randint(3, 5)):
        await ctx.send(room, ctx.template())
        await ctx.think(1, 3)

    if ctx.rng.chance(0.1) and members:
        await ctx.api.transfer_ownership(ctx.caller, room.id, members[0])
        await ctx.think(1)

    if ctx.rng.chance(0.2):
        if await ctx.api.leave_room(ctx.caller, room.id, ChatRoomType.GROUP):
            ctx.session.forget(room.id)


@scenario("mixed")
async def mixed(ctx: ScenarioContext) -> None:
    direct_rooms = await ctx.list_rooms(ChatRoomType.DIRECT)
    if direct_rooms:
        room = ctx.rng.choice(direct_rooms)
        await ctx.read(room)
        await ctx.think(1)
        await ctx.send(room, ctx.template())
        await ctx.think(2)

    group_rooms = await ctx.ensure_group_rooms()
    if group_rooms:
        room = ctx.rng.choice(group_rooms)
        await ctx.read(room)
        await ctx.think(1)
        await ctx.send(room, ctx.template())
        await ctx.think(2)

    public = await ctx.api.list_public_rooms(ctx.caller)
    open_rooms = [r for r in public if not r.has_password]
    if open_rooms and ctx.rng.chance(0.5):
        room = ctx.rng.choice(open_rooms)
        if await ctx.join_fixture(room, pause=1.0):
            await ctx.send(room, "Hello!")


@scenario("casual")
async def casual(ctx: ScenarioContext) -> None:
    """
    Light reader: 70% read a page, 30% post once.

    A user with no rooms joins a random shared fixture first.
    """
    rooms: List[RoomFixture] = await ctx.list_rooms(ChatRoomType.DIRECT)
    rooms += await ctx.list_rooms(ChatRoomType.GROUP)

    if not rooms and ctx.fixtures:
        await ctx.join_fixture(ctx.rng.choice(ctx.fixtures), pause=1.0)
        rooms = await ctx.list_rooms(ChatRoomType.GROUP)

    if rooms and ctx.rng.chance(0.7):
        await ctx.read(ctx.rng.choice(rooms), size=25)

    await ctx.think(2, 5)

    if rooms and ctx.rng.chance(0.3):
        room = ctx.rng.choice(rooms)
        await ctx.send(
            room,
            f"Test message from {ctx.user.nickname} at {int(time.time() * 1000)}",
        )


@scenario("active_chat")
async def active_chat(ctx: ScenarioContext) -> None:
    rooms = await ctx.ensure_group_rooms()
    if not rooms:
        return
    room = ctx.rng.choice(rooms)
    for i in range(ctx.rng.randint(5, 10)):
        await ctx.read(room)
        await ctx.think(1, 3)
        await ctx.send(room, f"Active message {i + 1} from {ctx.user.nickname}")
        await ctx.think(2, 4)


@scenario("active")
async def active(ctx: ScenarioContext) -> None:
    rooms = await ctx.ensure_group_rooms()
    for room in rooms[:3]:
        await ctx.read(room)
        await ctx.think(1, 2)
        for _ in range(ctx.rng.randint(3, 5)):
            await ctx.send(room, ctx.template())
            await ctx.think(1, 2)
