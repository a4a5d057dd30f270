"""AI-backed behaviour profiles: AI rooms, translation and feedback."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from chatload.models import AIRoomType, ChatRoomType, RoomFixture
from chatload.scenarios.base import ScenarioContext, scenario

AI_PERSONAS = (1, 2, 3, 4, 5)

AI_QUESTIONS: Dict[AIRoomType, Tuple[str, ...]] = {
    AIRoomType.ROLE_PLAY: (
        "Hello! How are you today?",
        "What's your favorite hobby?",
        "Can you help me practice English?",
    ),
    AIRoomType.TUTOR_PERSONAL: (
        "What is a SELECT statement in SQL?",
        "How do I use JOIN in SQL?",
        "Explain primary key to me",
    ),
    AIRoomType.TUTOR_SIMILAR: (
        "What is REST API?",
        "Explain object-oriented programming",
        "How does authentication work?",
    ),
}

FEEDBACK_SAMPLES = (
    (
        {"role": "user", "content": "I goes to school yesterday"},
        {"role": "assistant", "content": "I went to school yesterday"},
    ),
    (
        {"role": "user", "content": "She don't like coffee"},
        {"role": "assistant", "content": "She doesn't like coffee"},
    ),
)

ENGLISH_TEMPLATES = (
    "Hello! How are you today?",
    "I'm learning English now",
    "This is a test message",
    "Can you help me?",
    "Thank you very much",
    "See you later",
    "Have a good day",
    "I understand",
    "Let me know",
    "That sounds great!",
)


async def _ai_room(ctx: ScenarioContext, name: str) -> Optional[RoomFixture]:
    """An existing AI room of the user, or a new one with a random persona."""
    rooms = await ctx.list_rooms(ChatRoomType.AI)
    if not rooms:
        room = await ctx.api.create_ai_room(
            ctx.caller,
            name,
            ctx.rng.choice(AI_PERSONAS),
            ctx.rng.choice(list(AIRoomType)),
        )
        if room is not None:
            rooms = [ctx.session.remember(room)]
    if not rooms:
        return None
    return ctx.rng.choice(rooms)


@scenario("ai_chat")
async def ai_chat(ctx: ScenarioContext) -> None:
    """Converse with an AI room, waiting for each answer, then maybe ask for feedback."""
    room = await _ai_room(ctx, f"AI Chat {ctx.user.nickname}")
    if room is None:
        return

    for i in range(ctx.rng.randint(3, 5)):
        await ctx.send(room, f"AI question {i + 1}: What is the best way to learn English?")
        await ctx.think(3, 8)
        await ctx.read(room)
        await ctx.think(2, 5)

    if ctx.rng.chance(0.3):
        await ctx.api.request_feedback(ctx.caller, FEEDBACK_SAMPLES[0])


@scenario("ai_chat_focused")
async def ai_chat_focused(ctx: ScenarioContext) -> None:
    room = await _ai_room(ctx, f"[LOAD_TEST] AI Chat {ctx.user.nickname}")
    if room is None:
        return
    room_type = room.ai_room_type or AIRoomType.ROLE_PLAY
    questions = AI_QUESTIONS[room_type]

    for _ in range(ctx.rng.randint(3, 6)):
        await ctx.send(room, ctx.rng.choice(questions))
        await ctx.think(4, 10)
        await ctx.read(room)
        await ctx.think(2, 5)


@scenario("translation_focused")
async def translation_focused(ctx: ScenarioContext) -> None:
    rooms = await ctx.ensure_group_rooms()
    if not rooms:
        return
    room = ctx.rng.choice(rooms)
    for _ in range(ctx.rng.randint(5, 8)):
        await ctx.send(room, ctx.rng.choice(ENGLISH_TEMPLATES), translate=True)
        await ctx.think(2, 5)


@scenario("feedback_focused")
async def feedback_focused(ctx: ScenarioContext) -> None:
    """Chat a little, then request one or two feedback analyses."""
    rooms = await ctx.ensure_group_rooms()
    if not rooms:
        return
    room = ctx.rng.choice(rooms)

    for _ in range(ctx.rng.randint(2, 3)):
        await ctx.send(room, ctx.rng.choice(ENGLISH_TEMPLATES))
        await ctx.think(1, 3)

    await ctx.api.request_feedback(ctx.caller, FEEDBACK_SAMPLES[0], target_language="en")
    await ctx.think(3, 6)

    if ctx.rng.chance(0.5):
        await ctx.api.request_feedback(ctx.caller, FEEDBACK_SAMPLES[1], target_language="en")


@scenario("casual_ai")
async def casual_ai(ctx: ScenarioContext) -> None:
    rooms = await ctx.ensure_group_rooms()
    if not rooms:
        return
    room = ctx.rng.choice(rooms)

    await ctx.read(room)
    await ctx.think(2, 4)

    translate = ctx.rng.chance(0.3)
    await ctx.send(room, ctx.rng.choice(ENGLISH_TEMPLATES), translate=translate)
    await ctx.think(2, 4)

    if ctx.rng.chance(0.2):
        transcript: List[Dict[str, str]] = [
            {"role": "user", "content": ctx.rng.choice(ENGLISH_TEMPLATES)},
            {"role": "assistant", "content": ctx.rng.choice(ENGLISH_TEMPLATES)},
        ]
        await ctx.api.request_feedback(ctx.caller, transcript)


# AI stress profiles: one conversation per AI room type, feedback and a mix.

STRESS_FEEDBACK_SAMPLES = FEEDBACK_SAMPLES + (
    (
        {"role": "user", "content": "We was happy"},
        {"role": "assistant", "content": "We were happy"},
    ),
)


async def _typed_ai_room(ctx: ScenarioContext, room_type: AIRoomType, name: str) -> Optional[RoomFixture]:
    """The user's first AI room of `room_type`, created with a random persona when missing."""
    rooms = await ctx.list_rooms(ChatRoomType.AI)
    for room in rooms:
        if room.ai_room_type == room_type:
            return room
    room = await ctx.api.create_ai_room(ctx.caller, name, ctx.rng.choice(AI_PERSONAS), room_type)
    if room is not None:
        ctx.session.remember(room)
    return room


async def _converse(
    ctx: ScenarioContext,
    room_type: AIRoomType,
    name: str,
    rounds: Tuple[int, int],
    read_after: Tuple[float, float],
    between: Tuple[float, float],
) -> None:
    gauge = ctx.api.metrics.gauge("active_ai_users")
    gauge.add(1)
    try:
        room = await _typed_ai_room(ctx, room_type, f"{name} {ctx.user.nickname}")
        if room is None:
            return
        for _ in range(ctx.rng.randint(*rounds)):
            if await ctx.send(room, ctx.rng.choice(AI_QUESTIONS[room_type])):
                await ctx.think(*read_after)
                await ctx.read(room, size=10)
            else:
                await ctx.think(2)
            await ctx.think(*between)
    finally:
        gauge.add(-1)


@scenario("ai_roleplay")
async def ai_roleplay(ctx: ScenarioContext) -> None:
    await _converse(ctx, AIRoomType.ROLE_PLAY, "Role-Play", (3, 7), (2, 5), (3, 8))


@scenario("ai_tutor_personal")
async def ai_tutor_personal(ctx: ScenarioContext) -> None:
    await _converse(ctx, AIRoomType.TUTOR_PERSONAL, "SQL Tutor", (5, 10), (3, 8), (5, 12))


@scenario("ai_tutor_similar")
async def ai_tutor_similar(ctx: ScenarioContext) -> None:
    await _converse(ctx, AIRoomType.TUTOR_SIMILAR, "Similar Tutor", (3, 6), (3, 8), (5, 12))


@scenario("ai_feedback")
async def ai_feedback(ctx: ScenarioContext) -> None:
    """Run every stored transcript through feedback analysis."""
    gauge = ctx.api.metrics.gauge("active_ai_users")
    gauge.add(1)
    try:
        for transcript in STRESS_FEEDBACK_SAMPLES:
            await ctx.api.request_feedback(ctx.caller, transcript, target_language="en")
            await ctx.think(5, 10)
    finally:
        gauge.add(-1)


@scenario("ai_mixed")
async def ai_mixed(ctx: ScenarioContext) -> None:
    """Two to four single questions, each to a room of a randomly drawn AI type."""
    gauge = ctx.api.metrics.gauge("active_ai_users")
    gauge.add(1)
    try:
        for _ in range(ctx.rng.randint(2, 4)):
            room_type = ctx.rng.choice(list(AIRoomType))
            room = await _typed_ai_room(ctx, room_type, f"Mixed {room_type.value} {ctx.user.nickname}")
            if room is None:
                continue
            await ctx.send(room, ctx.rng.choice(AI_QUESTIONS[room_type]))
            await ctx.think(5, 12)
    finally:
        gauge.add(-1)
