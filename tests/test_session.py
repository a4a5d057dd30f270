from __future__ import annotations

from chatload.models import ChatRoomType, RoomFixture, build_user_pool
from chatload.session import Session, TokenCache


def test_token_cache_put_get_discard():
    tokens = TokenCache({1: "token-1"})
    tokens.put(2, "token-2")
    tokens.put(2, "token-2b")

    assert tokens.get(2) == "token-2b"
    assert 1 in tokens and len(tokens) == 2

    tokens.discard(1)
    tokens.discard(99)
    assert tokens.get(1) is None
    assert tokens.snapshot() == {2: "token-2b"}


def test_session_tracks_rooms_by_id_and_type():
    user = build_user_pool(1)[0]
    session = Session(user=user, token="token-1", vu_id=1)

    session.remember(RoomFixture(id=5, room_type=ChatRoomType.GROUP))
    session.remember(RoomFixture(id=5, room_type=ChatRoomType.GROUP))
    session.remember(RoomFixture(id=5, room_type=ChatRoomType.DIRECT))
    session.remember(RoomFixture(id=6, room_type=ChatRoomType.AI))

    assert len(session.rooms) == 3
    assert [r.id for r in session.rooms_of(ChatRoomType.GROUP)] == [5]

    session.forget(5)
    assert [r.id for r in session.rooms] == [6]


def test_conditional_discard_keeps_a_newer_token():
    tokens = TokenCache({3: "token-3-new"})

    assert tokens.discard(3, "token-3-old") is False
    assert tokens.get(3) == "token-3-new"
    assert tokens.discard(3, "token-3-new") is True
    assert tokens.discard(3) is False
