from __future__ import annotations

import pytest
from pydantic import ValidationError

from chatload.models import (
    AIRoomType,
    ChatRoomType,
    Outcome,
    RoomFixture,
    Stage,
    build_user_pool,
    parse_duration,
    user_for_slot,
)


class TestOutcome:
    def test_already_member_counts_as_ok(self):
        assert Outcome.SUCCESS.ok
        assert Outcome.ALREADY_MEMBER.ok
        assert not Outcome.FAILURE.ok
        assert not Outcome.TIMEOUT.ok


class TestUserPool:
    def test_pool_is_deterministic(self):
        pool = build_user_pool(3, password="secret")
        assert [u.email for u in pool] == ["test1@test.com", "test2@test.com", "test3@test.com"]
        assert [u.nickname for u in pool] == ["TestUser1", "TestUser2", "TestUser3"]
        assert all(u.password == "secret" for u in pool)

    def test_slots_cycle_through_pool(self):
        pool = build_user_pool(5)
        assert user_for_slot(pool, 1).id == 1
        assert user_for_slot(pool, 5).id == 5
        assert user_for_slot(pool, 6).id == 1
        assert user_for_slot(pool, 12).id == 2

    def test_users_are_immutable(self):
        user = build_user_pool(1)[0]
        with pytest.raises(ValidationError):
            user.email = "other@test.com"


class TestRoomFixture:
    def test_direct_room_detected_by_partner(self):
        room = RoomFixture.from_api({"id": 4, "name": "dm", "partner": {"id": 2}})
        assert room.room_type == ChatRoomType.DIRECT

    def test_ai_room_type_parsed(self):
        room = RoomFixture.from_api({"id": 9, "name": "tutor", "roomType": "TUTOR_PERSONAL"})
        assert room.room_type == ChatRoomType.AI
        assert room.ai_room_type == AIRoomType.TUTOR_PERSONAL

    def test_group_room_fields(self):
        room = RoomFixture.from_api(
            {"id": 3, "roomName": "Shared", "hasPassword": True, "memberIds": [1, 2]},
            size=10,
        )
        assert room.room_type == ChatRoomType.GROUP
        assert room.name == "Shared"
        assert room.has_password
        assert room.member_ids == [1, 2]
        assert room.size == 10


class TestStages:
    @pytest.mark.parametrize(
        "text,seconds",
        [("30s", 30), ("2m", 120), ("1m30s", 90), ("500ms", 0.5), ("1h", 3600), ("15", 15)],
    )
    def test_parse_duration(self, text, seconds):
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "abc", "10x", "m"])
    def test_parse_duration_rejects_garbage(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)

    def test_stage_parse(self):
        stage = Stage.parse("1m", 50)
        assert stage.duration_seconds == 60
        assert stage.target == 50

    def test_stage_rejects_negative_target(self):
        with pytest.raises(ValidationError):
            Stage(duration_seconds=10, target=-1)
