from __future__ import annotations

import pytest

from chatload.exceptions import ChatloadSetupError
from chatload.fixtures import FixturePlan, SetupCoordinator
from chatload.models import build_user_pool
from chatload.session import TokenCache

from fake_backend import FakeChatBackend, make_api


def _coordinator(api, plan: FixturePlan, *, pool_size: int = 20, tokens=None) -> SetupCoordinator:
    return SetupCoordinator(
        api,
        build_user_pool(pool_size),
        tokens if tokens is not None else TokenCache(),
        plan,
        think_scale=0,
    )


class TestSetup:
    @pytest.mark.anyio
    async def test_batched_login_tolerates_partial_failure(self):
        backend = FakeChatBackend()
        backend.fail_users.update({4, 9})
        api, registry, _ = make_api(backend)
        tokens = TokenCache()
        plan = FixturePlan(room_sizes=(5, 10), login_all=True, login_batch_size=7)
        async with api:
            report = await _coordinator(api, plan, tokens=tokens).run()

        assert report.logins_succeeded == 18
        assert report.logins_failed == 2
        assert len(tokens) == 18
        assert 4 not in tokens
        assert len(report.rooms) == 2
        assert report.seed_messages_sent == 10 + 20
        assert registry.rate("auth_success_rate").summary()["fails"] == 2

    @pytest.mark.anyio
    async def test_rooms_are_tagged_and_populated(self):
        backend = FakeChatBackend()
        api, _, _ = make_api(backend)
        plan = FixturePlan(
            room_sizes=(10, 10),
            room_name="[LOAD_TEST] Shared Test Room {index}",
            members_per_room=5,
            seed_messages=3,
        )
        async with api:
            report = await _coordinator(api, plan).run()

        first, second = (backend.rooms[r.id] for r in report.rooms)
        assert first.name == "[LOAD_TEST] Shared Test Room 1"
        assert first.members == {1, 2, 3, 4, 5, 6}
        assert second.members == {1, 12, 13, 14, 15, 16}
        assert [m["sequence"] for m in first.messages] == [1, 2, 3]
        assert report.rooms[0].size == 10
        assert report.rooms[0].owner_id == 1
        assert all(r.tagged for r in backend.rooms.values())

    @pytest.mark.anyio
    async def test_owner_failure_aborts_required_setup(self):
        backend = FakeChatBackend()
        backend.fail_users.add(1)
        api, _, _ = make_api(backend)
        plan = FixturePlan(room_sizes=(5,), login_all=True, required=True)
        async with api:
            with pytest.raises(ChatloadSetupError) as exc_info:
                await _coordinator(api, plan).run()

        assert exc_info.value.code == "owner_login_failed"
        assert exc_info.value.user_id == 1
        # Batch login plus one retry.
        assert backend.login_calls[1] == 2
        assert backend.route_count("create_group") == 0

    @pytest.mark.anyio
    async def test_owner_failure_skips_optional_fixtures(self):
        backend = FakeChatBackend()
        backend.fail_users.add(1)
        api, _, _ = make_api(backend)
        async with api:
            report = await _coordinator(api, FixturePlan(room_sizes=(5,))).run()

        assert report.rooms == []
        assert backend.rooms == {}

    @pytest.mark.anyio
    async def test_room_creation_failure_aborts_required_setup(self):
        backend = FakeChatBackend()
        backend.statuses["create_group"] = 500
        api, _, _ = make_api(backend)
        async with api:
            with pytest.raises(ChatloadSetupError) as exc_info:
                await _coordinator(api, FixturePlan(room_sizes=(5,), required=True)).run()

        assert exc_info.value.code == "fixture_creation_failed"

    @pytest.mark.anyio
    async def test_joined_users_accept_already_member(self):
        backend = FakeChatBackend()
        api, registry, _ = make_api(backend)
        plan = FixturePlan(room_sizes=(5,), members_per_room=4, seed_messages=0, joined_users=5)
        async with api:
            report = await _coordinator(api, plan, pool_size=5).run()

        assert report.joined == 5
        assert registry.counter("rooms_already_joined").get() == 5
        assert registry.rate("room_join_success_rate").ratio() == 1.0

    @pytest.mark.anyio
    async def test_nothing_to_build(self):
        backend = FakeChatBackend()
        api, _, _ = make_api(backend)
        async with api:
            report = await _coordinator(api, FixturePlan()).run()

        assert report.rooms == []
        assert backend.calls == []


class TestTeardown:
    @pytest.mark.anyio
    async def test_cleanup_is_idempotent(self):
        backend = FakeChatBackend()
        api, _, _ = make_api(backend)
        async with api:
            coordinator = _coordinator(api, FixturePlan(room_sizes=(5, 5), seed_messages=1))
            await coordinator.run()
            first = await coordinator.cleanup()
            second = await coordinator.cleanup()

        assert first.succeeded and first.deleted_count == 2
        assert second.succeeded and second.deleted_count == 0
        assert backend.tagged_rooms() == []
        assert backend.cleanup_calls == 2

    @pytest.mark.anyio
    async def test_cleanup_without_owner_token(self):
        backend = FakeChatBackend()
        api, _, _ = make_api(backend)
        async with api:
            report = await _coordinator(api, FixturePlan()).cleanup()

        assert report.attempted is False
        assert backend.cleanup_calls == 0

    @pytest.mark.anyio
    async def test_cleanup_failure_is_reported(self):
        backend = FakeChatBackend()
        backend.statuses["cleanup"] = 500
        api, _, _ = make_api(backend)
        async with api:
            report = await _coordinator(api, FixturePlan(), tokens=TokenCache({1: "token-1"})).cleanup()

        assert report.attempted is True
        assert report.succeeded is False
        assert report.status == 500
        assert "rejected" in report.error
        assert report.to_dict()["succeeded"] is False

    @pytest.mark.anyio
    async def test_sequence_duplicates_are_counted(self):
        backend = FakeChatBackend()
        api, registry, _ = make_api(backend)
        async with api:
            coordinator = _coordinator(api, FixturePlan(room_sizes=(5,), seed_messages=4))
            report = await coordinator.run()
            room = backend.rooms[report.rooms[0].id]
            clean = await coordinator.verify_sequences(report.rooms[0])
            room.messages.append({"id": 99, "content": "dup", "sequence": 2})
            duplicates = await coordinator.verify_sequences(report.rooms[0])

        assert clean == 0
        assert duplicates == 1
        assert registry.counter("sequence_duplicates").get() == 1
