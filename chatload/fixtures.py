"""
Setup and teardown of the shared test environment.

SetupCoordinator runs once before any virtual user starts:
1. Seed logins in concurrent batches, filling the token cache
2. Owner login (pool member 1), retried once; fatal if it still fails
3. Shared group rooms owned by the owner, each seeded with messages
4. Optional joins of the first N users into the first shared room

Teardown calls the cleanup endpoint with the owner token and, for
single-room contention runs, checks the room's message sequences.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from chatload.client import Caller, ChatApiClient
from chatload.exceptions import ChatloadApiError, ChatloadSetupError
from chatload.models import ChatRoomType, RoomFixture, VirtualUser
from chatload.session import TokenCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FixturePlan:
    """
    What the setup coordinator builds for a suite.

    Attributes:
        room_sizes: One shared room per entry, labelled with its size.
        room_name: Name template, formatted with `index` (1-based) and `size`.
        member_stride: Member ids are ((i * stride + j) % pool) + 1 for j in 1..size.
        members_per_room: Truncate each member list to this many ids.
        seed_messages: Fixed seed message count per room; None means
            min(size * 2, max_seed_messages).
        max_seed_messages: Cap for the size-derived seed message count.
        message_batch_size: Seed messages sent concurrently per batch.
        login_all: Log in the whole pool up front.
        login_batch_size: Concurrent logins per batch.
        joined_users: Log in users 1..N and join them to the first room.
        room_pause_seconds: Pause between room creations.
        required: Abort the run when the owner cannot log in or no room
            could be created.
    """

    room_sizes: Tuple[int, ...] = ()
    room_name: str = "[LOAD_TEST] Shared Test Room {index} ({size})"
    member_stride: int = 10
    members_per_room: Optional[int] = None
    seed_messages: Optional[int] = None
    max_seed_messages: int = 20
    message_batch_size: int = 5
    login_all: bool = False
    login_batch_size: int = 20
    joined_users: int = 0
    room_pause_seconds: float = 0.5
    required: bool = False

    def members_for(self, index: int, size: int, pool_size: int, owner_id: int) -> List[int]:
        """Member ids of the shared room at 0-based `index`, owner excluded."""
        members = [
            ((index * self.member_stride + j) % pool_size) + 1
            for j in range(1, size + 1)
        ]
        members = [m for m in members if m != owner_id]
        if self.members_per_room is not None:
            members = members[: self.members_per_room]
        return members

    def seed_count(self, size: int) -> int:
        if self.seed_messages is not None:
            return self.seed_messages
        return min(size * 2, self.max_seed_messages)


@dataclass
class SetupReport:
    """Outcome of SetupCoordinator.run()."""

    owner: Optional[VirtualUser] = None
    rooms: List[RoomFixture] = field(default_factory=list)
    logins_succeeded: int = 0
    logins_failed: int = 0
    seed_messages_sent: int = 0
    joined: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner.id if self.owner else None,
            "rooms": [r.id for r in self.rooms],
            "logins_succeeded": self.logins_succeeded,
            "logins_failed": self.logins_failed,
            "seed_messages_sent": self.seed_messages_sent,
            "joined": self.joined,
        }


@dataclass
class CleanupReport:
    """Outcome of the cleanup call. Never raised, only reported."""

    attempted: bool
    succeeded: bool = False
    deleted_count: Optional[int] = None
    status: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "deleted_count": self.deleted_count,
            "status": self.status,
            "error": self.error,
        }


class SetupCoordinator:
    """
    Builds and tears down the shared fixtures of one run.

    Single writer of the token cache and the fixture list; virtual users
    only read them once setup has finished.
    """

    def __init__(
        self,
        api: ChatApiClient,
        pool: Sequence[VirtualUser],
        tokens: TokenCache,
        plan: FixturePlan,
        *,
        think_scale: float = 1.0,
    ) -> None:
        if not pool:
            raise ValueError("user pool is empty")
        self._api = api
        self._pool = list(pool)
        self._tokens = tokens
        self._plan = plan
        self._think_scale = think_scale

    @property
    def owner(self) -> VirtualUser:
        return self._pool[0]

    async def run(self) -> SetupReport:
        report = SetupReport(owner=self.owner)
        plan = self._plan

        if plan.login_all:
            logger.info("Logging in %d users in batches of %d", len(self._pool), plan.login_batch_size)
            await self.login_batch(self._pool, report)
            logger.info(
                "Seed login finished: %d succeeded, %d failed",
                report.logins_succeeded,
                report.logins_failed,
            )

        if not plan.room_sizes and not plan.joined_users:
            return report

        owner_token = await self._owner_token()
        if owner_token is None:
            logger.error("Owner %s could not log in; shared fixtures skipped", self.owner.email)
            if plan.required:
                raise ChatloadSetupError(
                    f"Owner {self.owner.email} could not log in",
                    user_id=self.owner.id,
                    code="owner_login_failed",
                )
            return report

        owner = Caller(token=owner_token, user=self.owner, scenario="setup")
        for index, size in enumerate(plan.room_sizes):
            room = await self._create_room(owner, index, size)
            if room is not None:
                report.rooms.append(room)
                report.seed_messages_sent += await self._seed_messages(owner, room, plan.seed_count(size))
            await self._pause(plan.room_pause_seconds)

        logger.info("Shared rooms created: %d of %d", len(report.rooms), len(plan.room_sizes))
        if plan.required and plan.room_sizes and not report.rooms:
            raise ChatloadSetupError(
                "No shared room could be created",
                user_id=self.owner.id,
                code="fixture_creation_failed",
            )

        if plan.joined_users and report.rooms:
            report.joined = await self._join_users(report.rooms[0], plan.joined_users, report)
            logger.info("Joined %d users to room %d", report.joined, report.rooms[0].id)
        return report

    async def login_batch(self, users: Sequence[VirtualUser], report: SetupReport) -> None:
        """Log users in, `login_batch_size` at a time; failures are counted, not raised."""
        size = max(1, self._plan.login_batch_size)
        for start in range(0, len(users), size):
            batch = users[start : start + size]
            tokens = await asyncio.gather(*(self._api.login(u, scenario="setup") for u in batch))
            for user, token in zip(batch, tokens):
                if token:
                    self._tokens.put(user.id, token)
                    report.logins_succeeded += 1
                else:
                    logger.warning("Seed login failed for %s", user.email)
                    report.logins_failed += 1

    async def _owner_token(self) -> Optional[str]:
        """Cached owner token, or a fresh login (the retry when batch login missed it)."""
        token = self._tokens.get(self.owner.id)
        if token:
            return token
        if self._plan.login_all:
            logger.info("Retrying owner login")
        token = await self._api.login(self.owner, scenario="setup")
        if token:
            self._tokens.put(self.owner.id, token)
        return token

    async def _create_room(self, owner: Caller, index: int, size: int) -> Optional[RoomFixture]:
        plan = self._plan
        members = plan.members_for(index, size, len(self._pool), self.owner.id)
        name = plan.room_name.format(index=index + 1, size=size)
        room = await self._api.create_group_room(
            owner,
            name,
            members,
            description=f"{size}-member load test room",
            topic="LOAD_TEST",
        )
        if room is None:
            logger.warning("Shared room %r could not be created", name)
            return None
        room = room.model_copy(update={"size": size, "owner_id": self.owner.id})
        logger.info("Shared room created: %d - %s (%d members)", room.id, room.name, len(members))
        return room

    async def _seed_messages(self, owner: Caller, room: RoomFixture, count: int) -> int:
        batch_size = max(1, self._plan.message_batch_size)
        sent = 0
        for start in range(1, count + 1, batch_size):
            end = min(start + batch_size - 1, count)
            results = await asyncio.gather(
                *(
                    self._api.send_message(owner, room.id, f"Test message {k}", ChatRoomType.GROUP)
                    for k in range(start, end + 1)
                )
            )
            sent += sum(1 for r in results if r.ok)
        if count:
            logger.info("Seeded %d of %d messages into room %d", sent, count, room.id)
        return sent

    async def _join_users(self, room: RoomFixture, count: int, report: SetupReport) -> int:
        users = self._pool[:count]
        missing = [u for u in users if self._tokens.get(u.id) is None]
        if missing:
            await self.login_batch(missing, report)
        joined = 0
        for user in users:
            token = self._tokens.get(user.id)
            if token is None:
                continue
            result = await self._api.join_group_room(
                Caller(token=token, user=user, scenario="setup"), room.id
            )
            if result.ok:
                joined += 1
        return joined

    async def _pause(self, seconds: float) -> None:
        if seconds * self._think_scale > 0:
            await asyncio.sleep(seconds * self._think_scale)

    async def cleanup(self) -> CleanupReport:
        """
        Ask the backend to delete every load-test-tagged room, member and message.

        Safe to call more than once; a second call simply deletes nothing.
        """
        token = self._tokens.get(self.owner.id)
        if not token:
            logger.error("Cleanup skipped: no owner token")
            return CleanupReport(attempted=False, error="no owner token")

        result = await self._api.cleanup(Caller(token=token, user=self.owner, scenario="teardown"))
        try:
            result.raise_for_status()
        except ChatloadApiError as exc:
            logger.error("Cleanup failed: %s", exc.message)
            return CleanupReport(
                attempted=True,
                status=exc.status_code,
                error=exc.details.get("body") or exc.message,
            )
        deleted = None
        if isinstance(result.data, dict):
            deleted = result.data.get("deletedCount")
        logger.info("Cleanup finished: %s rows deleted", deleted)
        return CleanupReport(attempted=True, succeeded=True, deleted_count=deleted, status=result.status)

    async def verify_sequences(self, room: RoomFixture, *, size: int = 100) -> int:
        """
        Count duplicate message sequence numbers in the room's latest page.

        The count is added to the `sequence_duplicates` counter and returned.
        """
        token = self._tokens.get(self.owner.id)
        if not token:
            token = await self._api.login(self.owner, scenario="teardown")
            if not token:
                logger.error("Sequence check skipped: owner could not log in")
                return 0
            self._tokens.put(self.owner.id, token)

        page = await self._api.get_messages(
            Caller(token=token, user=self.owner, scenario="teardown"),
            room.id,
            ChatRoomType.GROUP,
            size=size,
        )
        contents = (page or {}).get("contents") or []
        sequences = [m.get("sequence") for m in contents if isinstance(m, dict)]
        duplicates = len(sequences) - len(set(sequences))
        self._api.metrics.counter("sequence_duplicates").add(duplicates)
        if duplicates:
            logger.error("Duplicate sequences in room %d: %d", room.id, duplicates)
        else:
            logger.info("Sequence check passed for room %d (%d messages)", room.id, len(sequences))
        return duplicates
