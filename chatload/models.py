from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Outcome(str, Enum):
    """
    Outcome of a single remote call.

    TIMEOUT is kept apart from FAILURE so backend saturation shows up in its
    own rate. ALREADY_MEMBER is an expected alternate answer that counts as
    success.
    """

    SUCCESS = "success"
    ALREADY_MEMBER = "already_member"
    FAILURE = "failure"
    TIMEOUT = "timeout"

    @property
    def ok(self) -> bool:
        return self in (Outcome.SUCCESS, Outcome.ALREADY_MEMBER)


class ChatRoomType(str, Enum):
    DIRECT = "DIRECT"
    GROUP = "GROUP"
    AI = "AI"


class AIRoomType(str, Enum):
    ROLE_PLAY = "ROLE_PLAY"
    TUTOR_PERSONAL = "TUTOR_PERSONAL"
    TUTOR_SIMILAR = "TUTOR_SIMILAR"


class TimeoutClass(str, Enum):
    """Expected remote latency class of an endpoint."""

    FAST = "fast"
    STANDARD = "standard"
    AI = "ai"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VirtualUser(BaseModel):
    """
    Identity of one simulated user. Immutable for the run.

    Attributes:
        id: Numeric user id on the system under test.
        email: Login email.
        password: Login password.
        nickname: Display name.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(..., ge=1)
    email: str
    password: str
    nickname: str


def build_user_pool(size: int, *, password: str = "test1234") -> List[VirtualUser]:
    """Fixed pool test{i}@test.com for i in 1..size."""
    return [
        VirtualUser(
            id=i,
            email=f"test{i}@test.com",
            password=password,
            nickname=f"TestUser{i}",
        )
        for i in range(1, size + 1)
    ]


def user_for_slot(pool: List[VirtualUser], vu_id: int) -> VirtualUser:
    """Virtual user slots (1-based) cycle through the pool."""
    return pool[(vu_id - 1) % len(pool)]


class RoomFixture(BaseModel):
    """
    A room known to the harness, either shared (created during setup) or
    ad hoc (created or discovered by a scenario).
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    room_type: ChatRoomType = ChatRoomType.GROUP
    member_ids: List[int] = Field(default_factory=list)
    has_password: bool = False
    password: Optional[str] = None
    owner_id: Optional[int] = None
    size: Optional[int] = None
    ai_room_type: Optional[AIRoomType] = None

    @classmethod
    def from_api(
        cls,
        data: Dict[str, Any],
        *,
        room_type: Optional[ChatRoomType] = None,
        **extra: Any,
    ) -> "RoomFixture":
        """
        Build a fixture from a room payload returned by the backend.

        Direct rooms carry a "partner" key; AI rooms carry "roomType".
        """
        if room_type is None:
            if "partner" in data:
                room_type = ChatRoomType.DIRECT
            elif data.get("roomType") in {t.value for t in AIRoomType}:
                room_type = ChatRoomType.AI
            else:
                room_type = ChatRoomType.GROUP
        ai_room_type = data.get("roomType")
        if ai_room_type not in {t.value for t in AIRoomType}:
            ai_room_type = None
        fields: Dict[str, Any] = {
            "id": data["id"],
            "name": data.get("name") or data.get("roomName") or "",
            "room_type": room_type,
            "has_password": bool(data.get("hasPassword", False)),
            "ai_room_type": ai_room_type,
        }
        members = data.get("memberIds")
        if isinstance(members, list):
            fields["member_ids"] = members
        fields.update(extra)
        return cls(**fields)


class Stage(BaseModel):
    """One segment of a load ramp: reach `target` VUs over `duration_seconds`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    duration_seconds: float = Field(..., gt=0)
    target: int = Field(..., ge=0)

    @classmethod
    def parse(cls, duration: str, target: int) -> "Stage":
        """Build a stage from a duration string such as "30s", "2m" or "1m30s"."""
        return cls(duration_seconds=parse_duration(duration), target=target)


def parse_duration(value: str) -> float:
    """Parse "500ms", "30s", "2m", "1h" and concatenations like "1m30s"."""
    text = value.strip().lower()
    if not text:
        raise ValueError("empty duration")
    units = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
    total = 0.0
    number = ""
    i = 0
    while i < len(text):
        ch = text[i]
        if ch.isdigit() or ch == ".":
            number += ch
            i += 1
            continue
        unit = "ms" if text.startswith("ms", i) else ch
        if unit not in units or not number:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(number) * units[unit]
        number = ""
        i += len(unit)
    if number:
        # Bare number means seconds.
        total += float(number)
    return total
