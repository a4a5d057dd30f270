"""
Per-iteration session state and the run-wide token cache.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from chatload.models import ChatRoomType, RoomFixture, VirtualUser


class TokenCache:
    """
    Bearer tokens keyed by user id, shared by every virtual user of a run.

    Written by the setup coordinator first, then read-mostly. A virtual user
    that logs in publishes its token; concurrent publishers for the same id
    race harmlessly (last write wins, all values are valid tokens).
    """

    def __init__(self, initial: Optional[Dict[int, str]] = None) -> None:
        self._tokens: Dict[int, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, user_id: int) -> Optional[str]:
        with self._lock:
            return self._tokens.get(user_id)

    def put(self, user_id: int, token: str) -> None:
        with self._lock:
            self._tokens[user_id] = token

    def discard(self, user_id: int, token: Optional[str] = None) -> bool:
        """
        Drop the cached token. With `token`, only drop it if it is still
        the cached one, so a newer login by another slot survives.
        """
        with self._lock:
            if user_id not in self._tokens:
                return False
            if token is not None and self._tokens[user_id] != token:
                return False
            del self._tokens[user_id]
            return True

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def snapshot(self) -> Dict[int, str]:
        with self._lock:
            return dict(self._tokens)


@dataclass
class Session:
    """
    Working context for one scenario iteration of one virtual user.

    Created at iteration start and discarded at its end. Only the rooms the
    session created or joined are tracked; nothing here is shared.
    """

    user: VirtualUser
    token: str
    vu_id: int
    scenario: str = ""
    iteration: int = 0
    rooms: List[RoomFixture] = field(default_factory=list)
    # Set when the backend answered 401 to this session's bearer token.
    rejected_token: Optional[str] = None

    def remember(self, room: RoomFixture) -> RoomFixture:
        if all(r.id != room.id or r.room_type != room.room_type for r in self.rooms):
            self.rooms.append(room)
        return room

    def forget(self, room_id: int) -> None:
        self.rooms = [r for r in self.rooms if r.id != room_id]

    def rooms_of(self, room_type: ChatRoomType) -> List[RoomFixture]:
        return [r for r in self.rooms if r.room_type == room_type]
