"""
In-memory chat backend served through httpx.MockTransport.

Implements just enough of the /api/v1 surface for the load generator to
run end to end: login, room listing and creation, joins, membership
administration, messages with per-room sequence numbers, feedback and the
load-test cleanup endpoint. Faults are injected per route.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx

PREFIX = "/api/v1"


@dataclass
class FakeRoom:
    id: int
    name: str
    room_type: str
    owner_id: int
    members: Set[int] = field(default_factory=set)
    password: str = ""
    topic: Optional[str] = None
    ai_room_type: Optional[str] = None
    messages: List[Dict[str, Any]] = field(default_factory=list)

    def payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.room_type == "DIRECT":
            partner = next((m for m in self.members if m != self.owner_id), self.owner_id)
            data["partner"] = {"id": partner}
        elif self.room_type == "AI":
            data["roomType"] = self.ai_room_type
        else:
            data["hasPassword"] = bool(self.password)
            data["memberCount"] = len(self.members)
        return data

    @property
    def tagged(self) -> bool:
        return self.topic == "LOAD_TEST" or "LOAD_TEST" in self.name


class FakeChatBackend:
    """
    Example:
        backend = FakeChatBackend(already_member_status=400)
        backend.fail_users.add(3)
        backend.statuses["join"] = 500
        backend.timeouts.add("feedback")
        transport = backend.transport()
    """

    def __init__(self, *, already_member_status: int = 400, pool_size: int = 100) -> None:
        self.already_member_status = already_member_status
        self.pool_size = pool_size
        self.rooms: Dict[int, FakeRoom] = {}
        self.fail_users: Set[int] = set()
        self.statuses: Dict[str, int] = {}
        self.timeouts: Set[str] = set()
        self.calls: List[Tuple[str, Optional[int]]] = []
        self.requests: List[httpx.Request] = []
        self.login_calls: Dict[int, int] = {}
        self.cleanup_calls = 0
        self._next_id = 1
        self._routes: List[Tuple[str, "re.Pattern[str]", str, Callable[..., httpx.Response]]] = [
            ("POST", re.compile(r"^/auth/login$"), "login", self._login),
            ("GET", re.compile(r"^/chats/rooms/group/public$"), "list_public", self._list_public),
            ("GET", re.compile(r"^/chats/rooms/(direct|group|ai)$"), "list", self._list),
            ("POST", re.compile(r"^/chats/rooms/direct$"), "create_direct", self._create_direct),
            ("POST", re.compile(r"^/chats/rooms/group$"), "create_group", self._create_group),
            ("POST", re.compile(r"^/chats/rooms/ai$"), "create_ai", self._create_ai),
            ("POST", re.compile(r"^/chats/rooms/group/(\d+)/join$"), "join", self._join),
            ("POST", re.compile(r"^/chats/rooms/group/(\d+)/invite$"), "invite", self._invite),
            ("DELETE", re.compile(r"^/chats/rooms/(\d+)/members/(\d+)$"), "kick", self._kick),
            ("PATCH", re.compile(r"^/chats/rooms/(\d+)/owner$"), "transfer", self._transfer),
            ("DELETE", re.compile(r"^/chats/rooms/(\d+)$"), "leave", self._leave),
            ("GET", re.compile(r"^/chats/rooms/(\d+)/messages$"), "messages", self._messages),
            ("POST", re.compile(r"^/chats/rooms/messages$"), "send", self._send),
            ("POST", re.compile(r"^/chats/rooms/(\d+)/files$"), "send", self._send_to_room),
            ("POST", re.compile(r"^/chats/feedback$"), "feedback", self._feedback),
            ("POST", re.compile(r"^/chats/loadtest/cleanup$"), "cleanup", self._cleanup),
        ]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------

    def add_room(self, name: str, owner_id: int, members: Set[int], *, room_type: str = "GROUP") -> FakeRoom:
        room = FakeRoom(
            id=self._new_id(),
            name=name,
            room_type=room_type,
            owner_id=owner_id,
            members={owner_id, *members},
        )
        self.rooms[room.id] = room
        return room

    def route_count(self, route: str) -> int:
        return sum(1 for name, _ in self.calls if name == route)

    def tagged_rooms(self) -> List[FakeRoom]:
        return [r for r in self.rooms.values() if r.tagged]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        assert path.startswith(PREFIX), path
        path = path[len(PREFIX):]
        for method, pattern, name, handler in self._routes:
            match = pattern.match(path)
            if match is None or request.method != method:
                continue
            user_id = self._user_id(request)
            self.calls.append((name, user_id))
            self.requests.append(request)
            if name in self.timeouts:
                raise httpx.ReadTimeout("simulated timeout", request=request)
            if name in self.statuses:
                return httpx.Response(self.statuses[name], json={"message": f"{name} rejected"})
            if name != "login" and user_id is None:
                return httpx.Response(401, json={"message": "unauthenticated"})
            return handler(request, user_id, *match.groups())
        return httpx.Response(404, json={"message": f"no route for {request.method} {path}"})

    def _user_id(self, request: httpx.Request) -> Optional[int]:
        sender = request.url.params.get("testSenderId")
        if sender is not None:
            return int(sender)
        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer token-"):
            return int(auth[len("Bearer token-"):])
        return None

    def _new_id(self) -> int:
        room_id = self._next_id
        self._next_id += 1
        return room_id

    @staticmethod
    def _body(request: httpx.Request) -> Dict[str, Any]:
        if not request.content:
            return {}
        return json.loads(request.content)

    @staticmethod
    def _ok(data: Any = None, status: int = 200) -> httpx.Response:
        return httpx.Response(status, json={"success": True, "data": data})

    def _room(self, room_id: str) -> Optional[FakeRoom]:
        return self.rooms.get(int(room_id))

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _login(self, request: httpx.Request, _user: Optional[int]) -> httpx.Response:
        body = self._body(request)
        match = re.match(r"^test(\d+)@test\.com$", body.get("email", ""))
        if match is None:
            return httpx.Response(401, json={"message": "unknown user"})
        user_id = int(match.group(1))
        self.login_calls[user_id] = self.login_calls.get(user_id, 0) + 1
        if user_id in self.fail_users or user_id > self.pool_size:
            return httpx.Response(401, json={"message": "bad credentials"})
        return self._ok(f"token-{user_id}")

    def _list(self, _request: httpx.Request, user_id: int, kind: str) -> httpx.Response:
        room_type = kind.upper()
        rooms = [
            r.payload()
            for r in self.rooms.values()
            if r.room_type == room_type and user_id in r.members
        ]
        return self._ok(rooms)

    def _list_public(self, _request: httpx.Request, _user_id: int) -> httpx.Response:
        return self._ok([r.payload() for r in self.rooms.values() if r.room_type == "GROUP"])

    def _create_direct(self, request: httpx.Request, user_id: int) -> httpx.Response:
        partner = self._body(request)["partnerId"]
        room = self.add_room(f"direct {user_id}-{partner}", user_id, {partner}, room_type="DIRECT")
        return self._ok(room.payload())

    def _create_group(self, request: httpx.Request, user_id: int) -> httpx.Response:
        body = self._body(request)
        room = self.add_room(body["roomName"], user_id, set(body.get("memberIds") or []))
        room.password = body.get("password") or ""
        room.topic = body.get("topic")
        return self._ok(room.payload())

    def _create_ai(self, request: httpx.Request, user_id: int) -> httpx.Response:
        body = self._body(request)
        room = self.add_room(body["roomName"], user_id, set(), room_type="AI")
        room.ai_room_type = body["roomType"]
        return self._ok(room.payload())

    def _join(self, request: httpx.Request, user_id: int, room_id: str) -> httpx.Response:
        room = self._room(room_id)
        if room is None:
            return httpx.Response(404, json={"message": "room not found"})
        if user_id in room.members:
            return httpx.Response(self.already_member_status, json={"message": "already a member"})
        if room.password and self._body(request).get("password") != room.password:
            return httpx.Response(403, json={"message": "wrong password"})
        room.members.add(user_id)
        return self._ok()

    def _invite(self, request: httpx.Request, user_id: int, room_id: str) -> httpx.Response:
        room = self._room(room_id)
        if room is None or user_id not in room.members:
            return httpx.Response(403, json={"message": "not a member"})
        room.members.add(self._body(request)["targetMemberId"])
        return self._ok()

    def _kick(self, _request: httpx.Request, user_id: int, room_id: str, member_id: str) -> httpx.Response:
        room = self._room(room_id)
        if room is None or room.owner_id != user_id:
            return httpx.Response(403, json={"message": "only the owner may kick"})
        room.members.discard(int(member_id))
        return self._ok()

    def _transfer(self, request: httpx.Request, user_id: int, room_id: str) -> httpx.Response:
        room = self._room(room_id)
        if room is None or room.owner_id != user_id:
            return httpx.Response(403, json={"message": "only the owner may transfer"})
        room.owner_id = self._body(request)["newOwnerId"]
        return self._ok()

    def _leave(self, _request: httpx.Request, user_id: int, room_id: str) -> httpx.Response:
        room = self._room(room_id)
        if room is None or user_id not in room.members:
            return httpx.Response(404, json={"message": "not a member"})
        room.members.discard(user_id)
        return httpx.Response(204)

    def _messages(self, request: httpx.Request, user_id: int, room_id: str) -> httpx.Response:
        room = self._room(room_id)
        if room is None:
            return httpx.Response(404, json={"message": "room not found"})
        size = int(request.url.params.get("size", "25"))
        contents = list(reversed(room.messages))[:size]
        return self._ok(
            {
                "messagePageResp": {
                    "contents": contents,
                    "hasNext": len(room.messages) > size,
                    "nextCursor": contents[-1]["id"] if contents else None,
                }
            }
        )

    def _send(self, request: httpx.Request, user_id: int) -> httpx.Response:
        body = self._body(request)
        room = self.rooms.get(body["roomId"])
        if room is None:
            return httpx.Response(404, json={"message": "room not found"})
        message = {
            "id": len(room.messages) + 1,
            "content": body["content"],
            "senderId": user_id,
            "sequence": len(room.messages) + 1,
        }
        room.messages.append(message)
        return self._ok(message)

    def _send_to_room(self, request: httpx.Request, user_id: int, _room_id: str) -> httpx.Response:
        return self._send(request, user_id)

    def _feedback(self, request: httpx.Request, _user_id: int) -> httpx.Response:
        body = self._body(request)
        return self._ok({"feedback": f"{len(body.get('messages', []))} messages reviewed"})

    def _cleanup(self, _request: httpx.Request, _user_id: int) -> httpx.Response:
        self.cleanup_calls += 1
        tagged = [r.id for r in self.rooms.values() if r.tagged]
        for room_id in tagged:
            del self.rooms[room_id]
        return self._ok({"deletedCount": len(tagged)})


def make_api(backend: FakeChatBackend, **settings: Any):
    """ChatApiClient wired to `backend`, with a fresh registry and collecting reporter."""
    from chatload.client import ChatApiClient
    from chatload.config import Settings
    from chatload.metrics import CollectingEventReporter, MetricsRegistry

    values: Dict[str, Any] = {"base_url": "http://chat.test", "think_scale": 0}
    values.update(settings)
    registry = MetricsRegistry()
    reporter = CollectingEventReporter()
    api = ChatApiClient(
        Settings(**values),
        registry,
        reporter=reporter,
        transport=backend.transport(),
    )
    return api, registry, reporter
