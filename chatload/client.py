"""
HTTP client for the chat backend under test.

Every call goes through ChatApiClient._call, which:
- captures the start timestamp
- sends the request with the timeout of the endpoint's latency class
- classifies the response against the action's success predicate
- records latency, success and timeout metrics
- reports a structured ActionEvent (failures carry a truncated body)

Remote errors never escape: callers get an ApiResult (or a domain value
derived from it) and decide locally what to do next.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from chatload.config import Settings
from chatload.exceptions import ChatloadApiError
from chatload.metrics.collector import MetricsRegistry
from chatload.metrics.events import ActionEvent, EventReporter, LoggingEventReporter
from chatload.models import (
    AIRoomType,
    ChatRoomType,
    Outcome,
    RoomFixture,
    TimeoutClass,
    VirtualUser,
    utc_now,
)
from chatload.session import Session

API_PREFIX = "/api/v1"
BODY_PREVIEW_CHARS = 200

# Translations slower than this are attributed to the fallback provider.
TRANSLATION_FALLBACK_MS = 3000.0

_LIST_ENDPOINTS = {
    ChatRoomType.DIRECT: ("/chats/rooms/direct", "getDirectRoomList", "direct_room_list_latency"),
    ChatRoomType.GROUP: ("/chats/rooms/group", "getGroupRoomList", "group_room_list_latency"),
    ChatRoomType.AI: ("/chats/rooms/ai", "getAIRoomList", "ai_room_list_latency"),
}


@dataclass(frozen=True)
class Caller:
    """Who is making a call: token for auth, identity for tags and query auth."""

    token: Optional[str]
    user: Optional[VirtualUser] = None
    scenario: Optional[str] = None
    vu_id: Optional[int] = None
    session: Optional[Session] = field(default=None, compare=False, repr=False)


@dataclass
class ApiResult:
    """
    Outcome of one remote call.

    Attributes:
        endpoint: Logical endpoint tag.
        status: HTTP status, None if no response arrived.
        outcome: Success/alternate/failure/timeout classification.
        elapsed_ms: Call duration.
        body: Parsed JSON body (None if absent or not JSON).
        text: Raw response text (empty when no response).
        error: Transport error description.
    """

    endpoint: str
    status: Optional[int]
    outcome: Outcome
    elapsed_ms: float
    body: Any = None
    text: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome.ok

    @property
    def timed_out(self) -> bool:
        return self.outcome == Outcome.TIMEOUT

    @property
    def data(self) -> Any:
        if isinstance(self.body, dict):
            return self.body.get("data")
        return None

    def raise_for_status(self) -> None:
        """Raise ChatloadApiError unless the call succeeded."""
        if self.ok:
            return
        if self.timed_out:
            message = f"{self.endpoint} timed out"
        elif self.status is None:
            message = f"{self.endpoint} failed: {self.error}"
        else:
            message = f"{self.endpoint} returned HTTP {self.status}"
        raise ChatloadApiError(
            message,
            endpoint=self.endpoint,
            status_code=self.status,
            body=self.text or self.error,
            timed_out=self.timed_out,
        )


class ChatApiClient:
    """
    Async client for the chat REST API with built-in measurement.

    One instance (one httpx.AsyncClient connection pool) is shared by every
    virtual user of a run.

    Example:
        async with ChatApiClient(settings, registry) as api:
            token = await api.login(user)
            rooms = await api.list_rooms(Caller(token, user), ChatRoomType.GROUP)
    """

    def __init__(
        self,
        settings: Settings,
        metrics: MetricsRegistry,
        *,
        reporter: Optional[EventReporter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings
        self._metrics = metrics
        self._reporter = reporter or LoggingEventReporter()
        self._owns_client = http_client is None
        if http_client is None:
            limits = httpx.Limits(
                max_connections=settings.max_connections,
                max_keepalive_connections=settings.max_connections,
            )
            http_client = httpx.AsyncClient(
                base_url=settings.base_url,
                timeout=settings.standard_timeout_seconds,
                limits=limits,
                transport=transport,
            )
        self._http = http_client

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    @property
    def settings(self) -> Settings:
        return self._settings

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Core call wrapper
    # ------------------------------------------------------------------

    async def _call(
        self,
        method: str,
        path: str,
        *,
        endpoint: str,
        caller: Optional[Caller] = None,
        timeout_class: TimeoutClass = TimeoutClass.FAST,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        authenticate: bool = True,
        success_statuses: Iterable[int] = (200,),
        alternate_statuses: Iterable[int] = (),
        trends: Sequence[str] = (),
        rates: Sequence[str] = (),
        timeout_rates: Sequence[str] = (),
    ) -> ApiResult:
        headers: Dict[str, str] = {}
        if authenticate and caller is not None and caller.token:
            headers["Authorization"] = f"Bearer {caller.token}"
        timeout = self._settings.timeout_for(timeout_class)

        started_at = utc_now()
        start = time.perf_counter()
        status: Optional[int] = None
        text = ""
        body: Any = None
        error: Optional[str] = None
        try:
            response = await self._http.request(
                method,
                API_PREFIX + path,
                json=json,
                params=params,
                headers=headers,
                timeout=timeout,
            )
            status = response.status_code
            text = response.text
            if text:
                try:
                    body = response.json()
                except ValueError:
                    body = None
            if status in set(success_statuses):
                outcome = Outcome.SUCCESS
            elif status in set(alternate_statuses):
                outcome = Outcome.ALREADY_MEMBER
            else:
                outcome = Outcome.FAILURE
                error = text[:BODY_PREVIEW_CHARS] if text else None
        except httpx.TimeoutException as exc:
            outcome = Outcome.TIMEOUT
            error = f"timed out after {timeout:.1f}s ({type(exc).__name__})"
        except httpx.HTTPError as exc:
            outcome = Outcome.FAILURE
            error = f"{type(exc).__name__}: {exc}"[:BODY_PREVIEW_CHARS]
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        result = ApiResult(
            endpoint=endpoint,
            status=status,
            outcome=outcome,
            elapsed_ms=elapsed_ms,
            body=body,
            text=text,
            error=error,
        )
        self._record(result, trends=trends, rates=rates, timeout_rates=timeout_rates)
        if status == 401 and headers and caller is not None and caller.session is not None:
            caller.session.rejected_token = caller.token
        self._reporter.report(
            ActionEvent(
                endpoint=endpoint,
                method=method,
                scenario=caller.scenario if caller else None,
                vu_id=caller.vu_id if caller else None,
                user_id=caller.user.id if caller and caller.user else None,
                status=status,
                outcome=outcome,
                elapsed_ms=elapsed_ms,
                started_at=started_at,
                error=error,
            )
        )
        return result

    def _record(
        self,
        result: ApiResult,
        *,
        trends: Sequence[str],
        rates: Sequence[str],
        timeout_rates: Sequence[str],
    ) -> None:
        m = self._metrics
        m.counter("http_reqs").add()
        m.trend("http_req_duration").add(result.elapsed_ms)
        m.trend(f"http_req_duration{{endpoint:{result.endpoint}}}").add(result.elapsed_ms)
        # A call is either a generic failure or a timeout, never both.
        m.rate("http_req_failed").add(result.outcome == Outcome.FAILURE)
        m.rate("http_req_timeout").add(result.outcome == Outcome.TIMEOUT)
        if result.outcome == Outcome.FAILURE:
            m.counter("http_req_failures").add()
        elif result.outcome == Outcome.TIMEOUT:
            m.counter("http_req_timeouts").add()
        for name in trends:
            m.trend(name).add(result.elapsed_ms)
        for name in rates:
            m.rate(name).add(result.ok)
        for name in timeout_rates:
            m.rate(name).add(result.timed_out)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self, user: VirtualUser, *, scenario: Optional[str] = None, vu_id: Optional[int] = None) -> Optional[str]:
        """Authenticate and return the bearer token, or None on any failure."""
        result = await self._call(
            "POST",
            "/auth/login",
            endpoint="login",
            caller=Caller(token=None, user=user, scenario=scenario, vu_id=vu_id),
            json={"email": user.email, "password": user.password},
            authenticate=False,
        )
        token = result.data if result.ok else None
        success = isinstance(token, str) and len(token) > 0
        self._metrics.rate("auth_success_rate").add(success)
        return token if success else None

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def list_rooms(self, caller: Caller, room_type: ChatRoomType) -> List[RoomFixture]:
        path, endpoint, trend = _LIST_ENDPOINTS[room_type]
        result = await self._call(
            "GET",
            path,
            endpoint=endpoint,
            caller=caller,
            trends=("room_list_latency", trend),
        )
        return _rooms_from(result, room_type)

    async def list_public_rooms(self, caller: Caller) -> List[RoomFixture]:
        result = await self._call(
            "GET",
            "/chats/rooms/group/public",
            endpoint="getPublicRoomList",
            caller=caller,
            trends=("public_room_list_latency",),
        )
        return _rooms_from(result, ChatRoomType.GROUP)

    async def create_direct_room(self, caller: Caller, partner_id: int) -> Optional[RoomFixture]:
        result = await self._call(
            "POST",
            "/chats/rooms/direct",
            endpoint="createRoom",
            caller=caller,
            json={"partnerId": partner_id},
            trends=("room_create_latency",),
            rates=("room_create_success_rate",),
        )
        if not result.ok or not isinstance(result.data, dict):
            return None
        self._metrics.counter("direct_chat_created").add()
        self._metrics.gauge("active_direct_rooms").add(1)
        return RoomFixture.from_api(result.data, room_type=ChatRoomType.DIRECT)

    async def create_group_room(
        self,
        caller: Caller,
        name: str,
        member_ids: Sequence[int],
        *,
        password: str = "",
        description: str = "",
        topic: str = "LOAD_TEST",
    ) -> Optional[RoomFixture]:
        result = await self._call(
            "POST",
            "/chats/rooms/group",
            endpoint="createRoom",
            caller=caller,
            json={
                "roomName": name,
                "memberIds": list(member_ids),
                "password": password,
                "description": description,
                "topic": topic,
            },
            trends=("room_create_latency",),
            rates=("room_create_success_rate",),
        )
        if not result.ok or not isinstance(result.data, dict):
            return None
        self._metrics.counter("group_chat_created").add()
        self._metrics.gauge("active_group_rooms").add(1)
        return RoomFixture.from_api(
            result.data,
            room_type=ChatRoomType.GROUP,
            name=result.data.get("name") or name,
            member_ids=list(member_ids),
            has_password=bool(password),
            password=password or None,
            owner_id=caller.user.id if caller.user else None,
        )

    async def create_ai_room(
        self,
        caller: Caller,
        name: str,
        persona_id: int,
        ai_room_type: AIRoomType,
    ) -> Optional[RoomFixture]:
        result = await self._call(
            "POST",
            "/chats/rooms/ai",
            endpoint="createRoom",
            caller=caller,
            json={"roomName": name, "personaId": persona_id, "roomType": ai_room_type.value},
            trends=("room_create_latency",),
            rates=("room_create_success_rate",),
        )
        if not result.ok or not isinstance(result.data, dict):
            return None
        self._metrics.counter("ai_chat_created").add()
        return RoomFixture.from_api(
            result.data,
            room_type=ChatRoomType.AI,
            name=result.data.get("name") or name,
            ai_room_type=ai_room_type,
        )

    async def join_group_room(
        self,
        caller: Caller,
        room_id: int,
        *,
        password: Optional[str] = None,
    ) -> ApiResult:
        """
        Join a group room. "Already a member" answers count as success.

        The statuses treated as "already a member" come from
        Settings.already_member_statuses.
        """
        result = await self._call(
            "POST",
            f"/chats/rooms/group/{room_id}/join",
            endpoint="joinRoom",
            caller=caller,
            json={"password": password} if password else {},
            alternate_statuses=self._settings.already_member_statuses,
            trends=("room_join_latency",),
            rates=("room_join_success_rate",),
        )
        if result.outcome == Outcome.SUCCESS:
            self._metrics.counter("rooms_joined").add()
        elif result.outcome == Outcome.ALREADY_MEMBER:
            self._metrics.counter("rooms_already_joined").add()
        return result

    async def leave_room(self, caller: Caller, room_id: int, room_type: ChatRoomType) -> bool:
        result = await self._call(
            "DELETE",
            f"/chats/rooms/{room_id}",
            endpoint="leaveRoom",
            caller=caller,
            params={"chatRoomType": room_type.value},
            success_statuses=(200, 204),
        )
        if result.ok and room_type == ChatRoomType.GROUP:
            self._metrics.gauge("active_group_rooms").add(-1)
        return result.ok

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def invite_member(self, caller: Caller, room_id: int, target_member_id: int) -> bool:
        result = await self._call(
            "POST",
            f"/chats/rooms/group/{room_id}/invite",
            endpoint="inviteMember",
            caller=caller,
            json={"targetMemberId": target_member_id},
        )
        if result.ok:
            self._metrics.counter("members_invited").add()
        return result.ok

    async def kick_member(self, caller: Caller, room_id: int, member_id: int) -> bool:
        result = await self._call(
            "DELETE",
            f"/chats/rooms/{room_id}/members/{member_id}",
            endpoint="kickMember",
            caller=caller,
        )
        self._metrics.rate("permission_denied_rate").add(result.status == 403)
        if result.ok:
            self._metrics.counter("members_kicked").add()
        return result.ok

    async def transfer_ownership(self, caller: Caller, room_id: int, new_owner_id: int) -> bool:
        result = await self._call(
            "PATCH",
            f"/chats/rooms/{room_id}/owner",
            endpoint="transferOwnership",
            caller=caller,
            json={"newOwnerId": new_owner_id},
        )
        self._metrics.rate("permission_denied_rate").add(result.status == 403)
        if result.ok:
            self._metrics.counter("ownership_transferred").add()
        return result.ok

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def get_messages(
        self,
        caller: Caller,
        room_id: int,
        room_type: ChatRoomType,
        *,
        cursor: Optional[int] = None,
        size: int = 25,
    ) -> Optional[Dict[str, Any]]:
        """Read one page of messages; returns the messagePageResp payload."""
        params: Dict[str, Any] = {"chatRoomType": room_type.value, "size": size}
        if cursor is not None:
            params["cursor"] = cursor
        result = await self._call(
            "GET",
            f"/chats/rooms/{room_id}/messages",
            endpoint="getMessages",
            caller=caller,
            params=params,
            trends=("message_read_latency",),
        )
        if not result.ok:
            return None
        self._metrics.counter("messages_received").add()
        data = result.data
        if isinstance(data, dict):
            page = data.get("messagePageResp")
            if isinstance(page, dict):
                return page
        return None

    async def send_message(
        self,
        caller: Caller,
        room_id: int,
        content: str,
        room_type: ChatRoomType,
        *,
        translate: bool = False,
        ai_room_type: Optional[AIRoomType] = None,
        extra_trends: Sequence[str] = (),
        extra_rates: Sequence[str] = (),
        extra_timeout_rates: Sequence[str] = (),
        endpoint: str = "sendMessage",
    ) -> ApiResult:
        """
        Send a text message.

        Translated messages and messages to AI rooms wait on the AI backend
        and use the AI timeout class; they also feed the translation or AI
        metrics.
        """
        is_ai_room = room_type == ChatRoomType.AI
        params: Optional[Dict[str, Any]] = None
        authenticate = True
        if self._settings.sender_query_auth and caller.user is not None:
            params = {"testSenderId": caller.user.id, "testNickname": caller.user.nickname}
            authenticate = False

        trends = ["message_send_latency", *extra_trends]
        rates = ["message_success_rate", *extra_rates]
        timeout_rates = list(extra_timeout_rates)
        if translate:
            trends.append("translation_latency")
            rates.append("translation_success_rate")
            timeout_rates.append("translation_timeout_rate")
        if is_ai_room:
            endpoint = "aiChat"
            trends.append("ai_response_latency")
            if ai_room_type == AIRoomType.ROLE_PLAY:
                trends.append("ai_roleplay_latency")
            elif ai_room_type == AIRoomType.TUTOR_PERSONAL:
                trends.append("ai_tutor_personal_latency")
            elif ai_room_type == AIRoomType.TUTOR_SIMILAR:
                trends.append("ai_tutor_similar_latency")
            rates.append("ai_success_rate")
            timeout_rates.append("ai_timeout_rate")

        result = await self._call(
            "POST",
            self._settings.send_path.format(room_id=room_id),
            endpoint=endpoint,
            caller=caller,
            params=params,
            authenticate=authenticate,
            json={
                "roomId": room_id,
                "content": content,
                "messageType": "TEXT",
                "chatRoomType": room_type.value,
                "isTranslateEnabled": translate,
            },
            timeout_class=(
                TimeoutClass.AI if translate or is_ai_room else TimeoutClass.STANDARD
            ),
            trends=trends,
            rates=rates,
            timeout_rates=timeout_rates,
        )

        m = self._metrics
        if result.ok:
            m.counter("messages_sent").add()
        if translate:
            m.counter("translation_requested").add()
            if result.ok:
                fallback = result.elapsed_ms >= TRANSLATION_FALLBACK_MS
                m.rate("translation_fallback_rate").add(fallback)
                m.counter("translation_by_fallback" if fallback else "translation_by_primary").add()
            else:
                m.counter("translation_failed").add()
        if is_ai_room:
            m.counter("ai_room_messages").add()
            m.rate("ai_error_rate").add(result.outcome == Outcome.FAILURE)
            if result.ok:
                m.counter("ai_response_success").add()
            elif result.timed_out:
                m.counter("ai_response_timeout").add()
            else:
                m.counter("ai_response_failed").add()
        return result

    async def request_feedback(
        self,
        caller: Caller,
        messages: Sequence[Dict[str, str]],
        *,
        target_language: str = "en",
    ) -> ApiResult:
        """Ask the AI backend for a feedback analysis of a transcript."""
        self._metrics.counter("feedback_requested").add()
        result = await self._call(
            "POST",
            "/chats/feedback",
            endpoint="aiFeedback",
            caller=caller,
            json={"messages": list(messages), "targetLanguage": target_language},
            timeout_class=TimeoutClass.AI,
            trends=("feedback_latency",),
            rates=("feedback_success_rate",),
            timeout_rates=("feedback_timeout_rate",),
        )
        self._metrics.counter("feedback_success" if result.ok else "feedback_failed").add()
        return result

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def cleanup(self, caller: Caller) -> ApiResult:
        """Delete every load-test-tagged room, member and message."""
        return await self._call(
            "POST",
            "/chats/loadtest/cleanup",
            endpoint="cleanup",
            caller=caller,
            timeout_class=TimeoutClass.STANDARD,
        )


def _rooms_from(result: ApiResult, room_type: ChatRoomType) -> List[RoomFixture]:
    if not result.ok or not isinstance(result.data, list):
        return []
    rooms: List[RoomFixture] = []
    for item in result.data:
        if isinstance(item, dict) and "id" in item:
            rooms.append(RoomFixture.from_api(item, room_type=room_type))
    return rooms
