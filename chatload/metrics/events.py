"""
Structured events emitted at defined points of a run.

ActionEvent: one remote call finished (any outcome).
ThresholdEvent: one threshold was evaluated at run end.

Reporters receive events and decide how to surface them; console
formatting lives elsewhere (chatload.metrics.report).
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field

from chatload.models import Outcome

logger = logging.getLogger(__name__)


class ActionEvent(BaseModel):
    """
    Canonical summary of one remote call.

    Attributes:
        endpoint: Low-cardinality endpoint tag (login, sendMessage, ...).
        method: HTTP method.
        scenario: Scenario running when the call was made (None during setup).
        vu_id: Virtual user slot, if any.
        user_id: Pool user id, if any.
        status: HTTP status, None when no response arrived.
        outcome: Outcome classification.
        elapsed_ms: Wall-clock duration of the call.
        started_at: When the call started.
        error: Transport error text or truncated response body on failure.
    """

    model_config = ConfigDict(extra="forbid")

    endpoint: str
    method: str
    scenario: Optional[str] = None
    vu_id: Optional[int] = None
    user_id: Optional[int] = None
    status: Optional[int] = None
    outcome: Outcome
    elapsed_ms: float = Field(..., ge=0)
    started_at: datetime
    error: Optional[str] = None

    def to_log_dict(self) -> Dict[str, Any]:
        """
        Serialize to a dict suitable for JSON logging.

        {"type": "chatload.action_event.v1", ...fields...}
        """
        data = self.model_dump(mode="json")
        data["type"] = "chatload.action_event.v1"
        return data


class ThresholdEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    metric: str
    expression: str
    observed: Optional[float] = None
    passed: bool

    def to_log_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["type"] = "chatload.threshold_event.v1"
        return data


Event = Union[ActionEvent, ThresholdEvent]


class EventReporter(Protocol):
    """Receives structured events. Implementations must be safe to call concurrently."""

    def report(self, event: Event) -> None:
        ...


class LoggingEventReporter:
    """
    Routes events to the standard logging tree.

    Failed and timed-out actions log at WARNING with endpoint, status and the
    truncated body; successes log at DEBUG.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger

    def report(self, event: Event) -> None:
        if isinstance(event, ThresholdEvent):
            level = logging.INFO if event.passed else logging.ERROR
            self._log.log(
                level,
                "threshold %s %s: %s (observed %s)",
                "passed" if event.passed else "breached",
                event.metric,
                event.expression,
                event.observed,
            )
            return
        if event.outcome.ok:
            self._log.debug(
                "%s %s -> %s in %.1fms",
                event.method,
                event.endpoint,
                event.status,
                event.elapsed_ms,
            )
            return
        self._log.warning(
            "[%s] %s failed: outcome=%s status=%s user=%s body=%s",
            event.scenario or "setup",
            event.endpoint,
            event.outcome.value,
            event.status,
            event.user_id,
            event.error or "empty",
        )


class CollectingEventReporter:
    """Keeps events in memory (tests, post-run inspection)."""

    def __init__(self) -> None:
        self._events: List[Event] = []
        self._lock = threading.Lock()

    def report(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def actions(self, endpoint: Optional[str] = None) -> List[ActionEvent]:
        return [
            e
            for e in self.events
            if isinstance(e, ActionEvent) and (endpoint is None or e.endpoint == endpoint)
        ]


class JsonlEventReporter:
    """Appends one JSON object per event to a file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self._path.open("a", encoding="utf-8")
        self._lock = threading.Lock()

    def report(self, event: Event) -> None:
        line = json.dumps(event.to_log_dict(), ensure_ascii=True)
        with self._lock:
            self._handle.write(line + "\n")

    def close(self) -> None:
        with self._lock:
            if not self._handle.closed:
                self._handle.close()


class FanoutEventReporter:
    """Forwards every event to several reporters."""

    def __init__(self, *reporters: EventReporter) -> None:
        self._reporters = list(reporters)

    def report(self, event: Event) -> None:
        for reporter in self._reporters:
            reporter.report(event)

    def close(self) -> None:
        for reporter in self._reporters:
            close = getattr(reporter, "close", None)
            if close is not None:
                close()
