"""
Run configuration from environment variables.

Usage:
    from chatload.config import get_settings

    settings = get_settings()
    print(settings.base_url, settings.suite, settings.profile)

Every field is typed with a documented default and validated once when the
Settings object is built. Legacy variable names (BASE_URL, TEST_DURATION,
TEST_MODE, AI_TIMEOUT, OLLAMA_AVAILABLE/OPENAI_AVAILABLE) are honoured when
the CHATLOAD_* variable is unset.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from chatload.exceptions import ChatloadConfigError
from chatload.models import TimeoutClass


class Settings(BaseModel):
    """
    Typed run configuration.

    Attributes:
        base_url: Root URL of the system under test.
        suite: Built-in suite to run (see chatload.suites).
        profile: Named load-duration profile inside the suite (None: suite default).
        ai_available: Whether the AI backend is up; gates AI scenarios.
        ai_timeout_ms: Timeout for AI-backed calls (translation, AI rooms, feedback).
        fast_timeout_seconds: Timeout for CRUD calls (login, listings, joins).
        standard_timeout_seconds: Timeout for plain message sends and cleanup.
        user_pool_size: Number of pre-existing test accounts.
        user_password: Shared password of the test accounts.
        seed: Random seed; None draws a fresh one.
        think_scale: Multiplier on every think-time pause (0 disables them).
        graceful_ramp_down_seconds: Grace period for in-flight iterations.
        max_vus: Optional cap applied to every stage target.
        tick_seconds: How often the driver re-evaluates the target.
        cleanup: Call the cleanup endpoint at teardown.
        events_path: Optional JSONL file receiving every structured event.
        sender_query_auth: Authenticate message sends by query parameters.
        send_path: Message send route under /api/v1; "{room_id}" is substituted.
        already_member_statuses: Join statuses that mean "already a member".
        max_connections: httpx connection pool size.
        log_level: Root logging level for the CLI.
    """

    model_config = ConfigDict(extra="forbid")

    base_url: str = "http://localhost:8080"
    suite: str = "direct_group"
    profile: Optional[str] = None
    ai_available: bool = True
    ai_timeout_ms: int = Field(default=30000, gt=0)
    fast_timeout_seconds: float = Field(default=5.0, gt=0)
    standard_timeout_seconds: float = Field(default=10.0, gt=0)
    user_pool_size: int = Field(default=100, ge=1)
    user_password: str = "test1234"
    seed: Optional[int] = None
    think_scale: float = Field(default=1.0, ge=0)
    graceful_ramp_down_seconds: float = Field(default=30.0, ge=0)
    max_vus: Optional[int] = Field(default=None, ge=1)
    tick_seconds: float = Field(default=0.5, gt=0)
    cleanup: bool = True
    events_path: Optional[str] = None
    sender_query_auth: bool = True
    send_path: str = "/chats/rooms/messages"
    already_member_statuses: Tuple[int, ...] = (400, 409)
    max_connections: int = Field(default=200, ge=1)
    log_level: str = "INFO"

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return value

    @field_validator("send_path")
    @classmethod
    def _check_send_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("send_path must start with /")
        try:
            value.format(room_id=0)
        except (KeyError, IndexError, ValueError) as exc:
            raise ValueError(f"send_path may only use the {{room_id}} placeholder: {exc}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return value

    @property
    def ai_timeout_seconds(self) -> float:
        return self.ai_timeout_ms / 1000.0

    def timeout_for(self, timeout_class: TimeoutClass) -> float:
        """Seconds allowed for a call of the given latency class."""
        if timeout_class == TimeoutClass.AI:
            return self.ai_timeout_seconds
        if timeout_class == TimeoutClass.STANDARD:
            return self.standard_timeout_seconds
        return self.fast_timeout_seconds

    @classmethod
    def build(cls, **values: Any) -> "Settings":
        """Validate values, raising ChatloadConfigError instead of ValidationError."""
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ChatloadConfigError(
                f"Invalid configuration: {exc.errors()[0].get('msg', exc)}",
                code="invalid_config",
                details={"errors": exc.errors(include_url=False)},
            ) from exc

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "Settings":
        """
        Load settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ.
            overrides: Field values that win over the environment (CLI flags).
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        def pick(*names: str) -> Optional[str]:
            for name in names:
                value = env.get(name)
                if value is not None and value.strip() != "":
                    return value.strip()
            return None

        raw = {
            "base_url": pick("CHATLOAD_BASE_URL", "BASE_URL"),
            "suite": pick("CHATLOAD_SUITE"),
            "profile": pick("CHATLOAD_PROFILE", "TEST_DURATION", "TEST_MODE"),
            "ai_timeout_ms": pick("CHATLOAD_AI_TIMEOUT_MS", "AI_TIMEOUT"),
            "fast_timeout_seconds": pick("CHATLOAD_FAST_TIMEOUT"),
            "standard_timeout_seconds": pick("CHATLOAD_STANDARD_TIMEOUT"),
            "user_pool_size": pick("CHATLOAD_USER_POOL_SIZE"),
            "user_password": pick("CHATLOAD_USER_PASSWORD"),
            "seed": pick("CHATLOAD_SEED"),
            "think_scale": pick("CHATLOAD_THINK_SCALE"),
            "graceful_ramp_down_seconds": pick("CHATLOAD_GRACEFUL_RAMP_DOWN"),
            "max_vus": pick("CHATLOAD_MAX_VUS"),
            "tick_seconds": pick("CHATLOAD_TICK_SECONDS"),
            "events_path": pick("CHATLOAD_EVENTS_PATH"),
            "max_connections": pick("CHATLOAD_MAX_CONNECTIONS"),
            "log_level": pick("CHATLOAD_LOG_LEVEL"),
            "send_path": pick("CHATLOAD_SEND_PATH"),
        }
        values.update({k: v for k, v in raw.items() if v is not None})

        for field, names in (
            ("cleanup", ("CHATLOAD_CLEANUP",)),
            ("sender_query_auth", ("CHATLOAD_SENDER_QUERY_AUTH",)),
            ("ai_available", ("CHATLOAD_AI_AVAILABLE",)),
        ):
            value = pick(*names)
            if value is not None:
                values[field] = _parse_bool(value, names[0])

        if "ai_available" not in values:
            legacy = [pick("OLLAMA_AVAILABLE"), pick("OPENAI_AVAILABLE")]
            if any(v is not None for v in legacy):
                values["ai_available"] = all(
                    _parse_bool(v, "OLLAMA_AVAILABLE/OPENAI_AVAILABLE")
                    for v in legacy
                    if v is not None
                )

        statuses = pick("CHATLOAD_ALREADY_MEMBER_STATUSES")
        if statuses is not None:
            try:
                values["already_member_statuses"] = tuple(
                    int(s) for s in statuses.split(",") if s.strip()
                )
            except ValueError as exc:
                raise ChatloadConfigError(
                    "CHATLOAD_ALREADY_MEMBER_STATUSES must be comma-separated integers",
                    code="invalid_config",
                    details={"value": statuses},
                ) from exc

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.build(**values)


def _parse_bool(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ChatloadConfigError(
        f"{name} must be a boolean, got {value!r}",
        code="invalid_config",
        details={"variable": name, "value": value},
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()
