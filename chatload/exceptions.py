"""
Typed exceptions for chatload.

Provides structured error handling with:
- ChatloadError: Base exception for all chatload errors
- ChatloadConfigError: Configuration and validation errors
- ChatloadSetupError: Fixture setup failures that abort the run
- ChatloadApiError: Unexpected responses from the system under test
- ChatloadThresholdError: Run-level threshold breaches

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ChatloadError(Exception):
    """Base exception for all chatload errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or summary output."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ChatloadConfigError(ChatloadError):
    """Configuration or validation error.

    Raised before any load is generated when:
    - A load profile or suite name is unknown
    - A load profile does not ramp down to zero
    - A scenario table leaves gaps or overlaps in [0, 100)
    - A threshold expression cannot be parsed
    - An environment variable holds an invalid value

    Examples:
        ChatloadConfigError("Unknown profile", code="unknown_profile")
        ChatloadConfigError("Bad threshold", details={"expression": "p(95)<<1"})
    """

    pass


class ChatloadSetupError(ChatloadError):
    """Fixture setup failure.

    Raised when the owner identity that every shared fixture relies on
    cannot authenticate. Individual seed-user failures never raise.

    Attributes:
        user_id: Pool id of the user whose login failed
    """

    def __init__(
        self,
        message: str,
        *,
        user_id: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if user_id is not None:
            details["user_id"] = user_id

        self.user_id = user_id

        super().__init__(message, code=code, details=details)


class ChatloadApiError(ChatloadError):
    """Unexpected response from the system under test.

    Attributes:
        endpoint: Logical endpoint name (e.g. "sendMessage")
        status_code: HTTP status code if a response was received
        body: Response body, truncated
    """

    def __init__(
        self,
        message: str,
        *,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        timed_out: bool = False,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if endpoint:
            details["endpoint"] = endpoint
        if status_code:
            details["status_code"] = status_code
        if body:
            details["body"] = body[:200]
        if timed_out:
            details["timed_out"] = True

        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body
        self.timed_out = timed_out

        super().__init__(message, code=code, details=details)


class ChatloadThresholdError(ChatloadError):
    """One or more pass/fail thresholds were breached at run end.

    Attributes:
        breaches: Human-readable description of each failed threshold
    """

    def __init__(
        self,
        message: str,
        *,
        breaches: Optional[List[str]] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        self.breaches = list(breaches or [])
        details["breaches"] = self.breaches

        super().__init__(message, code=code, details=details)


__all__ = [
    "ChatloadError",
    "ChatloadConfigError",
    "ChatloadSetupError",
    "ChatloadApiError",
    "ChatloadThresholdError",
]
