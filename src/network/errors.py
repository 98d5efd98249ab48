"""Error taxonomy for the resilient data-access layer.

This module provides a closed set of typed network errors. Each error
carries everything a caller needs to decide what to do next:
- Severity and recommended recovery strategy
- Base retry delay and retry budget
- A short user-facing message and recovery suggestions

Terminal conditions surfaced to callers (retry exhaustion, offline with no
cached fallback) and storage faults are defined here as well.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(Enum):
    """How bad a failure is from the user's point of view."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryStrategy(Enum):
    """Recommended way to recover from a failure."""

    RETRY = "retry"
    CACHE = "cache"
    MANUAL = "manual"
    ABORT = "abort"


class ErrorKind(Enum):
    """Tag for each network error variant."""

    NO_CONNECTION = "no_connection"
    TIMEOUT = "timeout"
    SERVER = "server"
    AUTHENTICATION = "authentication"
    PARSER = "parser"


class NetworkError(Exception):
    """Base class for classified network failures.

    Subclasses are the only variants; every property is derived from the
    variant and its payload.
    """

    kind: ErrorKind

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)

    @property
    def severity(self) -> ErrorSeverity:
        raise NotImplementedError

    @property
    def recommended_strategy(self) -> RecoveryStrategy:
        raise NotImplementedError

    @property
    def retry_delay(self) -> float:
        """Base retry delay in seconds."""
        raise NotImplementedError

    @property
    def max_retries(self) -> int:
        raise NotImplementedError

    @property
    def user_message(self) -> str:
        raise NotImplementedError

    @property
    def recovery_suggestions(self) -> List[str]:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the UI layer."""
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "strategy": self.recommended_strategy.value,
            "retry_delay": self.retry_delay,
            "max_retries": self.max_retries,
            "message": self.user_message,
            "suggestions": self.recovery_suggestions,
        }

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.user_message}"


class NoConnectionError(NetworkError):
    """Raised when the device has no usable network connection."""

    kind = ErrorKind.NO_CONNECTION

    @property
    def severity(self) -> ErrorSeverity:
        return ErrorSeverity.HIGH

    @property
    def recommended_strategy(self) -> RecoveryStrategy:
        return RecoveryStrategy.CACHE

    @property
    def retry_delay(self) -> float:
        return 5.0

    @property
    def max_retries(self) -> int:
        return 3

    @property
    def user_message(self) -> str:
        return "No internet connection detected"

    @property
    def recovery_suggestions(self) -> List[str]:
        return [
            "Check your WiFi or mobile data connection",
            "Move to an area with better signal strength",
            "Try again in a few moments",
            "Enable airplane mode, wait 10 seconds, then disable it",
        ]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, NoConnectionError)

    def __hash__(self) -> int:
        return hash(self.kind)


class RequestTimeoutError(NetworkError):
    """Raised when a request exceeds its deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, duration: float):
        self.duration = duration
        super().__init__()

    @property
    def severity(self) -> ErrorSeverity:
        return ErrorSeverity.MEDIUM

    @property
    def recommended_strategy(self) -> RecoveryStrategy:
        return RecoveryStrategy.RETRY

    @property
    def retry_delay(self) -> float:
        return self.duration * 2

    @property
    def max_retries(self) -> int:
        return 5

    @property
    def user_message(self) -> str:
        return f"Request timed out after {self.duration:g}s"

    @property
    def recovery_suggestions(self) -> List[str]:
        return [
            "Your connection might be slow",
            "Try again with a better network connection",
            "The server might be experiencing high load",
        ]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RequestTimeoutError) and other.duration == self.duration

    def __hash__(self) -> int:
        return hash((self.kind, self.duration))


class ServerError(NetworkError):
    """Raised when the remote side reports a failure.

    A status code of 0 means the failure could not be mapped to anything
    more specific.
    """

    kind = ErrorKind.SERVER

    def __init__(self, status_code: int, server_message: Optional[str] = None):
        self.status_code = status_code
        self.server_message = server_message
        super().__init__()

    @property
    def severity(self) -> ErrorSeverity:
        if self.status_code >= 500:
            return ErrorSeverity.CRITICAL
        if self.status_code == 429:
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.HIGH

    @property
    def recommended_strategy(self) -> RecoveryStrategy:
        if self.status_code == 429 or self.status_code >= 500:
            return RecoveryStrategy.RETRY
        return RecoveryStrategy.MANUAL

    @property
    def retry_delay(self) -> float:
        if self.status_code == 429:
            return 60.0  # Rate limited - wait longer
        if self.status_code in (502, 503):
            return 30.0
        return 10.0

    @property
    def max_retries(self) -> int:
        if self.status_code == 429:
            return 2
        if self.status_code >= 500:
            return 4
        return 1

    @property
    def user_message(self) -> str:
        messages = {
            429: "Too many requests - please wait a moment",
            500: "Server error - we're working on it",
            502: "Server maintenance - try again shortly",
            503: "Service temporarily unavailable",
        }
        return messages.get(self.status_code, f"Server error ({self.status_code})")

    @property
    def recovery_suggestions(self) -> List[str]:
        if self.status_code == 429:
            return [
                "Wait a minute before trying again",
                "You've made too many requests too quickly",
            ]
        if self.status_code >= 500:
            return [
                "This is a server problem, not your device",
                "Try again in a few minutes",
                "Check our status page for updates",
            ]
        return ["Contact support if this continues", "Try again later"]

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        data["server_message"] = self.server_message
        return data

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, ServerError)
            and other.status_code == self.status_code
            and other.server_message == self.server_message
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.status_code, self.server_message))


class AuthenticationError(NetworkError):
    """Raised when the caller must re-authenticate. Never retried."""

    kind = ErrorKind.AUTHENTICATION

    @property
    def severity(self) -> ErrorSeverity:
        return ErrorSeverity.HIGH

    @property
    def recommended_strategy(self) -> RecoveryStrategy:
        return RecoveryStrategy.MANUAL

    @property
    def retry_delay(self) -> float:
        return 0.0

    @property
    def max_retries(self) -> int:
        return 0

    @property
    def user_message(self) -> str:
        return "Authentication required"

    @property
    def recovery_suggestions(self) -> List[str]:
        return [
            "Please log in to continue",
            "Your session may have expired",
            "Check your login credentials",
        ]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AuthenticationError)

    def __hash__(self) -> int:
        return hash(self.kind)


class ParserError(NetworkError):
    """Raised when a response does not match the expected shape."""

    kind = ErrorKind.PARSER

    def __init__(self, details: str):
        self.details = details
        super().__init__()

    @property
    def severity(self) -> ErrorSeverity:
        return ErrorSeverity.MEDIUM

    @property
    def recommended_strategy(self) -> RecoveryStrategy:
        return RecoveryStrategy.RETRY

    @property
    def retry_delay(self) -> float:
        return 2.0

    @property
    def max_retries(self) -> int:
        return 2

    @property
    def user_message(self) -> str:
        return "Invalid data received from server"

    @property
    def recovery_suggestions(self) -> List[str]:
        return [
            "The server returned unexpected data",
            "Try refreshing to get fresh data",
            "This usually resolves itself quickly",
        ]

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["details"] = self.details
        return data

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ParserError) and other.details == self.details

    def __hash__(self) -> int:
        return hash((self.kind, self.details))


class RetryExhaustedError(Exception):
    """Raised when every allowed attempt failed. Always terminal."""

    def __init__(self, last_error: NetworkError, total_attempts: int):
        self.last_error = last_error
        self.total_attempts = total_attempts
        super().__init__(f"Failed after {total_attempts} attempts: {last_error}")

    @property
    def user_message(self) -> str:
        return self.last_error.user_message

    @property
    def recovery_suggestions(self) -> List[str]:
        return self.last_error.recovery_suggestions


class OfflineAndNoCacheError(Exception):
    """Raised when the device is effectively offline and nothing is cached."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No cached data available for '{key}' and device is offline")

    @property
    def user_message(self) -> str:
        return "You're offline and this content hasn't been saved yet"

    @property
    def recovery_suggestions(self) -> List[str]:
        return [
            "Reconnect to the internet and try again",
            "Disable offline mode if it is turned on",
        ]


class StorageError(Exception):
    """Raised by the durable key-value store when a read or write fails.

    Cache tiers catch this and degrade to a miss.
    """


__all__ = [
    "ErrorSeverity",
    "RecoveryStrategy",
    "ErrorKind",
    "NetworkError",
    "NoConnectionError",
    "RequestTimeoutError",
    "ServerError",
    "AuthenticationError",
    "ParserError",
    "RetryExhaustedError",
    "OfflineAndNoCacheError",
    "StorageError",
]
