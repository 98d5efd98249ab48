"""Map raw failures onto the closed NetworkError taxonomy.

classify() is a pure function of its inputs: every raw failure maps to
exactly one variant, and anything unrecognised becomes ServerError(0).
"""

import asyncio
import errno
import json
import socket
from typing import Optional

import aiohttp

from network.errors import (
    AuthenticationError,
    NetworkError,
    NoConnectionError,
    ParserError,
    RequestTimeoutError,
    RetryExhaustedError,
    ServerError,
)
from network.http_client import HttpResponse, HttpStatusError
from network.parsing import ResponseParseError

# Timeout reported when the failure does not say how long it waited
DEFAULT_TIMEOUT_SECONDS = 10.0

TIMEOUT_EXCEPTIONS = (asyncio.TimeoutError, TimeoutError, aiohttp.ServerTimeoutError)
CONNECTION_EXCEPTIONS = (aiohttp.ClientConnectionError, ConnectionError, socket.gaierror, socket.herror)
# Plain OSErrors count as connectivity failures only with one of these codes
NETWORK_ERRNOS = frozenset({errno.ENETDOWN, errno.ENETUNREACH, errno.EHOSTUNREACH})
PARSE_EXCEPTIONS = (ResponseParseError, json.JSONDecodeError, ValueError, TypeError, KeyError)


def is_connection_failure(failure: BaseException) -> bool:
    """True for transport-level failures, not for local OS faults like PermissionError."""
    if isinstance(failure, CONNECTION_EXCEPTIONS):
        return True
    return type(failure) is OSError and failure.errno in NETWORK_ERRNOS


def extract_server_message(body: Optional[str]) -> Optional[str]:
    """Read the first string in 'error', 'message' or 'details' from a JSON body.

    Returns None when the body is not JSON or none of the fields is a string.
    """
    if not body:
        return None
    try:
        data = json.loads(body)
    except (ValueError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    for field_name in ("error", "message", "details"):
        value = data.get(field_name)
        if isinstance(value, str):
            return value
    return None


class ErrorClassifier:
    """Stateless classifier from raw failures to NetworkError variants."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        """Initialize classifier.

        Args:
            timeout: Duration reported by RequestTimeoutError
        """
        self.timeout = timeout

    def classify(
        self,
        failure: BaseException,
        response: Optional[HttpResponse] = None,
    ) -> NetworkError:
        """Classify a failure.

        Args:
            failure: The raised exception
            response: HTTP response associated with the failure, if any

        Returns:
            The matching NetworkError variant
        """
        if isinstance(failure, NetworkError):
            return failure
        if isinstance(failure, RetryExhaustedError):
            return failure.last_error

        if isinstance(failure, TIMEOUT_EXCEPTIONS):
            return RequestTimeoutError(self.timeout)

        if is_connection_failure(failure):
            return NoConnectionError()

        if response is None and isinstance(failure, HttpStatusError):
            response = failure.response
        if response is not None:
            return self.classify_status(response.status_code, response.body)
        if isinstance(failure, aiohttp.ClientResponseError):
            return self.classify_status(failure.status, None)

        if isinstance(failure, PARSE_EXCEPTIONS):
            return ParserError(str(failure))

        return ServerError(0, server_message=str(failure))

    def classify_status(self, status_code: int, body: Optional[str] = None) -> NetworkError:
        """Classify an HTTP status code (and optional body)."""
        if status_code in (401, 403):
            return AuthenticationError()
        if status_code == 429:
            return ServerError(429)
        if status_code >= 400:
            # 4xx and 5xx both carry the server's own explanation when present
            return ServerError(status_code, server_message=extract_server_message(body))
        return ServerError(status_code)


__all__ = ["ErrorClassifier", "extract_server_message", "DEFAULT_TIMEOUT_SECONDS"]
