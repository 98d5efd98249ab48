"""Async HTTP request executor built on aiohttp.

The executor never builds endpoint paths itself; callers hand it full
URLs. Transport and timeout failures propagate as the raw aiohttp /
asyncio exceptions so the ErrorClassifier can map them.
"""

import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)

# Default request timeout in seconds
DEFAULT_TIMEOUT = 15.0

USER_AGENT = "resilient-data-layer/1.0"


@dataclass
class HttpResponse:
    """Minimal response contract: status, headers, body text."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decode the body as JSON (raises json.JSONDecodeError)."""
        return json.loads(self.body)


class HttpStatusError(Exception):
    """Raised for a non-2xx response; carries the response for classification."""

    def __init__(self, response: HttpResponse):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def raise_for_status(response: HttpResponse) -> HttpResponse:
    """Raise HttpStatusError unless the response is 2xx."""
    if not response.ok:
        raise HttpStatusError(response)
    return response


def _generate_request_id() -> str:
    return f"{int(time.time() * 1000)}-{random.randint(0, 9999)}"


class HttpClient:
    """Thin aiohttp wrapper implementing perform(method, url, ...)."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        """Initialize HTTP client.

        Args:
            session: Existing aiohttp session. Created lazily if not provided.
            default_headers: Headers merged into every request
        """
        self._session = session
        self._owns_session = session is None
        self.default_headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if default_headers:
            self.default_headers.update(default_headers)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def perform(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> HttpResponse:
        """Execute a single HTTP request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, ...)
            url: Absolute URL
            headers: Extra headers for this request
            body: JSON-serializable body, or a pre-encoded string
            timeout: Total timeout in seconds

        Returns:
            HttpResponse with status, headers and body text

        Raises:
            aiohttp.ClientError / asyncio.TimeoutError on transport failure
        """
        request_headers = dict(self.default_headers)
        request_headers["X-Request-ID"] = _generate_request_id()
        if headers:
            request_headers.update(headers)

        data = None
        if body is not None:
            data = body if isinstance(body, str) else json.dumps(body, ensure_ascii=False)

        session = self._get_session()
        logger.debug(f"[{method.upper()}] {url}")

        async with session.request(
            method.upper(),
            url,
            headers=request_headers,
            data=data,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            text = await response.text()
            logger.debug(f"Response: {response.status} ({len(text)} chars)")
            return HttpResponse(
                status_code=response.status,
                headers=dict(response.headers),
                body=text,
            )

    async def close(self) -> None:
        """Close the underlying session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()


__all__ = [
    "HttpResponse",
    "HttpStatusError",
    "HttpClient",
    "raise_for_status",
    "DEFAULT_TIMEOUT",
]
