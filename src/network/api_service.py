"""Posts API client with context-aware retries.

Every request runs through RetryEngine.execute_for_context, so the
retry budget and retry rules follow the request context. Non-2xx
responses raise HttpStatusError and malformed bodies raise
ResponseParseError; both are classified by the engine.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from network.errors import NetworkError
from network.http_client import DEFAULT_TIMEOUT, HttpClient, raise_for_status
from network.parsing import Post, parse_post, parse_posts
from network.retry import RequestContext, RetryEngine, RetryPolicy
from offline.actions import OfflineAction, OfflineActionType

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_URL = "https://jsonplaceholder.typicode.com"


class PostsService:
    """Client for the posts resource of the remote API."""

    def __init__(
        self,
        http: HttpClient,
        engine: RetryEngine,
        policy: Optional[RetryPolicy] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize posts service.

        Args:
            http: Request executor
            engine: Retry engine wrapping each request
            policy: Retry policy (defaults to RetryPolicy())
            base_url: API base URL without trailing slash
            timeout: Per-attempt timeout in seconds
        """
        self.http = http
        self.engine = engine
        self.policy = policy or RetryPolicy()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _make_request(
        self,
        endpoint: str,
        parser: Callable[[Any], T],
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        context: RequestContext = RequestContext.USER_INITIATED,
    ) -> T:
        url = f"{self.base_url}{endpoint}"
        logger.info(f"[{method}] {endpoint} (context: {context.value})")

        async def perform() -> T:
            response = await self.http.perform(method, url, body=body, timeout=self.timeout)
            raise_for_status(response)
            return parser(response.json() if response.body else None)

        def on_retry(attempt: int, error: NetworkError, delay: float) -> None:
            logger.info(f"Retry attempt {attempt} for {endpoint}: {error.user_message}")

        return await self.engine.execute_for_context(
            perform,
            context,
            policy=self.policy,
            on_retry=on_retry,
        )

    async def get_posts(
        self,
        context: RequestContext = RequestContext.USER_INITIATED,
    ) -> List[Post]:
        """Fetch all posts."""
        return await self._make_request(
            "/posts",
            lambda data: parse_posts(data).unwrap(),
            context=context,
        )

    async def get_post(
        self,
        post_id: int,
        context: RequestContext = RequestContext.USER_INITIATED,
    ) -> Post:
        """Fetch a single post."""
        return await self._make_request(
            f"/posts/{post_id}",
            lambda data: parse_post(data).unwrap(),
            context=context,
        )

    async def create_post(
        self,
        title: str,
        body: str,
        user_id: int,
        context: RequestContext = RequestContext.USER_INITIATED,
    ) -> Post:
        """Create a post."""
        return await self._make_request(
            "/posts",
            lambda data: parse_post(data).unwrap(),
            method="POST",
            body={"title": title, "body": body, "userId": user_id},
            context=context,
        )

    async def update_post(
        self,
        post_id: int,
        fields: Dict[str, Any],
        context: RequestContext = RequestContext.USER_INITIATED,
    ) -> Dict[str, Any]:
        """Update a post. Returns the server's echo of the record."""
        return await self._make_request(
            f"/posts/{post_id}",
            lambda data: data if isinstance(data, dict) else {},
            method="PUT",
            body={"id": post_id, **fields},
            context=context,
        )

    async def delete_post(
        self,
        post_id: int,
        context: RequestContext = RequestContext.USER_INITIATED,
    ) -> None:
        """Delete a post."""
        await self._make_request(
            f"/posts/{post_id}",
            lambda data: None,
            method="DELETE",
            context=context,
        )

    async def execute_offline_action(self, action: OfflineAction) -> bool:
        """Replay a queued offline action as a background request.

        Returns:
            True if the server accepted the mutation
        """
        data = action.payload
        try:
            if action.type == OfflineActionType.CREATE_POST:
                await self.create_post(
                    title=data["title"],
                    body=data["body"],
                    user_id=data["userId"],
                    context=RequestContext.BACKGROUND,
                )
            elif action.type == OfflineActionType.UPDATE_POST:
                fields = {k: v for k, v in data.items() if k != "id"}
                await self.update_post(data["id"], fields, context=RequestContext.BACKGROUND)
            elif action.type == OfflineActionType.DELETE_POST:
                await self.delete_post(data["id"], context=RequestContext.BACKGROUND)
            else:
                logger.error(f"Unknown offline action type: {action.type}")
                return False
        except KeyError as e:
            logger.error(f"Offline action {action.id} is missing field {e}")
            return False
        return True


__all__ = ["PostsService", "DEFAULT_BASE_URL"]
