"""Offline-aware posts repository.

Glues CacheManager, PostsService, ConnectivityMonitor and OfflineQueue
into the read and write paths the application uses:

- Reads serve cached data when possible and refresh it in the
  background; while offline they only ever touch the cache.
- Writes go to the server when online and are queued for replay when
  offline.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set

from cache.cache_manager import CacheManager
from cache.models import CacheStrategy
from network.api_service import PostsService
from network.errors import NoConnectionError, OfflineAndNoCacheError
from network.parsing import Post, parse_posts
from network.retry import RequestContext
from offline.actions import OfflineAction, OfflineActionType
from offline.connectivity import ConnectivityEvent, ConnectivityMonitor
from offline.queue import OfflineQueue

logger = logging.getLogger(__name__)

POSTS_KEY = "posts_list"
POSTS_TTL = timedelta(hours=2)


class PostsRepository:
    """Cached, offline-capable access to posts."""

    def __init__(
        self,
        cache: CacheManager,
        service: PostsService,
        monitor: ConnectivityMonitor,
        queue: OfflineQueue,
        refresh_on_reconnect: bool = True,
    ):
        """Initialize posts repository.

        Args:
            cache: Two-tier cache
            service: Remote posts API
            monitor: Connectivity state source
            queue: Where offline mutations are recorded
            refresh_on_reconnect: Refresh the cached list when connectivity returns
        """
        self.cache = cache
        self.service = service
        self.monitor = monitor
        self.queue = queue
        self._background: Set[asyncio.Task] = set()
        if refresh_on_reconnect:
            monitor.add_listener(self._on_connectivity_change)

    # === Reads ===

    async def load_posts(
        self,
        strategy: CacheStrategy = CacheStrategy.CACHE_FIRST,
    ) -> List[Post]:
        """Load the posts list according to strategy and connectivity.

        Raises:
            OfflineAndNoCacheError: Offline (or cache-only) with nothing cached
            RetryExhaustedError / NetworkError: Network fetch failed
        """
        if self.monitor.is_effectively_offline():
            cached = await self._cached_posts()
            if cached is not None:
                logger.info("Using cached posts (offline mode)")
                return cached
            raise OfflineAndNoCacheError(POSTS_KEY)

        if strategy == CacheStrategy.CACHE_ONLY:
            cached = await self._cached_posts()
            if cached is None:
                raise OfflineAndNoCacheError(POSTS_KEY)
            return cached

        if strategy == CacheStrategy.NETWORK_ONLY:
            return await self._fetch_from_network()

        if strategy == CacheStrategy.NETWORK_FIRST:
            try:
                return await self._fetch_from_network()
            except Exception as e:
                cached = await self._cached_posts()
                if cached is None:
                    raise
                logger.warning(f"Network fetch failed, using cached posts: {e}")
                return cached

        cached = await self._cached_posts()
        if cached is not None:
            logger.info("Using cached posts, refreshing in background")
            self._refresh_in_background()
            return cached

        return await self._fetch_from_network()

    async def refresh(self) -> List[Post]:
        """User-triggered refresh from the network.

        Raises:
            NoConnectionError: If effectively offline
        """
        if self.monitor.is_effectively_offline():
            raise NoConnectionError("Cannot refresh while offline")
        return await self._fetch_from_network()

    async def _cached_posts(self) -> Optional[List[Post]]:
        data = await self.cache.get(POSTS_KEY)
        if data is None:
            return None
        result = parse_posts(data)
        if not result.ok:
            logger.warning(f"Cached posts are unreadable, dropping them: {result.error}")
            await self.cache.invalidate(POSTS_KEY)
            return None
        return result.value

    async def _fetch_from_network(
        self,
        context: RequestContext = RequestContext.USER_INITIATED,
    ) -> List[Post]:
        posts = await self.service.get_posts(context=context)
        await self._store_posts(posts)
        logger.info(f"Fetched and cached {len(posts)} posts")
        return posts

    async def _store_posts(self, posts: List[Post]) -> None:
        await self.cache.put(
            POSTS_KEY,
            [post.to_dict() for post in posts],
            ttl=POSTS_TTL,
        )

    def _refresh_in_background(self) -> None:
        task = asyncio.create_task(self._background_refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _background_refresh(self) -> None:
        try:
            await self._fetch_from_network(context=RequestContext.BACKGROUND)
        except Exception as e:
            # Cached data stays in place
            logger.warning(f"Background refresh failed: {e}")

    async def wait_for_background(self) -> None:
        """Wait for all background refreshes scheduled so far."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _on_connectivity_change(self, event: ConnectivityEvent) -> None:
        if event.is_online and not event.previous_online:
            logger.info("Connection restored, refreshing posts")
            self._refresh_in_background()

    # === Writes ===

    async def create_post(self, title: str, body: str, user_id: int) -> Optional[Post]:
        """Create a post, or queue it when offline.

        Returns:
            The created post, or None if the mutation was queued
        """
        payload = {"title": title, "body": body, "userId": user_id}
        if self.monitor.is_effectively_offline():
            await self._queue(OfflineActionType.CREATE_POST, payload)
            await self._append_optimistic(title, body, user_id)
            logger.info("Post queued for sync when online")
            return None

        post = await self.service.create_post(title=title, body=body, user_id=user_id)
        await self.cache.invalidate(POSTS_KEY)
        return post

    async def update_post(self, post_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a post, or queue the update when offline."""
        if self.monitor.is_effectively_offline():
            await self._queue(OfflineActionType.UPDATE_POST, {"id": post_id, **fields})
            return None

        updated = await self.service.update_post(post_id, fields)
        await self.cache.invalidate(POSTS_KEY)
        return updated

    async def delete_post(self, post_id: int) -> bool:
        """Delete a post, or queue the delete when offline.

        Returns:
            True if the server deleted it, False if it was queued
        """
        if self.monitor.is_effectively_offline():
            await self._queue(OfflineActionType.DELETE_POST, {"id": post_id})
            return False

        await self.service.delete_post(post_id)
        await self.cache.invalidate(POSTS_KEY)
        return True

    async def _queue(self, action_type: OfflineActionType, payload: Dict[str, Any]) -> OfflineAction:
        action = OfflineAction.create(action_type, payload)
        await self.queue.enqueue(action)
        return action

    async def _append_optimistic(self, title: str, body: str, user_id: int) -> None:
        """Show a queued post in the cached list until the next refresh."""
        cached = await self._cached_posts() or []
        temp_id = -(len(cached) + 1)
        cached.append(Post(id=temp_id, user_id=user_id, title=title, body=body))
        await self._store_posts(cached)

    # === Cache control ===

    async def clear_cache(self) -> None:
        await self.cache.invalidate(POSTS_KEY)
        logger.info("Posts cache cleared")

    async def get_cache_stats(self) -> Dict[str, Any]:
        return await self.cache.get_stats()


__all__ = ["PostsRepository", "POSTS_KEY", "POSTS_TTL"]
