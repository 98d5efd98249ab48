"""Durable FIFO queue of mutations recorded while offline.

The whole queue is a single JSON list stored under one well-known key.
Replay is at-least-once: an action is only removed from the durable
list after its executor reports success.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Set

from cache.database import KeyValueStore
from offline.actions import OfflineAction

logger = logging.getLogger(__name__)

PENDING_ACTIONS_KEY = "offline_actions"

ActionExecutor = Callable[[OfflineAction], Awaitable[bool]]


@dataclass
class DrainResult:
    """Outcome of one drain pass."""

    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    remaining: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "remaining": self.remaining,
        }


class OfflineQueue:
    """Ordered, durable list of pending OfflineActions."""

    def __init__(self, store: KeyValueStore, key: str = PENDING_ACTIONS_KEY):
        """Initialize offline queue.

        Args:
            store: Durable key-value substrate
            key: Store key holding the serialized list
        """
        self.store = store
        self.key = key
        self._write_lock = asyncio.Lock()
        self._drain_lock = asyncio.Lock()

    async def _load(self) -> List[OfflineAction]:
        """Read the durable list, dropping records that cannot be decoded."""
        text = await self.store.read_string(self.key)
        if not text:
            return []
        try:
            records = json.loads(text)
        except ValueError as e:
            logger.error(f"Offline queue is unreadable, starting empty: {e}")
            return []
        if not isinstance(records, list):
            logger.error("Offline queue record is not a list, starting empty")
            return []

        actions = []
        for i, record in enumerate(records):
            try:
                actions.append(OfflineAction.from_dict(record))
            except ValueError as e:
                logger.error(f"Dropping unreadable offline action at position {i}: {e}")
        return actions

    async def _save(self, actions: List[OfflineAction]) -> None:
        payload = json.dumps([a.to_dict() for a in actions], ensure_ascii=False)
        await self.store.write_string(self.key, payload)

    async def enqueue(self, action: OfflineAction) -> None:
        """Append an action and persist it immediately."""
        async with self._write_lock:
            actions = await self._load()
            actions.append(action)
            await self._save(actions)
        logger.info(f"Queued offline action: {action.type.value} {action.id}")

    async def pending(self) -> List[OfflineAction]:
        """Snapshot of the queued actions in FIFO order."""
        async with self._write_lock:
            return await self._load()

    async def count(self) -> int:
        return len(await self.pending())

    async def clear(self) -> None:
        async with self._write_lock:
            await self.store.remove_key(self.key)
        logger.info("Offline queue cleared")

    async def drain(self, executor: ActionExecutor) -> DrainResult:
        """Replay queued actions in order.

        Each action is independent: a failure keeps that action (with
        retry_count incremented) and the drain moves on. Actions enqueued
        while the drain runs are kept for the next pass.

        Args:
            executor: Async callable returning True when the action succeeded

        Returns:
            DrainResult with succeeded, failed and remaining ids
        """
        async with self._drain_lock:
            snapshot = await self.pending()
            result = DrainResult()
            if not snapshot:
                return result

            logger.info(f"Processing {len(snapshot)} pending actions")

            for action in snapshot:
                try:
                    ok = bool(await executor(action))
                except Exception as e:
                    logger.error(f"Failed to process action {action.id} ({action.type.value}): {e}")
                    ok = False

                if ok:
                    result.succeeded.append(action.id)
                else:
                    result.failed.append(action.id)

            succeeded: Set[str] = set(result.succeeded)
            failed: Set[str] = set(result.failed)

            async with self._write_lock:
                current = await self._load()
                remaining = []
                for action in current:
                    if action.id in succeeded:
                        continue
                    if action.id in failed:
                        action = action.with_failure()
                    remaining.append(action)
                await self._save(remaining)

            result.remaining = [a.id for a in remaining]
            logger.info(
                f"Processed {len(result.succeeded)} actions, "
                f"{len(result.remaining)} remaining"
            )
            return result


__all__ = ["OfflineQueue", "DrainResult", "PENDING_ACTIONS_KEY", "ActionExecutor"]
