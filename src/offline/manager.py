"""Offline coordination: connectivity, queued mutations and replay."""

import asyncio
import logging
from typing import Any, Dict, Optional

from offline.actions import OfflineAction, OfflineActionType
from offline.connectivity import ConnectivityEvent, ConnectivityMonitor
from offline.queue import ActionExecutor, DrainResult, OfflineQueue

logger = logging.getLogger(__name__)


class OfflineManager:
    """Drains the offline queue whenever the device comes back online.

    Example:
        manager = OfflineManager(monitor, queue, service.execute_offline_action)
        await manager.start()
        ...
        await manager.stop()
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        queue: OfflineQueue,
        executor: ActionExecutor,
    ):
        self.monitor = monitor
        self.queue = queue
        self.executor = executor
        self._drain_task: Optional[asyncio.Task] = None
        self._started = False

    @property
    def is_offline(self) -> bool:
        return self.monitor.is_effectively_offline()

    async def start(self, probe: bool = True) -> None:
        """Restore offline mode, subscribe to transitions and start probing.

        Args:
            probe: Whether to start the periodic connectivity task
        """
        if self._started:
            return
        await self.monitor.load_offline_mode()
        self.monitor.add_listener(self._on_connectivity_change)
        if probe:
            await self.monitor.start()
        self._started = True
        logger.info("Offline manager started")

    async def stop(self) -> None:
        if not self._started:
            return
        self.monitor.remove_listener(self._on_connectivity_change)
        await self.monitor.stop()
        if self._drain_task is not None:
            await self._drain_task
            self._drain_task = None
        self._started = False
        logger.info("Offline manager stopped")

    async def _on_connectivity_change(self, event: ConnectivityEvent) -> None:
        if event.is_online and not event.previous_online:
            # Drain off the probe path so a slow replay never delays probing
            self._drain_task = asyncio.create_task(self.process_pending())

    async def wait_for_sync(self) -> None:
        """Wait for a drain started by a connectivity transition."""
        if self._drain_task is not None:
            await self._drain_task

    async def queue_action(
        self,
        action_type: OfflineActionType,
        payload: Dict[str, Any],
    ) -> OfflineAction:
        """Record a mutation for later replay."""
        action = OfflineAction.create(action_type, payload)
        await self.queue.enqueue(action)
        return action

    async def process_pending(self) -> DrainResult:
        """Replay queued actions unless effectively offline."""
        if self.is_offline:
            logger.debug("Skipping offline queue drain: still offline")
            return DrainResult(remaining=[a.id for a in await self.queue.pending()])
        return await self.queue.drain(self.executor)

    async def enable_offline_mode(self) -> None:
        await self.monitor.enable_offline_mode()

    async def disable_offline_mode(self) -> DrainResult:
        """Leave offline mode and replay whatever was queued meanwhile."""
        await self.wait_for_sync()
        self._drain_task = None
        await self.monitor.disable_offline_mode()
        if self._drain_task is not None:
            # The transition listener already started a drain
            return await self._drain_task
        return await self.process_pending()

    async def pending_count(self) -> int:
        return await self.queue.count()


__all__ = ["OfflineManager"]
