"""Connectivity monitoring with a user-controlled offline override.

A probe is any async callable returning True when the backend is
reachable. The monitor runs it on a fixed interval and publishes an
event every time the effective online state flips. Effective offline
is ``probe says offline OR offline mode is enabled``.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from cache.database import KeyValueStore
from network.errors import StorageError
from network.http_client import HttpClient

logger = logging.getLogger(__name__)

OFFLINE_MODE_KEY = "offline_mode_enabled"
DEFAULT_INTERVAL = 5.0
DEFAULT_PROBE_TIMEOUT = 3.0

Probe = Callable[[], Awaitable[bool]]


class ConnectivityState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ConnectivityEvent:
    """A change of effective online state."""

    is_online: bool
    previous_online: bool
    source: str
    occurred_at: datetime

    def to_dict(self) -> dict:
        return {
            "is_online": self.is_online,
            "previous_online": self.previous_online,
            "source": self.source,
            "occurred_at": self.occurred_at.isoformat(),
        }


Listener = Callable[[ConnectivityEvent], Awaitable[None]]


def http_probe(
    client: HttpClient,
    url: str,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> Probe:
    """Build a probe that GETs url and reports online iff the status is 200.

    Transport failures and timeouts report offline.
    """

    async def probe() -> bool:
        try:
            response = await client.perform("GET", url, timeout=timeout)
        except Exception as e:
            logger.debug(f"Connectivity probe error: {type(e).__name__}: {e}")
            return False
        return response.status_code == 200

    return probe


class ConnectivityMonitor:
    """Periodic reachability prober and transition publisher."""

    def __init__(
        self,
        probe: Probe,
        interval: float = DEFAULT_INTERVAL,
        store: Optional[KeyValueStore] = None,
        initial_state: ConnectivityState = ConnectivityState.ONLINE,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize connectivity monitor.

        Args:
            probe: Async reachability check
            interval: Seconds between periodic probes
            store: Where the offline-mode flag is persisted (optional)
            initial_state: State assumed before the first probe completes
            clock: Source of event timestamps
        """
        self._probe = probe
        self.interval = interval
        self._store = store
        self._clock = clock
        self._state = initial_state
        self._offline_mode = False
        self._listeners: List[Listener] = []
        self._subscribers: List[asyncio.Queue] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectivityState:
        """Last probe result, or the initial state if none has completed."""
        return self._state

    @property
    def offline_mode_enabled(self) -> bool:
        return self._offline_mode

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_effectively_offline(self) -> bool:
        return self._offline_mode or self._state == ConnectivityState.OFFLINE

    def is_online(self) -> bool:
        return not self.is_effectively_offline()

    # === Probing ===

    async def check_now(self) -> ConnectivityState:
        """Run one probe and publish a transition if the state changed."""
        try:
            reachable = bool(await self._probe())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Connectivity probe raised {type(e).__name__}: {e}")
            reachable = False

        new_state = ConnectivityState.ONLINE if reachable else ConnectivityState.OFFLINE
        await self._set_state(new_state, source="probe")
        return new_state

    async def start(self) -> None:
        """Start periodic probing. A probe runs immediately."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Connectivity monitoring started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Connectivity monitoring stopped")

    async def _run(self) -> None:
        while True:
            await self.check_now()
            await asyncio.sleep(self.interval)

    # === Offline mode ===

    async def enable_offline_mode(self) -> None:
        await self._set_offline_mode(True)

    async def disable_offline_mode(self) -> None:
        await self._set_offline_mode(False)

    async def load_offline_mode(self) -> bool:
        """Restore the persisted offline-mode flag. Returns the flag."""
        if self._store is None:
            return self._offline_mode
        try:
            value = await self._store.read_string(OFFLINE_MODE_KEY)
        except StorageError as e:
            logger.warning(f"Failed to load offline mode: {e}")
            return self._offline_mode

        enabled = value == "true"
        if enabled != self._offline_mode:
            was_online = self.is_online()
            self._offline_mode = enabled
            await self._publish_if_changed(was_online, source="restore")
        return enabled

    async def _set_offline_mode(self, enabled: bool) -> None:
        was_online = self.is_online()
        self._offline_mode = enabled
        if self._store is not None:
            try:
                await self._store.write_string(OFFLINE_MODE_KEY, "true" if enabled else "false")
            except StorageError as e:
                logger.warning(f"Failed to persist offline mode: {e}")
        logger.info(f"Offline mode {'enabled' if enabled else 'disabled'}")
        await self._publish_if_changed(was_online, source="offline_mode")

    # === Transition stream ===

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def transitions(self) -> AsyncIterator[ConnectivityEvent]:
        """Async iterator over transition events from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(queue)

    async def _set_state(self, new_state: ConnectivityState, source: str) -> None:
        was_online = self.is_online()
        if new_state != self._state:
            logger.debug(f"Probe state: {self._state.value} -> {new_state.value}")
        self._state = new_state
        await self._publish_if_changed(was_online, source)

    async def _publish_if_changed(self, was_online: bool, source: str) -> None:
        is_online = self.is_online()
        if is_online == was_online:
            return

        event = ConnectivityEvent(
            is_online=is_online,
            previous_online=was_online,
            source=source,
            occurred_at=self._clock(),
        )
        logger.info(f"Connectivity changed: {'online' if is_online else 'offline'} ({source})")

        for queue in list(self._subscribers):
            queue.put_nowait(event)
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}")


__all__ = [
    "ConnectivityMonitor",
    "ConnectivityState",
    "ConnectivityEvent",
    "http_probe",
    "OFFLINE_MODE_KEY",
    "Probe",
]
