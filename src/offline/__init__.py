"""Offline support: durable mutation queue and connectivity monitoring."""

from offline.actions import OfflineAction, OfflineActionType
from offline.connectivity import (
    ConnectivityEvent,
    ConnectivityMonitor,
    ConnectivityState,
    http_probe,
)
from offline.manager import OfflineManager
from offline.queue import DrainResult, OfflineQueue

__all__ = [
    "OfflineAction",
    "OfflineActionType",
    "OfflineQueue",
    "DrainResult",
    "ConnectivityMonitor",
    "ConnectivityState",
    "ConnectivityEvent",
    "http_probe",
    "OfflineManager",
]
