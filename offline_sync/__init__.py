"""
Offline sync - offline-first interception and synchronization for a todo service.

This package sits between a client application and a remote todo service:

- Requests go network-first through an intercepting httpx transport
- Reads fall back to a versioned response cache when the network is down
- Inserts made offline are queued durably and answered with 202 Accepted
- A sync coordinator replays the queue once connectivity returns

Everything hangs off an ``OfflineEngine`` context object with an explicit
start/close lifecycle.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from offline_sync.config import Settings, get_settings
from offline_sync.coordinator import SyncCoordinator
from offline_sync.domain.errors import ErrorKind, OfflineSyncError
from offline_sync.domain.models import (
    FindResult,
    InsertResult,
    ItemCounts,
    ItemQuery,
    ItemUpdate,
    Record,
    SyncReport,
    SyncState,
    SyncStatus,
)
from offline_sync.engine import OfflineEngine
from offline_sync.infrastructure.remote_client import RemoteStoreClient
from offline_sync.interceptor import RequestInterceptor, RequestKind
from offline_sync.triggers import ConnectivityMonitor, SyncTriggers, TriggerSource
from offline_sync.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Engine
    "OfflineEngine",
    "RequestInterceptor",
    "RequestKind",
    "SyncCoordinator",
    "SyncTriggers",
    "ConnectivityMonitor",
    "TriggerSource",
    "RemoteStoreClient",
    # Domain
    "ErrorKind",
    "OfflineSyncError",
    "FindResult",
    "InsertResult",
    "ItemCounts",
    "ItemQuery",
    "ItemUpdate",
    "Record",
    "SyncReport",
    "SyncState",
    "SyncStatus",
    # Logging
    "configure_logging",
    "get_logger",
]
