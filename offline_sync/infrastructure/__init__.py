"""
Infrastructure package for the offline sync engine.

Centralizes I/O concerns: the durable mutation store, the versioned resource
cache (both SQLite), and the HTTP client for the remote service. Keep this
layer focused on I/O and resource management, decoupled from the
interception and sync logic.
"""

from offline_sync.infrastructure.mutation_store import MutationStore
from offline_sync.infrastructure.remote_client import RemoteStoreClient
from offline_sync.infrastructure.resource_cache import (
    CachedResponse,
    CacheNamespace,
    ResourceCache,
    cache_key,
    seed_shell,
)

__all__ = [
    "CacheNamespace",
    "CachedResponse",
    "MutationStore",
    "RemoteStoreClient",
    "ResourceCache",
    "cache_key",
    "seed_shell",
]
