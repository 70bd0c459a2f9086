"""
Domain package for the offline sync engine.

Exports the record, query, and result models plus the tagged engine error.
Keep this package focused on data definitions and validation concerns.
"""

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

__all__ = [
    "ErrorKind",
    "FindResult",
    "InsertResult",
    "ItemCounts",
    "ItemQuery",
    "ItemUpdate",
    "OfflineSyncError",
    "Record",
    "SyncReport",
    "SyncState",
    "SyncStatus",
]
