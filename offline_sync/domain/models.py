"""
Domain models for the offline sync engine.

Defines the flat todo record exchanged with the remote service, the filter and
partial-update shapes of its CRUD contract, and the result/diagnostic types the
engine hands back to callers.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from offline_sync.domain.errors import OfflineSyncError


class Record(BaseModel):
    """
    A single todo item.

    ``synced`` is a read-side annotation: the remote service stamps every item it
    returns with ``synced: true``; items merged in from the pending queue keep
    the default ``False``. It is never sent on writes.
    """

    id: int = Field(..., description="Caller-assigned identity (e.g. a millisecond timestamp).")
    title: str = Field(..., description="Item text.")
    completed: bool = Field(False, description="Whether the item is done.")
    synced: bool = Field(False, description="Confirmed by the remote service.")

    model_config = {
        "frozen": True,
        "extra": "ignore",
    }

    def to_wire(self) -> Dict[str, Any]:
        """Body of an insert request."""
        return {"id": self.id, "title": self.title, "completed": self.completed}


class ItemQuery(BaseModel):
    """
    Partial-field predicate over Record. Present fields are AND-combined with
    exact equality; an empty query matches everything.
    """

    id: Optional[int] = None
    completed: Optional[bool] = None

    model_config = {"frozen": True}

    def _present(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def matches(self, record: Record) -> bool:
        return all(getattr(record, key) == value for key, value in self._present().items())

    def to_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for key, value in self._present().items():
            params[key] = ("true" if value else "false") if isinstance(value, bool) else str(value)
        return params

    @property
    def is_empty(self) -> bool:
        return not self._present()


class ItemUpdate(BaseModel):
    """Record id plus one or more mutable fields to change."""

    id: int
    title: Optional[str] = None
    completed: Optional[bool] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _require_change(self) -> "ItemUpdate":
        if self.title is None and self.completed is None:
            raise ValueError("an update needs at least one of: title, completed")
        return self

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ItemCounts(BaseModel):
    total: int = 0
    active: int = 0
    completed: int = 0


class FindResult(BaseModel):
    """Items matching a query, the collection counts, and the response date."""

    items: List[Record]
    counts: Optional[ItemCounts] = None
    date: Optional[datetime] = None


class InsertResult(BaseModel):
    """
    Outcome of an insert. ``confirmed`` is False when the engine accepted the
    item while offline; it will be replayed by the next sync pass.
    """

    item: Record
    confirmed: bool
    date: Optional[datetime] = None


class SyncStatus(str, enum.Enum):
    SKIPPED = "skipped"
    EMPTY = "empty"
    SUCCEEDED = "succeeded"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class SyncReport:
    """Result of one reconciliation pass."""

    status: SyncStatus
    attempted: int = 0
    failed_ids: Tuple[int, ...] = ()
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status is not SyncStatus.INCOMPLETE

    def raise_for_status(self) -> "SyncReport":
        if self.status is SyncStatus.INCOMPLETE:
            raise OfflineSyncError.sync_incomplete(self.failed_ids, self.attempted)
        return self

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "attempted": self.attempted,
            "failed_ids": list(self.failed_ids),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class SyncState:
    """
    Process-wide reconciliation state. Not persisted; timestamps are for
    diagnostics only.
    """

    in_flight: bool = False
    last_attempted_at: Optional[datetime] = None
    last_succeeded_at: Optional[datetime] = None
    last_error: Optional[str] = None
    passes: int = field(default=0)

    def mark_started(self) -> datetime:
        now = datetime.now(timezone.utc)
        self.in_flight = True
        self.last_attempted_at = now
        self.passes += 1
        return now


__all__ = [
    "FindResult",
    "InsertResult",
    "ItemCounts",
    "ItemQuery",
    "ItemUpdate",
    "Record",
    "SyncReport",
    "SyncState",
    "SyncStatus",
]
