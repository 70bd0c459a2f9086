"""
Durable store of pending (unsynced) record inserts.

Entries are keyed by record id: putting a record whose id is already queued
replaces it (last write wins). ``clear()`` deletes every entry in a single
transaction, so an interrupted clear never leaves part of the queue behind.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import List, Union

from offline_sync.domain.models import Record
from offline_sync.infrastructure.sqlite import SqliteDatabase
from offline_sync.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS pending_mutations (
    id INTEGER PRIMARY KEY,
    payload TEXT NOT NULL,
    queued_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""


class MutationStore:
    """SQLite-backed queue of inserts awaiting replay against the remote service."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._db = SqliteDatabase(path, _SCHEMA)

    @property
    def path(self) -> Path:
        return self._db.path

    async def list_all(self) -> List[Record]:
        """Every pending record, in key (id) order."""

        def _list(conn: sqlite3.Connection) -> List[Record]:
            rows = conn.execute("SELECT payload FROM pending_mutations ORDER BY id ASC").fetchall()
            return [Record.model_validate(json.loads(row["payload"])) for row in rows]

        return await self._db.run(_list)

    async def put(self, record: Record) -> None:
        payload = json.dumps(record.to_wire())

        def _put(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO pending_mutations(id, payload) VALUES(?, ?)",
                    (record.id, payload),
                )

        await self._db.run(_put)
        log.debug("Pending mutation stored", extra={"record_id": record.id})

    async def clear(self) -> int:
        """Remove every entry atomically; returns how many were removed."""

        def _clear(conn: sqlite3.Connection) -> int:
            with conn:
                return conn.execute("DELETE FROM pending_mutations").rowcount

        removed = await self._db.run(_clear)
        log.debug("Pending mutations cleared", extra={"removed": removed})
        return removed

    async def count(self) -> int:
        def _count(conn: sqlite3.Connection) -> int:
            return conn.execute("SELECT COUNT(*) FROM pending_mutations").fetchone()[0]

        return await self._db.run(_count)

    def close(self) -> None:
        self._db.close()


__all__ = ["MutationStore"]
