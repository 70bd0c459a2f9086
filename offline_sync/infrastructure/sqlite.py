"""
SQLite connection handling shared by the local stores.

Each operation opens its own connection against the database file so blocking
work can be pushed to a worker thread with ``asyncio.to_thread``. ``:memory:``
databases keep one shared connection (a fresh in-memory connection would be a
fresh, empty database) guarded by a lock.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar, Union

T = TypeVar("T")


class SqliteDatabase:
    """Thin wrapper owning the path, schema bootstrap, and connection lifecycle."""

    def __init__(self, path: Union[str, Path], schema: str) -> None:
        self.path = Path(path)
        self._is_memory = str(path) == ":memory:"
        if not self._is_memory:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._shared_conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        with self.connection() as conn:
            conn.executescript(schema)
            conn.commit()

    def _connect(self, target: str) -> sqlite3.Connection:
        conn = sqlite3.connect(target, timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA synchronous=FULL")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        if self._is_memory:
            with self._lock:
                if self._shared_conn is None:
                    self._shared_conn = self._connect(":memory:")
                yield self._shared_conn
        else:
            conn = self._connect(str(self.path))
            try:
                yield conn
            finally:
                conn.close()

    async def run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn`` with a connection on a worker thread."""

        def _call() -> T:
            with self.connection() as conn:
                return fn(conn)

        return await asyncio.to_thread(_call)

    def close(self) -> None:
        with self._lock:
            if self._shared_conn is not None:
                self._shared_conn.close()
                self._shared_conn = None


__all__ = ["SqliteDatabase"]
