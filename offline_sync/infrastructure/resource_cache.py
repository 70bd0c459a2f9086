"""
Versioned cache of previously served responses.

Responses live in named namespaces (``todo-v3``). Exactly one namespace is
active at a time; moving to a new version means seeding a fresh namespace and
evicting the old one wholesale, never patching entries across versions.

A namespace is recorded in ``cache_namespaces`` in the same transaction as its
seed entries, so a failed bootstrap leaves no partial namespace behind.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from offline_sync.domain.errors import OfflineSyncError
from offline_sync.infrastructure.sqlite import SqliteDatabase
from offline_sync.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_namespaces (
    name TEXT PRIMARY KEY,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS cache_entries (
    namespace TEXT NOT NULL,
    key TEXT NOT NULL,
    status INTEGER NOT NULL,
    headers TEXT NOT NULL,
    body BLOB NOT NULL,
    stored_at TEXT NOT NULL,
    PRIMARY KEY (namespace, key)
);
"""

# The stored body is already decoded, so transfer framing must not be replayed.
_DROPPED_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


def cache_key(request: httpx.Request) -> str:
    """Exact-match key for a request: method plus full URL."""
    return f"{request.method} {request.url}"


@dataclass(frozen=True)
class CachedResponse:
    """An immutable snapshot of a response body with its status and headers."""

    status_code: int
    headers: Tuple[Tuple[str, str], ...]
    body: bytes
    stored_at: datetime

    @classmethod
    def from_response(cls, response: httpx.Response) -> "CachedResponse":
        """Snapshot a response whose body has already been read."""
        headers = tuple(
            (name, value)
            for name, value in response.headers.items()
            if name.lower() not in _DROPPED_HEADERS
        )
        return cls(
            status_code=response.status_code,
            headers=headers,
            body=response.content,
            stored_at=datetime.now(timezone.utc),
        )

    def json(self) -> object:
        return json.loads(self.body)

    def to_response(self, request: Optional[httpx.Request] = None) -> httpx.Response:
        return httpx.Response(
            self.status_code,
            headers=list(self.headers),
            content=self.body,
            request=request,
        )


def _row_to_cached(row: sqlite3.Row) -> CachedResponse:
    return CachedResponse(
        status_code=row["status"],
        headers=tuple((name, value) for name, value in json.loads(row["headers"])),
        body=bytes(row["body"]),
        stored_at=datetime.fromisoformat(row["stored_at"]),
    )


def _insert_entry(conn: sqlite3.Connection, namespace: str, key: str, entry: CachedResponse) -> None:
    conn.execute(
        """
        INSERT OR REPLACE INTO cache_entries(namespace, key, status, headers, body, stored_at)
        VALUES(?, ?, ?, ?, ?, ?)
        """,
        (
            namespace,
            key,
            entry.status_code,
            json.dumps([list(pair) for pair in entry.headers]),
            sqlite3.Binary(entry.body),
            entry.stored_at.isoformat(),
        ),
    )


def _ensure_namespace(conn: sqlite3.Connection, namespace: str) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO cache_namespaces(name, created_at) VALUES(?, ?)",
        (namespace, datetime.now(timezone.utc).isoformat()),
    )


class CacheNamespace:
    """Handle on one named namespace of a ResourceCache."""

    def __init__(self, db: SqliteDatabase, name: str) -> None:
        self._db = db
        self.name = name

    def __repr__(self) -> str:
        return f"CacheNamespace({self.name!r})"

    async def exists(self) -> bool:
        def _exists(conn: sqlite3.Connection) -> bool:
            row = conn.execute(
                "SELECT 1 FROM cache_namespaces WHERE name = ?", (self.name,)
            ).fetchone()
            return row is not None

        return await self._db.run(_exists)

    async def put(self, key: str, entry: CachedResponse) -> None:
        """Store ``entry`` under ``key``, replacing any previous snapshot whole."""

        def _put(conn: sqlite3.Connection) -> None:
            with conn:
                _ensure_namespace(conn, self.name)
                _insert_entry(conn, self.name, key, entry)

        await self._db.run(_put)

    async def add_all(self, entries: Mapping[str, CachedResponse]) -> None:
        """Write every entry and the namespace marker in one transaction."""

        def _add_all(conn: sqlite3.Connection) -> None:
            with conn:
                _ensure_namespace(conn, self.name)
                for key, entry in entries.items():
                    _insert_entry(conn, self.name, key, entry)

        await self._db.run(_add_all)

    async def match(self, key: str) -> Optional[CachedResponse]:
        def _match(conn: sqlite3.Connection) -> Optional[CachedResponse]:
            row = conn.execute(
                "SELECT status, headers, body, stored_at FROM cache_entries "
                "WHERE namespace = ? AND key = ?",
                (self.name, key),
            ).fetchone()
            return _row_to_cached(row) if row is not None else None

        return await self._db.run(_match)

    async def keys(self) -> List[str]:
        def _keys(conn: sqlite3.Connection) -> List[str]:
            rows = conn.execute(
                "SELECT key FROM cache_entries WHERE namespace = ? ORDER BY key", (self.name,)
            ).fetchall()
            return [row["key"] for row in rows]

        return await self._db.run(_keys)


class ResourceCache:
    """SQLite-backed collection of cache namespaces."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._db = SqliteDatabase(path, _SCHEMA)

    def open(self, name: str) -> CacheNamespace:
        return CacheNamespace(self._db, name)

    async def namespaces(self) -> List[str]:
        def _names(conn: sqlite3.Connection) -> List[str]:
            rows = conn.execute("SELECT name FROM cache_namespaces ORDER BY name").fetchall()
            return [row["name"] for row in rows]

        return await self._db.run(_names)

    async def delete(self, name: str) -> bool:
        """Drop a namespace and all of its entries."""

        def _delete(conn: sqlite3.Connection) -> bool:
            with conn:
                conn.execute("DELETE FROM cache_entries WHERE namespace = ?", (name,))
                return conn.execute(
                    "DELETE FROM cache_namespaces WHERE name = ?", (name,)
                ).rowcount > 0

        return await self._db.run(_delete)

    async def prune(self, keep: str) -> List[str]:
        """Evict every namespace except ``keep``; returns the evicted names."""
        evicted = []
        for name in await self.namespaces():
            if name != keep and await self.delete(name):
                evicted.append(name)
        if evicted:
            log.info("Evicted stale cache namespaces", extra={"evicted": evicted, "kept": keep})
        return evicted

    def close(self) -> None:
        self._db.close()


async def _fetch_entry(client: httpx.AsyncClient, url: str) -> Tuple[str, CachedResponse]:
    try:
        response = await client.get(url)
    except httpx.TransportError as exc:
        raise OfflineSyncError.unreachable(exc) from exc
    if not response.is_success:
        raise OfflineSyncError.rejected(response.status_code, response.reason_phrase)
    return cache_key(response.request), CachedResponse.from_response(response)


async def _fetch_manifest(
    client: httpx.AsyncClient, manifest: Sequence[str]
) -> Dict[str, CachedResponse]:
    results = await asyncio.gather(
        *(_fetch_entry(client, url) for url in manifest), return_exceptions=True
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return dict(results)  # type: ignore[arg-type]


async def seed_shell(
    namespace: CacheNamespace,
    client: httpx.AsyncClient,
    manifest: Sequence[str],
    attempts: int = 3,
    wait: Optional[wait_base] = None,
) -> int:
    """
    Create ``namespace`` pre-populated with every URL in ``manifest``.

    All-or-nothing: if any item fails to fetch, nothing is written and the
    whole manifest is fetched again from scratch, up to ``attempts`` times.
    The last failure propagates.

    Returns
    -------
    int
        Number of entries seeded (0 if the namespace already existed).
    """
    if await namespace.exists():
        log.debug("Cache namespace already present", extra={"namespace": namespace.name})
        return 0

    entries: Dict[str, CachedResponse] = {}
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait or wait_exponential(multiplier=0.5, min=0.5, max=10),
        retry=retry_if_exception_type(OfflineSyncError),
        reraise=True,
    ):
        with attempt:
            log.info(
                "Seeding cache namespace",
                extra={
                    "namespace": namespace.name,
                    "items": len(manifest),
                    "attempt": attempt.retry_state.attempt_number,
                },
            )
            entries = await _fetch_manifest(client, manifest)

    await namespace.add_all(entries)
    log.info("Cache namespace seeded", extra={"namespace": namespace.name, "items": len(entries)})
    return len(entries)


__all__ = [
    "CacheNamespace",
    "CachedResponse",
    "ResourceCache",
    "cache_key",
    "seed_shell",
]
