"""
Request interceptor: the offline-first transport.

Every request made through the application-facing client passes through
``RequestInterceptor``, an httpx transport wrapping the real network transport.
Each request tries the network first and waits for the outcome:

- success: the live response is returned; successful GETs are copied into the
  active cache namespace in the background.
- transport failure (DNS, connect, timeout, ...): the request is classified
    * insert of a record  -> queued in the mutation store, 202 ``{}`` returned
    * collection read     -> last cached snapshot plus pending items, 200
    * anything else       -> exact-match cache lookup, else "Not available"

A response with an error status is a reachable server and is returned as-is;
it never triggers the offline branches.
"""

from __future__ import annotations

import asyncio
import enum
import json
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional, Set

import httpx
from pydantic import ValidationError

from offline_sync.domain.errors import OfflineSyncError
from offline_sync.domain.models import Record
from offline_sync.infrastructure.mutation_store import MutationStore
from offline_sync.infrastructure.resource_cache import CacheNamespace, CachedResponse, cache_key
from offline_sync.utils.logging import get_logger

log = get_logger(__name__)


class RequestKind(str, enum.Enum):
    COLLECTION_READ = "collection_read"
    RECORD_INSERT = "record_insert"
    OTHER = "other"


def _json_response(status_code: int, payload: object, request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={
            "content-type": "application/json",
            "date": format_datetime(datetime.now(timezone.utc), usegmt=True),
        },
        content=json.dumps(payload).encode("utf-8"),
        request=request,
    )


class RequestInterceptor(httpx.AsyncBaseTransport):
    """
    Network-first transport with offline fallbacks.

    Parameters
    ----------
    inner : httpx.AsyncBaseTransport
        The real network transport. Not closed by this transport; its owner
        closes it.
    store : MutationStore
        Where offline inserts are queued.
    cache : CacheNamespace
        The active cache namespace.
    collection_path : str
        Path of the record collection, e.g. ``/todos``.
    """

    def __init__(
        self,
        inner: httpx.AsyncBaseTransport,
        store: MutationStore,
        cache: CacheNamespace,
        collection_path: str = "/todos",
    ) -> None:
        self._inner = inner
        self._store = store
        self._cache = cache
        self._collection_path = "/" + collection_path.strip("/")
        self._background: Set["asyncio.Task[None]"] = set()

    def classify(self, request: httpx.Request) -> RequestKind:
        path = request.url.path.rstrip("/") or "/"
        if path != self._collection_path:
            return RequestKind.OTHER
        if request.method == "POST":
            return RequestKind.RECORD_INSERT
        if request.method == "GET" and not request.url.query:
            return RequestKind.COLLECTION_READ
        return RequestKind.OTHER

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        try:
            response = await self._inner.handle_async_request(request)
        except httpx.TransportError as exc:
            log.warning(
                "Network request failed, serving offline",
                extra={"method": request.method, "url": str(request.url), "error": repr(exc)},
            )
            return await self._handle_offline(request, exc)

        await response.aread()
        if request.method == "GET" and response.is_success:
            self._cache_in_background(request, response)
        log.debug(
            "Sending network response",
            extra={"method": request.method, "url": str(request.url), "status": response.status_code},
        )
        return response

    # ------------------------------------------------------------------
    # Offline branches

    async def _handle_offline(
        self, request: httpx.Request, exc: httpx.TransportError
    ) -> httpx.Response:
        kind = self.classify(request)
        if kind is RequestKind.RECORD_INSERT:
            record = self._parse_record(request)
            if record is not None:
                return await self._queue_insert(request, record)
        elif kind is RequestKind.COLLECTION_READ:
            return await self._merged_read(request, exc)
        return await self._cached_or_fail(request, exc)

    def _parse_record(self, request: httpx.Request) -> Optional[Record]:
        try:
            return Record.model_validate_json(request.content)
        except ValidationError:
            log.warning(
                "Offline insert body is not a record, falling back to cache",
                extra={"url": str(request.url)},
            )
            return None

    async def _queue_insert(self, request: httpx.Request, record: Record) -> httpx.Response:
        await self._store.put(record)
        log.info("Queued offline insert", extra={"record_id": record.id})
        return _json_response(httpx.codes.ACCEPTED, {}, request)

    async def _merged_read(
        self, request: httpx.Request, exc: httpx.TransportError
    ) -> httpx.Response:
        cached = await self._cache.match(cache_key(request))
        if cached is None:
            log.warning("No cached collection snapshot", extra={"url": str(request.url)})
            raise OfflineSyncError.not_available(exc)

        try:
            last_reply = cached.json()
        except ValueError:
            log.warning("Cached collection snapshot is unreadable", extra={"url": str(request.url)})
            raise OfflineSyncError.not_available(exc)
        if not isinstance(last_reply, dict):
            raise OfflineSyncError.not_available(exc)
        pending = [record.model_dump() for record in await self._store.list_all()]
        merged = {**last_reply, "items": [*last_reply.get("items", []), *pending]}
        log.info(
            "Serving merged offline collection",
            extra={"cached_items": len(last_reply.get("items", [])), "pending_items": len(pending)},
        )
        return _json_response(httpx.codes.OK, merged, request)

    async def _cached_or_fail(
        self, request: httpx.Request, exc: httpx.TransportError
    ) -> httpx.Response:
        cached = await self._cache.match(cache_key(request))
        if cached is not None:
            log.info("Found in cache", extra={"url": str(request.url)})
            return cached.to_response(request)
        log.warning(
            "Request not available offline",
            extra={"method": request.method, "url": str(request.url)},
        )
        raise OfflineSyncError.not_available(exc)

    # ------------------------------------------------------------------
    # Background cache population

    def _cache_in_background(self, request: httpx.Request, response: httpx.Response) -> None:
        key = cache_key(request)
        entry = CachedResponse.from_response(response)
        task = asyncio.get_running_loop().create_task(self._store_copy(key, entry))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _store_copy(self, key: str, entry: CachedResponse) -> None:
        try:
            await self._cache.put(key, entry)
        except Exception:
            log.exception("Background cache write failed", extra={"key": key})
            return
        log.debug("Cached new resource", extra={"key": key})

    @property
    def pending_cache_writes(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait for background cache writes started so far."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()


__all__ = ["RequestInterceptor", "RequestKind"]
