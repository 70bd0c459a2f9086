"""
HTTP client for the remote todo service.

Wraps the five operations of the service's fixed REST contract:

    find    GET    /todos        filter as query params -> {items, counts}
    insert  POST   /todos        Record                 -> inserted Record
    update  PATCH  /todos/{id}   partial fields         -> updated Record
    remove  DELETE /todos        filter as query params -> remaining items
    count   (counts block of find)

The client is agnostic to what sits underneath it: built over the engine's
intercepting transport it is the application-facing store, built over the raw
network transport it is what the sync coordinator replays with.
"""

from __future__ import annotations

from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import httpx

from offline_sync.domain.errors import OfflineSyncError
from offline_sync.domain.models import (
    FindResult,
    InsertResult,
    ItemCounts,
    ItemQuery,
    ItemUpdate,
    Record,
)


def response_date(response: httpx.Response) -> Optional[datetime]:
    """Parse the ``date`` header, if the response carries a usable one."""
    value = response.headers.get("date")
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


class RemoteStoreClient:
    """Async client for the remote todo collection."""

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
        collection_path: str = "/todos",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.collection_path = "/" + collection_path.strip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteStoreClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, params=params or None, json=json)
        except httpx.TransportError as exc:
            raise OfflineSyncError.unreachable(exc) from exc
        if not response.is_success:
            raise OfflineSyncError.rejected(response.status_code, response.reason_phrase)
        return response

    async def find(self, query: Optional[ItemQuery] = None) -> FindResult:
        """Find items with properties matching those on ``query``."""
        query = query or ItemQuery()
        response = await self._request("GET", self.collection_path, params=query.to_params())
        body = response.json()
        return FindResult(
            items=body.get("items", []),
            counts=body.get("counts"),
            date=response_date(response),
        )

    async def insert(self, item: Record) -> InsertResult:
        """
        Insert ``item``. A 202 means the engine accepted it offline and the
        returned result is unconfirmed.
        """
        response = await self._request("POST", self.collection_path, json=item.to_wire())
        date = response_date(response)
        if response.status_code == httpx.codes.ACCEPTED:
            return InsertResult(item=item, confirmed=False, date=date)
        body = response.json()
        confirmed = Record.model_validate({**item.to_wire(), **(body or {}), "synced": True})
        return InsertResult(item=confirmed, confirmed=True, date=date)

    async def update(self, update: ItemUpdate) -> Record:
        """Update an item with a record id and the properties to change."""
        response = await self._request(
            "PATCH", f"{self.collection_path}/{update.id}", json=update.to_wire()
        )
        return Record.model_validate(response.json())

    async def remove(self, query: ItemQuery) -> List[Record]:
        """Remove items matching ``query``; returns the remaining items."""
        response = await self._request("DELETE", self.collection_path, params=query.to_params())
        return [Record.model_validate(item) for item in response.json()]

    async def count(self) -> ItemCounts:
        """Count total, active, and completed items."""
        result = await self.find(ItemQuery())
        if result.counts is not None:
            return result.counts
        completed = sum(1 for item in result.items if item.completed)
        return ItemCounts(
            total=len(result.items),
            active=len(result.items) - completed,
            completed=completed,
        )


__all__ = ["RemoteStoreClient", "response_date"]
