from __future__ import annotations

from email.utils import parsedate_to_datetime
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from offline_sync.domain.errors import ErrorKind, OfflineSyncError
from offline_sync.domain.models import Record
from offline_sync.infrastructure.mutation_store import MutationStore
from offline_sync.infrastructure.resource_cache import CacheNamespace, CachedResponse, ResourceCache
from offline_sync.interceptor import RequestInterceptor, RequestKind

BASE_URL = "http://todo.test"
COLLECTION_KEY = f"GET {BASE_URL}/todos"


@pytest.fixture
def namespace(cache: ResourceCache) -> CacheNamespace:
    return cache.open("todo-v3")


@pytest.fixture
def interceptor(server, store: MutationStore, namespace: CacheNamespace) -> RequestInterceptor:
    return RequestInterceptor(server.transport(), store, namespace, "/todos")


@pytest_asyncio.fixture
async def client(interceptor: RequestInterceptor) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(base_url=BASE_URL, transport=interceptor) as client:
        yield client


@pytest.mark.parametrize(
    ("method", "url", "kind"),
    [
        ("GET", "/todos", RequestKind.COLLECTION_READ),
        ("GET", "/todos/", RequestKind.COLLECTION_READ),
        ("GET", "/todos?completed=true", RequestKind.OTHER),
        ("POST", "/todos", RequestKind.RECORD_INSERT),
        ("PATCH", "/todos/5", RequestKind.OTHER),
        ("DELETE", "/todos?id=5", RequestKind.OTHER),
        ("GET", "/assets/index.css", RequestKind.OTHER),
    ],
)
def test_classify(interceptor: RequestInterceptor, method: str, url: str, kind: RequestKind) -> None:
    assert interceptor.classify(httpx.Request(method, BASE_URL + url)) is kind


@pytest.mark.asyncio
async def test_online_read_is_returned_live_and_cached(
    client: httpx.AsyncClient, interceptor: RequestInterceptor, namespace: CacheNamespace
) -> None:
    response = await client.get("/todos")
    await interceptor.drain()

    assert response.status_code == 200
    assert response.json()["items"] == [
        {"id": 1, "title": "Hello world!", "completed": True, "synced": True}
    ]
    cached = await namespace.match(COLLECTION_KEY)
    assert cached is not None
    assert cached.json() == response.json()


@pytest.mark.asyncio
async def test_online_writes_are_not_cached(
    client: httpx.AsyncClient, interceptor: RequestInterceptor, namespace: CacheNamespace
) -> None:
    await client.post("/todos", json={"id": 2, "title": "two", "completed": False})
    await interceptor.drain()

    assert await namespace.keys() == []


@pytest.mark.asyncio
async def test_remote_error_status_is_not_treated_as_offline(
    server, client: httpx.AsyncClient, interceptor: RequestInterceptor, store: MutationStore,
    namespace: CacheNamespace,
) -> None:
    server.reject_ids.add(2)

    response = await client.post("/todos", json={"id": 2, "title": "two", "completed": False})
    await interceptor.drain()

    assert response.status_code == 500
    assert await store.list_all() == []
    assert await namespace.keys() == []


@pytest.mark.asyncio
async def test_offline_insert_is_queued_and_accepted(
    server, client: httpx.AsyncClient, store: MutationStore
) -> None:
    server.online = False

    response = await client.post("/todos", json={"id": 2, "title": "two", "completed": False})

    assert response.status_code == 202
    assert response.json() == {}
    assert response.headers["content-type"] == "application/json"
    assert parsedate_to_datetime(response.headers["date"]) is not None
    assert await store.list_all() == [Record(id=2, title="two")]


@pytest.mark.asyncio
async def test_offline_insert_with_colliding_id_overwrites(
    server, client: httpx.AsyncClient, store: MutationStore
) -> None:
    server.online = False

    await client.post("/todos", json={"id": 2, "title": "first", "completed": False})
    await client.post("/todos", json={"id": 2, "title": "second", "completed": False})

    assert [r.title for r in await store.list_all()] == ["second"]


@pytest.mark.asyncio
async def test_offline_collection_read_appends_pending_without_dedup(
    server, client: httpx.AsyncClient, interceptor: RequestInterceptor, store: MutationStore
) -> None:
    await client.get("/todos")
    await interceptor.drain()
    server.online = False
    await store.put(Record(id=2, title="queued"))
    await store.put(Record(id=1, title="same id as a cached item"))

    response = await client.get("/todos")

    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["items"]] == [1, 1, 2]
    assert body["items"][-1] == {"id": 2, "title": "queued", "completed": False, "synced": False}
    assert body["counts"] == {"total": 1, "active": 0, "completed": 1}


@pytest.mark.asyncio
async def test_offline_collection_read_without_snapshot_is_not_available(
    server, client: httpx.AsyncClient, store: MutationStore
) -> None:
    server.online = False
    await store.put(Record(id=2, title="queued"))

    with pytest.raises(OfflineSyncError) as excinfo:
        await client.get("/todos")

    assert excinfo.value.kind is ErrorKind.CACHE_MISS
    assert str(excinfo.value) == "Not available"
    assert isinstance(excinfo.value.cause, httpx.ConnectError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("method", "url", "body"),
    [
        ("PATCH", "/todos/1", {"id": 1, "completed": False}),
        ("DELETE", "/todos?id=1", None),
    ],
)
async def test_offline_update_and_delete_fail_loudly(
    server, client: httpx.AsyncClient, store: MutationStore, method: str, url: str, body
) -> None:
    server.online = False

    with pytest.raises(OfflineSyncError) as excinfo:
        await client.request(method, url, json=body)

    assert excinfo.value.is_offline
    assert await store.list_all() == []


@pytest.mark.asyncio
async def test_offline_filtered_read_uses_exact_cache_match(
    server, client: httpx.AsyncClient, interceptor: RequestInterceptor, store: MutationStore
) -> None:
    online = await client.get("/todos", params={"completed": "true"})
    await interceptor.drain()
    server.online = False
    await store.put(Record(id=2, title="queued", completed=True))

    offline = await client.get("/todos", params={"completed": "true"})

    # Filtered reads are served verbatim: no pending items merged in.
    assert offline.json() == online.json()
    with pytest.raises(OfflineSyncError):
        await client.get("/todos", params={"completed": "false"})


@pytest.mark.asyncio
async def test_offline_invalid_insert_body_falls_through_to_cache(
    server, client: httpx.AsyncClient, store: MutationStore
) -> None:
    server.online = False

    with pytest.raises(OfflineSyncError) as excinfo:
        await client.post("/todos", json={"title": "no id"})

    assert excinfo.value.kind is ErrorKind.CACHE_MISS
    assert await store.list_all() == []


@pytest.mark.asyncio
async def test_cache_write_failure_never_fails_the_request(
    client: httpx.AsyncClient,
    interceptor: RequestInterceptor,
    namespace: CacheNamespace,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def broken_put(key, entry) -> None:
        raise RuntimeError("disk full")

    monkeypatch.setattr(namespace, "put", broken_put)

    response = await client.get("/todos")
    await interceptor.drain()

    assert response.status_code == 200
    assert interceptor.pending_cache_writes == 0


@pytest.mark.asyncio
async def test_offline_static_asset_served_from_cache(
    server, client: httpx.AsyncClient, interceptor: RequestInterceptor
) -> None:
    await client.get("/assets/index.css")
    await interceptor.drain()
    server.online = False

    response = await client.get("/assets/index.css")

    assert response.status_code == 200
    assert response.text == "body {}"


@pytest.mark.asyncio
async def test_offline_read_with_corrupt_snapshot_is_not_available(
    server, client: httpx.AsyncClient, namespace: CacheNamespace
) -> None:
    corrupt = CachedResponse.from_response(
        httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"})
    )
    await namespace.put(COLLECTION_KEY, corrupt)
    server.online = False

    with pytest.raises(OfflineSyncError) as excinfo:
        await client.get("/todos")

    assert excinfo.value.kind is ErrorKind.CACHE_MISS
    assert isinstance(excinfo.value.cause, httpx.ConnectError)
