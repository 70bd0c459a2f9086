"""
Pytest configuration for the offline sync engine.

Provides fixtures for:
- An in-memory todo server behind httpx.MockTransport that can go offline
- Settings pointed at a per-test state directory
- Stores, clients, and a started engine wired to the fake server
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Iterator, List, Optional, Set

import httpx
import pytest
import pytest_asyncio
from tenacity import wait_none

from offline_sync.config import Settings
from offline_sync.engine import OfflineEngine
from offline_sync.infrastructure.mutation_store import MutationStore
from offline_sync.infrastructure.remote_client import RemoteStoreClient
from offline_sync.infrastructure.resource_cache import ResourceCache

BASE_URL = "http://todo.test"
SHELL_MANIFEST = ["/", "/assets/index.css", "/src/app.js"]


class FakeTodoServer:
    """
    In-memory stand-in for the remote todo service.

    Mirrors the reference server: GET/DELETE filter on ``id``/``completed``
    query params, GET stamps items with ``synced: true`` and returns counts,
    POST appends the body as-is (duplicates included), PATCH merges fields.
    """

    def __init__(self, todos: Optional[List[Dict[str, Any]]] = None) -> None:
        self.todos: List[Dict[str, Any]] = (
            todos if todos is not None else [{"id": 1, "title": "Hello world!", "completed": True}]
        )
        self.assets: Dict[str, str] = {
            "/": "<html>todos</html>",
            "/assets/index.css": "body {}",
            "/src/app.js": "import './controller.js';",
        }
        self.online = True
        self.reject_ids: Set[int] = set()
        self.broken_assets: Set[str] = set()
        self.requests: List[httpx.Request] = []
        self.gate: Optional[asyncio.Event] = None

    # -- helpers -------------------------------------------------------
    @staticmethod
    def _matches(params: httpx.QueryParams, todo: Dict[str, Any]) -> bool:
        if "id" in params and todo["id"] != int(params["id"]):
            return False
        if "completed" in params and todo["completed"] != (params["completed"] == "true"):
            return False
        return True

    @staticmethod
    def _json(status: int, payload: Any) -> httpx.Response:
        return httpx.Response(
            status,
            headers={"date": format_datetime(datetime.now(timezone.utc), usegmt=True)},
            json=payload,
        )

    def calls(self, method: str, path: str = "/todos") -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    # -- routing -------------------------------------------------------
    async def handler(self, request: httpx.Request) -> httpx.Response:
        if not self.online:
            raise httpx.ConnectError("connection refused", request=request)
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()

        path = request.url.path
        if path == "/todos":
            return self._collection(request)
        if path.startswith("/todos/") and request.method == "PATCH":
            return self._patch(request, int(path.rsplit("/", 1)[1]))
        if request.method in ("GET", "HEAD") and path in self.assets:
            if path in self.broken_assets:
                return httpx.Response(500, text="boom")
            return httpx.Response(200, text=self.assets[path])
        return httpx.Response(404, text="not found")

    def _collection(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if request.method == "GET":
            items = [{**t, "synced": True} for t in self.todos if self._matches(params, t)]
            completed = sum(1 for t in self.todos if t["completed"])
            counts = {
                "total": len(self.todos),
                "active": len(self.todos) - completed,
                "completed": completed,
            }
            return self._json(200, {"items": items, "counts": counts})
        if request.method == "POST":
            todo = json.loads(request.content)
            if todo.get("id") in self.reject_ids:
                return httpx.Response(500, text="insert rejected")
            self.todos.append(dict(todo))
            return self._json(200, todo)
        if request.method == "DELETE":
            self.todos = [t for t in self.todos if not self._matches(params, t)]
            return self._json(200, self.todos)
        return httpx.Response(405)

    def _patch(self, request: httpx.Request, todo_id: int) -> httpx.Response:
        for todo in self.todos:
            if todo["id"] == todo_id:
                todo.update(json.loads(request.content))
                return self._json(200, todo)
        return httpx.Response(404, text="no such todo")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def server() -> FakeTodoServer:
    return FakeTodoServer()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """
    Settings fixture with an isolated state directory and a short shell manifest.
    """
    return Settings(
        remote_base_url=BASE_URL,
        state_dir=tmp_path / "state",
        shell_manifest=list(SHELL_MANIFEST),
        bootstrap_attempts=2,
        sync_retry_attempts=3,
        log_level="DEBUG",
    )


@pytest.fixture
def store(tmp_path: Path) -> Iterator[MutationStore]:
    store = MutationStore(tmp_path / "pending.db")
    yield store
    store.close()


@pytest.fixture
def cache(tmp_path: Path) -> Iterator[ResourceCache]:
    cache = ResourceCache(tmp_path / "cache.db")
    yield cache
    cache.close()


@pytest_asyncio.fixture
async def remote(server: FakeTodoServer) -> AsyncGenerator[RemoteStoreClient, None]:
    """Client talking straight to the fake server (no interception)."""
    client = RemoteStoreClient(BASE_URL, transport=server.transport())
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def engine(
    test_settings: Settings, server: FakeTodoServer
) -> AsyncGenerator[OfflineEngine, None]:
    """A started engine whose network is the fake server."""
    engine = OfflineEngine(test_settings, transport=server.transport(), retry_wait=wait_none())
    await engine.start()
    yield engine
    await engine.aclose()
