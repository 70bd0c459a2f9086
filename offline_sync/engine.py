"""
Engine context: wires the stores, interceptor, coordinator, and triggers.

One ``OfflineEngine`` owns one instance of everything (no module-level
singletons), so tests can build isolated engines side by side.

Usage:
    async with OfflineEngine.from_settings() as engine:
        todos = engine.client()
        await todos.insert(Record(id=1700000000000, title="Buy milk"))
        report = await engine.force_sync()
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
from tenacity.wait import wait_base

from offline_sync.config import Settings, get_settings
from offline_sync.coordinator import SyncCoordinator
from offline_sync.domain.models import SyncReport
from offline_sync.infrastructure.mutation_store import MutationStore
from offline_sync.infrastructure.remote_client import RemoteStoreClient
from offline_sync.infrastructure.resource_cache import ResourceCache, seed_shell
from offline_sync.interceptor import RequestInterceptor
from offline_sync.triggers import ConnectivityMonitor, SyncTriggers
from offline_sync.utils.logging import get_logger

log = get_logger(__name__)


class _BorrowedTransport(httpx.AsyncBaseTransport):
    """Shares the engine's network transport without letting a client close it."""

    def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
        self._inner = inner

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        return None


class OfflineEngine:
    """
    Offline-first interception and synchronization engine.

    Parameters
    ----------
    settings : Settings
        Effective configuration.
    transport : httpx.AsyncBaseTransport, optional
        Network transport to the remote service. Defaults to a plain
        ``httpx.AsyncHTTPTransport``; tests inject ``httpx.MockTransport``.
    retry_wait : tenacity wait strategy, optional
        Backoff used between bootstrap and connectivity-sync retries.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        self.settings = settings
        self._network = transport or httpx.AsyncHTTPTransport()
        self._retry_wait = retry_wait

        self.store = MutationStore(settings.state_path(settings.mutation_db))
        self.cache = ResourceCache(settings.state_path(settings.cache_db))
        self.namespace = self.cache.open(settings.cache_namespace)
        self.interceptor = RequestInterceptor(
            self._network, self.store, self.namespace, settings.collection_path
        )
        self._sync_client = RemoteStoreClient(
            settings.remote_base_url,
            transport=_BorrowedTransport(self._network),
            timeout=settings.remote_timeout_seconds,
            collection_path=settings.collection_path,
        )
        self.coordinator = SyncCoordinator(self.store, self._sync_client)
        self.triggers = SyncTriggers(
            self.coordinator,
            retry_attempts=settings.sync_retry_attempts,
            retry_wait=retry_wait,
        )
        self._client: Optional[RemoteStoreClient] = None
        self._raw_http: Optional[httpx.AsyncClient] = None
        self._daemons: List["asyncio.Task[None]"] = []
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "OfflineEngine":
        return cls(settings or get_settings(), transport=transport)

    def _raw_client(self) -> httpx.AsyncClient:
        """Plain HTTP client over the network transport (bypasses the interceptor)."""
        if self._raw_http is None:
            self._raw_http = httpx.AsyncClient(
                base_url=self.settings.shell_base_url or self.settings.remote_base_url,
                transport=_BorrowedTransport(self._network),
                timeout=self.settings.remote_timeout_seconds,
            )
        return self._raw_http

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> "OfflineEngine":
        """Seed the application-shell cache namespace if this version lacks one."""
        await seed_shell(
            self.namespace,
            self._raw_client(),
            self.settings.shell_manifest,
            attempts=self.settings.bootstrap_attempts,
            wait=self._retry_wait,
        )
        log.info(
            "Offline engine started",
            extra={"namespace": self.namespace.name, "remote": self.settings.remote_base_url},
        )
        return self

    def start_background(self) -> None:
        """Run the periodic sync policy and the connectivity monitor."""
        loop = asyncio.get_running_loop()
        monitor = ConnectivityMonitor(
            self._raw_client(),
            self.triggers,
            probe_url=self.settings.remote_base_url,
            interval=self.settings.connectivity_probe_seconds,
        )
        self._daemons.append(
            loop.create_task(
                self.triggers.run_periodic(self.settings.sync_interval_seconds),
                name="sync-periodic",
            )
        )
        self._daemons.append(loop.create_task(monitor.run(), name="connectivity-monitor"))

    async def wait_background(self) -> None:
        """Block until the background daemons stop (normally only on cancellation)."""
        await asyncio.gather(*self._daemons)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        for task in self._daemons:
            task.cancel()
        await asyncio.gather(*self._daemons, return_exceptions=True)
        await self.triggers.aclose()
        if self._client is not None:
            await self._client.aclose()
        await self.interceptor.drain()
        await self._sync_client.aclose()
        if self._raw_http is not None:
            await self._raw_http.aclose()
        await self._network.aclose()
        self.store.close()
        self.cache.close()
        log.debug("Offline engine closed")

    async def __aenter__(self) -> "OfflineEngine":
        try:
            return await self.start()
        except BaseException:
            await self.aclose()
            raise

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Operations

    def client(self) -> RemoteStoreClient:
        """Application-facing store client; every request goes through the interceptor."""
        if self._client is None:
            self._client = RemoteStoreClient(
                self.settings.remote_base_url,
                transport=self.interceptor,
                timeout=self.settings.remote_timeout_seconds,
                collection_path=self.settings.collection_path,
            )
        return self._client

    async def attempt_sync(self) -> SyncReport:
        return await self.coordinator.attempt_sync()

    def force_sync(self) -> "asyncio.Task[SyncReport]":
        """Out-of-band manual trigger; await the returned task for the outcome."""
        return self.triggers.force_sync()

    async def prune_cache(self) -> List[str]:
        """Evict cache namespaces left over from previous versions."""
        return await self.cache.prune(keep=self.namespace.name)

    async def status(self) -> Dict[str, Any]:
        state = self.coordinator.state
        return {
            "remote": self.settings.remote_base_url,
            "pending": await self.store.count(),
            "pending_items": [r.model_dump() for r in await self.store.list_all()],
            "namespace": self.namespace.name,
            "namespaces": await self.cache.namespaces(),
            "cached_keys": len(await self.namespace.keys()),
            "sync_in_flight": state.in_flight,
            "last_attempted_at": state.last_attempted_at,
            "last_succeeded_at": state.last_succeeded_at,
            "last_error": state.last_error,
        }


__all__ = ["OfflineEngine"]
