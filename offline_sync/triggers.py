"""
Sync trigger sources.

Three sources start reconciliation: connectivity coming back, a periodic
policy, and an explicit manual "force sync". All of them funnel into
``SyncCoordinator.attempt_sync``; each submission returns a task the caller can
await to observe the outcome.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Optional, Set

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from offline_sync.coordinator import SyncCoordinator
from offline_sync.domain.errors import ErrorKind, OfflineSyncError
from offline_sync.domain.models import SyncReport, SyncStatus
from offline_sync.utils.logging import get_logger

log = get_logger(__name__)


class TriggerSource(str, enum.Enum):
    CONNECTIVITY = "connectivity"
    PERIODIC = "periodic"
    MANUAL = "manual"


def _is_incomplete_pass(exc: BaseException) -> bool:
    return isinstance(exc, OfflineSyncError) and exc.kind is ErrorKind.SYNC_PASS_INCOMPLETE


class SyncTriggers:
    """
    Submits reconciliation passes on behalf of the trigger sources.

    Parameters
    ----------
    coordinator : SyncCoordinator
        The coordinator every source funnels into.
    retry_attempts : int
        How many passes a connectivity trigger makes before giving up.
    retry_wait : tenacity wait strategy, optional
        Backoff between those passes (exponential by default).
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        retry_attempts: int = 5,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        self._coordinator = coordinator
        self._retry_attempts = retry_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=60)
        self._tasks: Set["asyncio.Task[SyncReport]"] = set()

    def submit(self, source: TriggerSource) -> "asyncio.Task[SyncReport]":
        """Start one pass for ``source`` and return its completion handle."""
        log.debug("Sync triggered", extra={"source": source.value})
        if source is TriggerSource.CONNECTIVITY:
            coro = self._sync_until_complete()
        else:
            coro = self._coordinator.attempt_sync()
        task = asyncio.get_running_loop().create_task(coro, name=f"sync-{source.value}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def force_sync(self) -> "asyncio.Task[SyncReport]":
        return self.submit(TriggerSource.MANUAL)

    def connectivity_restored(self) -> "asyncio.Task[SyncReport]":
        return self.submit(TriggerSource.CONNECTIVITY)

    async def _sync_until_complete(self) -> SyncReport:
        """Re-run incomplete passes with backoff, like a platform re-firing a failed sync."""
        report = SyncReport(status=SyncStatus.SKIPPED)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=self._retry_wait,
                retry=retry_if_exception(_is_incomplete_pass),
            ):
                with attempt:
                    report = await self._coordinator.attempt_sync()
                    report.raise_for_status()
        except RetryError:
            log.warning(
                "Giving up on connectivity sync until the next trigger",
                extra={"attempts": self._retry_attempts, "failed_ids": list(report.failed_ids)},
            )
        return report

    def _on_done(self, task: "asyncio.Task[SyncReport]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Sync task failed", exc_info=exc, extra={"task": task.get_name()})

    async def run_periodic(self, interval: float) -> None:
        """Submit a periodic pass every ``interval`` seconds, forever."""
        while True:
            await asyncio.sleep(interval)
            try:
                report = await self.submit(TriggerSource.PERIODIC)
            except Exception:
                continue  # logged in _on_done
            log.debug("Periodic sync finished", extra={"status": report.status.value})

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def aclose(self) -> None:
        """Cancel outstanding submissions and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class ConnectivityMonitor:
    """
    Polls the remote service and reports offline -> online transitions.

    ``client`` must reach the network directly (not through the interceptor).
    Any response, even an error status, counts as online; only transport
    failures count as offline.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        triggers: SyncTriggers,
        probe_url: str = "/",
        interval: float = 5.0,
    ) -> None:
        self._client = client
        self._triggers = triggers
        self._probe_url = probe_url
        self._interval = interval
        self.online: Optional[bool] = None

    async def probe(self) -> bool:
        try:
            await self._client.head(self._probe_url)
        except httpx.TransportError:
            return False
        return True

    async def check(self) -> Optional["asyncio.Task[SyncReport]"]:
        """Probe once; trigger a sync if connectivity just came back."""
        was_online = self.online
        self.online = await self.probe()
        if self.online and was_online is False:
            log.info("Connectivity restored")
            return self._triggers.connectivity_restored()
        if not self.online and was_online is not False:
            log.warning("Remote service unreachable")
        return None

    async def run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self._interval)


__all__ = ["ConnectivityMonitor", "SyncTriggers", "TriggerSource"]
