"""
Sync coordinator: replays queued offline inserts against the remote service.

One reconciliation pass:
1. snapshot the pending queue,
2. insert every entry concurrently (one attempt each, no ordering),
3. clear the queue once, and only if every insert succeeded.

A failed pass leaves the queue exactly as it was; records that did go through
are sent again next time, so the remote insert has to tolerate duplicates.

Usage:
    coordinator = SyncCoordinator(store, raw_client)
    report = await coordinator.attempt_sync()
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List

from offline_sync.domain.errors import OfflineSyncError
from offline_sync.domain.models import Record, SyncReport, SyncState, SyncStatus
from offline_sync.infrastructure.mutation_store import MutationStore
from offline_sync.infrastructure.remote_client import RemoteStoreClient
from offline_sync.utils.logging import get_logger

log = get_logger(__name__)


class SyncCoordinator:
    """
    Drains the mutation store against the remote service.

    ``client`` must talk to the network directly, not through the request
    interceptor, otherwise a replay attempted while offline would be queued
    again instead of failing.
    """

    def __init__(self, store: MutationStore, client: RemoteStoreClient) -> None:
        self._store = store
        self._client = client
        self.state = SyncState()

    @property
    def in_flight(self) -> bool:
        return self.state.in_flight

    async def attempt_sync(self) -> SyncReport:
        """
        Run one reconciliation pass.

        Returns a ``SKIPPED`` report without touching anything if a pass is
        already running.
        """
        # No await between the check and the set: a single event loop cannot
        # interleave another pass here.
        if self.state.in_flight:
            log.info("Sync already in flight, skipping")
            return SyncReport(status=SyncStatus.SKIPPED)

        started_at = self.state.mark_started()
        try:
            report = await self._run_pass(started_at)
        except Exception as exc:
            self.state.last_error = str(exc)
            log.exception("Sync pass aborted")
            raise
        finally:
            self.state.in_flight = False

        if report.status is SyncStatus.INCOMPLETE:
            self.state.last_error = f"{len(report.failed_ids)} of {report.attempted} inserts failed"
        elif report.status is SyncStatus.SUCCEEDED:
            self.state.last_succeeded_at = report.finished_at
            self.state.last_error = None
        return report

    async def _run_pass(self, started_at: datetime) -> SyncReport:
        log.info("Attempting sync...")
        snapshot = await self._store.list_all()
        if not snapshot:
            log.info("Nothing to sync")
            return SyncReport(
                status=SyncStatus.EMPTY,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )

        results = await asyncio.gather(
            *(self._replay(record) for record in snapshot), return_exceptions=True
        )
        failed: List[int] = []
        for record, result in zip(snapshot, results):
            if isinstance(result, BaseException):
                failed.append(record.id)
                log.warning(
                    "Pending insert failed to replay",
                    extra={"record_id": record.id, "error": str(result)},
                )

        if failed:
            log.warning(
                "Sync pass incomplete, queue kept for a later pass",
                extra={"attempted": len(snapshot), "failed": len(failed)},
            )
            return SyncReport(
                status=SyncStatus.INCOMPLETE,
                attempted=len(snapshot),
                failed_ids=tuple(failed),
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )

        await self._store.clear()
        log.info("Sync success", extra={"synced": len(snapshot)})
        return SyncReport(
            status=SyncStatus.SUCCEEDED,
            attempted=len(snapshot),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    async def _replay(self, record: Record) -> None:
        result = await self._client.insert(record)
        if not result.confirmed:
            # Only reachable if the client was wired through the interceptor.
            raise OfflineSyncError.not_available()


__all__ = ["SyncCoordinator"]
