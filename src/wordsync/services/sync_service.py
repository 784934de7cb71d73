"""Synchronizer: replays the offline queue against the remote store."""
import asyncio
import dataclasses
import logging
import time
from typing import Optional

from wordsync import monitoring
from wordsync.config import SyncSettings, settings
from wordsync.errors import InvariantViolation, OfflineError, SyncInProgressError
from wordsync.models.progress import ProgressRecord, SyncState, deserialize_record, serialize_record
from wordsync.models.sync_models import (
    MutationType,
    QueuedMutation,
    StoreResponse,
    StoreStatus,
    SyncReport,
)
from wordsync.services.connectivity import ConnectivityProbe
from wordsync.services.progress_service import ProgressService
from wordsync.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)


def resolve_conflict(local: ProgressRecord, server: ProgressRecord) -> ProgressRecord:
    """Merge a rejected local record with the server's copy.

    Progress facts come from the server, which may have computed them from
    another device. The learner's own edits (notes, favorite) come from the
    local record.
    """
    return dataclasses.replace(
        server,
        user_id=local.user_id,
        item_id=local.item_id,
        notes=local.notes,
        is_favorite=local.is_favorite,
        sync_state=SyncState.PENDING_UPDATE,
    )


class Synchronizer:
    """Drains one learner's offline queue when connectivity allows."""

    def __init__(
        self,
        progress_service: ProgressService,
        store: RemoteStore,
        probe: ConnectivityProbe,
        timeout: Optional[float] = None,
        config: Optional[SyncSettings] = None,
    ):
        self.progress = progress_service
        self.queue = progress_service.queue
        self.store = store
        self.probe = probe
        self.config = config or settings.sync
        self.timeout = self.config.timeout_seconds if timeout is None else timeout
        self._lock = asyncio.Lock()
        self._cancel_requested = False

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def cancel(self) -> None:
        """Stop the running sync before its next mutation."""
        if self.is_syncing:
            logger.info("Sync cancellation requested")
            self._cancel_requested = True

    async def _call_store(self, mutation: QueuedMutation, record: Optional[ProgressRecord]) -> StoreResponse:
        if mutation.mutation_type is MutationType.UNSAVE:
            call = self.store.delete_progress(mutation.user_id, mutation.item_id)
        else:
            call = self.store.upsert_progress(record)
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            return StoreResponse.transient(f"timed out after {self.timeout:.1f}s")
        except Exception as e:
            logger.exception("Store call for mutation %s raised", mutation.id)
            return StoreResponse.transient(str(e) or type(e).__name__)

    def _fail(self, mutation: QueuedMutation, reason: str, report: SyncReport) -> None:
        if self.queue.get(mutation.id) is None:
            # Coalesced away while the store call was in flight
            report.skipped += 1
            return
        report.failed += 1
        monitoring.sync_mutations.labels(status="failed").inc()
        dead = self.queue.mark_failed(mutation.id, reason)
        if dead is not None:
            report.dead_letters.append(dead)

    def _confirm(self, mutation: QueuedMutation, report: SyncReport) -> None:
        # An enqueue may have replaced the entry while the store call was in flight
        if self.queue.dequeue_confirmed(mutation.id):
            report.synced += 1
            monitoring.sync_mutations.labels(status="synced").inc()
        else:
            report.skipped += 1
        self.progress.settle(mutation.item_id)

    async def _resolve(
        self,
        mutation: QueuedMutation,
        local: Optional[ProgressRecord],
        response: StoreResponse,
        report: SyncReport,
    ) -> None:
        server = response.record
        if mutation.mutation_type is MutationType.UNSAVE:
            # Another device saved the item again; keep the server copy
            logger.info("Unsave of item %s conflicted, restoring server copy", mutation.item_id)
            if self.queue.dequeue_confirmed(mutation.id):
                self.progress.apply_remote(server)
                report.conflicts_resolved += 1
                monitoring.sync_mutations.labels(status="conflict_resolved").inc()
            else:
                report.skipped += 1
            return

        merged = resolve_conflict(local, server)
        retry = await self._call_store(mutation, merged)
        if retry.status is not StoreStatus.OK:
            self._fail(mutation, f"conflict not resolved: {retry.detail or retry.status.value}", report)
            return

        logger.info(
            "Resolved conflict for item %s: server progress %s (%d/%d), local notes and favorite",
            mutation.item_id,
            merged.strength.value,
            merged.correct_count,
            merged.practice_count,
        )
        if self.queue.dequeue_confirmed(mutation.id):
            stored = self.progress.apply_remote(merged)
            # Later entries of the item still carry the pre-merge progress
            self.queue.refresh_payloads(mutation.user_id, mutation.item_id, serialize_record(stored))
            self.progress.settle(mutation.item_id)
            report.conflicts_resolved += 1
            monitoring.sync_mutations.labels(status="conflict_resolved").inc()
        else:
            report.skipped += 1

    async def _replay(self, mutation: QueuedMutation, report: SyncReport) -> None:
        record = None
        if mutation.mutation_type is not MutationType.UNSAVE:
            try:
                record = deserialize_record(mutation.payload)
            except InvariantViolation as e:
                self._fail(mutation, f"invalid payload: {e}", report)
                return

        report.attempted += 1
        response = await self._call_store(mutation, record)

        if response.status is StoreStatus.OK:
            self._confirm(mutation, report)
        elif response.status is StoreStatus.CONFLICT and response.record is not None:
            await self._resolve(mutation, record, response, report)
        else:
            self._fail(mutation, response.detail or response.status.value, report)

    async def sync(self) -> SyncReport:
        """Replay pending mutations oldest first.

        Raises:
            OfflineError: the connectivity probe reports offline.
            SyncInProgressError: another sync is running.
        """
        if not self.probe.is_online():
            raise OfflineError("Cannot sync while offline")
        if self._lock.locked():
            raise SyncInProgressError("A sync is already running")

        async with self._lock:
            self._cancel_requested = False
            report = SyncReport(started_at=self.progress.clock.now())
            started = time.monotonic()
            pending = self.queue.list_pending(self.progress.user_id)
            logger.info("Sync started with %d pending mutation(s)", len(pending))

            try:
                for mutation in pending:
                    if self._cancel_requested:
                        report.cancelled = True
                        logger.info("Sync cancelled, %d mutation(s) left queued", self.queue.size(self.progress.user_id))
                        break
                    # Entries replaced or removed since the snapshot are picked up next time
                    current = self.queue.get(mutation.id)
                    if current is None:
                        report.skipped += 1
                        continue
                    await self._replay(current, report)
            except asyncio.CancelledError:
                report.cancelled = True
                logger.info("Sync task cancelled, unprocessed mutations stay queued")
                raise
            finally:
                self._cancel_requested = False
                report.finished_at = self.progress.clock.now()
                monitoring.sync_duration.observe(time.monotonic() - started)

            logger.info(
                "Sync finished: %d synced, %d conflicts resolved, %d failed, %d dead-lettered",
                report.synced,
                report.conflicts_resolved,
                report.failed,
                len(report.dead_letters),
            )
            return report
