"""
Sync Service

Submits order batches to the remote store and keeps failed batches in the
offline queue until they can be replayed.

Submission lifecycle::

    parsed --submit ok--> confirmed
    parsed --submit fails--> queued --replay ok--> confirmed (item removed)
                                    --replay fails--> queued (item kept)

A queued item is removed only after its own upload succeeds, so a crash
between upload and removal can replay a batch but never lose one. Sweeps
do not overlap: a sweep requested while another runs is skipped.
"""
import asyncio
from typing import List, Optional, Sequence, Tuple

from .errors import SubmissionError
from .flow_logger import get_logger
from .models import (
    MasterDesignPair,
    Order,
    SubmissionOutcome,
    SubmissionStatus,
    SyncReport,
    SyncState,
)
from .offline_store import IngestionQueue, SnapshotCache
from .remote_store import RemoteOrderStore


class SyncService:
    """Remote submission with offline queueing and replay."""

    def __init__(self, remote: RemoteOrderStore, queue: IngestionQueue,
                 cache: Optional[SnapshotCache] = None, logger=None):
        self.remote = remote
        self.queue = queue
        self.cache = cache
        self.logger = logger or get_logger()

        self._is_syncing = False
        # None until the environment first reports connectivity
        self._online: Optional[bool] = None
        self._queue_count = 0
        self._last_sync_time = None
        self._error: Optional[str] = None

    @property
    def state(self) -> SyncState:
        return SyncState(
            is_syncing=self._is_syncing,
            queue_count=self._queue_count,
            last_sync_time=self._last_sync_time,
            error=self._error,
        )

    async def load_state(self) -> SyncState:
        """Read queue size and last sync time from the offline store."""
        self._queue_count = await asyncio.to_thread(self.queue.count)
        if self.cache is not None:
            self._last_sync_time = await asyncio.to_thread(self.cache.get_last_sync_time)
        return self.state

    async def _upload(self, orders: Sequence[Order]) -> None:
        try:
            await asyncio.to_thread(self.remote.upload_parsed_orders, list(orders))
        except SubmissionError:
            raise
        except Exception as exc:
            raise SubmissionError(str(exc) or exc.__class__.__name__, len(orders)) from exc

    async def submit_batch(self, orders: Sequence[Order]) -> SubmissionOutcome:
        """
        Submit one batch.

        A failed submission is queued and reported as QUEUED rather than
        raised. Failures of the queue itself (LocalStoreError) propagate.
        """
        orders = list(orders)
        try:
            await self._upload(orders)
        except SubmissionError as exc:
            self.logger.error(
                f"Submission of {len(orders)} order(s) failed: {exc}",
                component="Sync",
                exc_info=True,
            )
            item = await asyncio.to_thread(self.queue.push, orders)
            self._queue_count = await asyncio.to_thread(self.queue.count)
            self._error = str(exc)
            self.logger.log_batch_queued(item.id, len(orders), str(exc))
            return SubmissionOutcome(
                status=SubmissionStatus.QUEUED,
                order_count=len(orders),
                queue_item_id=item.id,
                error=str(exc),
            )

        self._error = None
        self.logger.info(f"Submitted {len(orders)} order(s)", component="Sync")
        return SubmissionOutcome(status=SubmissionStatus.CONFIRMED, order_count=len(orders))

    async def process_queue(self) -> SyncReport:
        """Replay queued batches oldest first."""
        if self._is_syncing:
            self.logger.debug("Sync already running, sweep skipped", component="Sync")
            return SyncReport(remaining=self._queue_count, skipped=True)

        self._is_syncing = True
        report = SyncReport()
        try:
            items = await asyncio.to_thread(self.queue.items)
            for item in items:
                try:
                    await self._upload(item.orders)
                except SubmissionError as exc:
                    report.failed_batches += 1
                    report.failed_orders += len(item.orders)
                    report.errors.append(f"Batch #{item.id}: {exc}")
                    continue
                await asyncio.to_thread(self.queue.remove, item.id)
                report.uploaded_batches += 1
                report.uploaded_orders += len(item.orders)

            report.remaining = await asyncio.to_thread(self.queue.count)
            if report.remaining:
                report.undecodable_ids = await asyncio.to_thread(self.queue.undecodable_ids)
            self._queue_count = report.remaining
            self._error = report.errors[-1] if report.errors else None
            if self.cache is not None:
                self._last_sync_time = await asyncio.to_thread(self.cache.set_last_sync_time)
        finally:
            self._is_syncing = False

        self.logger.log_sync_summary(report)
        return report

    async def on_connectivity_change(self, online: bool) -> Optional[SyncReport]:
        """Sweep the queue whenever connectivity is reported after being off or unknown."""
        was_online = self._online
        self._online = online
        if online and was_online is not True:
            self.logger.info("Back online, replaying queued batches", component="Sync")
            return await self.process_queue()
        return None

    async def refresh_snapshots(self) -> Tuple[List[Order], List[MasterDesignPair]]:
        """Fetch orders and master designs from the remote store and replace the cache."""
        orders = await asyncio.to_thread(self.remote.get_orders)
        designs = await asyncio.to_thread(self.remote.get_master_designs)
        if self.cache is not None:
            await asyncio.to_thread(self.cache.replace_orders, orders)
            await asyncio.to_thread(self.cache.replace_master_designs, designs)
            self._last_sync_time = await asyncio.to_thread(self.cache.set_last_sync_time)
        self.logger.info(
            f"Refreshed snapshot - {len(orders)} order(s), {len(designs)} master design(s)",
            component="Sync",
        )
        return orders, designs
