"""
Tests for the offline store, the sync service and the ingestion pipeline.

Uses a temporary SQLite file per test and an in-memory fake remote store.
"""

import asyncio
import os
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from karigarflow.document_readers import TabularSheet, Workbook
from karigarflow.errors import LocalStoreError
from karigarflow.ingestion_service import IngestionPipeline
from karigarflow.models import MasterDesignEntry, Order, SubmissionStatus, UploadedFile
from karigarflow.offline_store import IngestionQueue, OfflineDatabase, SnapshotCache
from karigarflow.remote_store import RemoteOrderStore
from karigarflow.sync_service import SyncService

NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def make_order(order_no="12AB-3-4", design_code="D100", **kwargs):
    kwargs.setdefault("order_type", "CO")
    kwargs.setdefault("upload_date", NOW)
    kwargs.setdefault("created_at", NOW)
    return Order(order_no=order_no, design_code=design_code, **kwargs)


class FakeRemote(RemoteOrderStore):
    """Records uploads; fails while ``offline`` or for batches containing a poisoned order."""

    def __init__(self):
        self.offline = False
        self.poisoned = set()
        self.uploads = []
        self.orders = []
        self.designs = []

    def get_orders(self):
        return list(self.orders)

    def get_master_designs(self):
        return list(self.designs)

    def upload_parsed_orders(self, orders):
        if self.offline:
            raise ConnectionError("network unreachable")
        if any(o.order_no in self.poisoned for o in orders):
            raise ValueError("rejected by store")
        self.uploads.append(list(orders))

    def set_active_flag_for_master_design(self, design_code, active):
        return True

    def save_master_designs(self, pairs):
        self.designs = list(pairs)


class OfflineStoreTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.db = OfflineDatabase(os.path.join(self.tmp.name, "nested", "offline.db"))
        self.logger = MagicMock()
        self.cache = SnapshotCache(self.db, logger=self.logger)
        self.queue = IngestionQueue(self.db, logger=self.logger)


# ======================================================================
# Offline store
# ======================================================================


class TestSnapshotCache(OfflineStoreTestCase):

    def test_orders_round_trip(self):
        orders = [make_order("A-1", weight=1.25, last_status_change=NOW), make_order("A-2")]
        self.cache.replace_orders(orders)
        snapshot = self.cache.load_orders()
        self.assertEqual(snapshot.orders, orders)
        self.assertEqual(snapshot.skipped_count, 0)

    def test_replace_drops_previous_snapshot(self):
        self.cache.replace_orders([make_order("A-1")])
        self.cache.replace_orders([make_order("A-2")])
        self.assertEqual([o.order_no for o in self.cache.load_orders().orders], ["A-2"])

    def test_corrupt_rows_are_counted_not_raised(self):
        self.cache.replace_orders([make_order("A-1")])
        self.db.execute("INSERT INTO orders (order_no, payload) VALUES (?, ?)", ("BAD", "{not json"))
        self.db.execute("INSERT INTO orders (order_no, payload) VALUES (?, ?)", ("X", '{"qty": 1}'))

        snapshot = self.cache.load_orders()

        self.assertEqual([o.order_no for o in snapshot.orders], ["A-1"])
        self.assertEqual(snapshot.skipped_count, 2)

    def test_non_finite_qty_and_huge_epoch_do_not_break_loading(self):
        base = '"order_type": "CO", "design_code": "D1", "status": "pending", ' \
               '"generic_name": "", "karigar_name": ""'
        self.db.execute("INSERT INTO orders (order_no, payload) VALUES (?, ?)",
                        ("N", '{"order_no": "N", "qty": NaN, %s}' % base))
        self.db.execute("INSERT INTO orders (order_no, payload) VALUES (?, ?)",
                        ("I", '{"order_no": "I", "qty": Infinity, %s}' % base))
        self.db.execute("INSERT INTO orders (order_no, payload) VALUES (?, ?)",
                        ("E", '{"order_no": "E", "qty": 2, "created_at": 1e20, %s}' % base))

        snapshot = self.cache.load_orders()

        self.assertEqual([o.order_no for o in snapshot.orders], ["E"])
        self.assertEqual(snapshot.orders[0].qty, 2)
        self.assertEqual(snapshot.skipped_count, 2)

    def test_master_designs(self):
        pairs = [("D100", MasterDesignEntry("Ring", "Ramesh", "K1", True)),
                 ("D200", MasterDesignEntry("Chain", "", "", False))]
        self.cache.replace_master_designs(pairs)
        self.db.execute("INSERT INTO master_designs (design_code, payload) VALUES (?, ?)", ("Z", "[]"))

        loaded, skipped = self.cache.load_master_designs()

        self.assertEqual(loaded, pairs)
        self.assertEqual(skipped, 1)

    def test_last_sync_time(self):
        self.assertIsNone(self.cache.get_last_sync_time())
        self.cache.set_last_sync_time(NOW)
        self.assertEqual(self.cache.get_last_sync_time(), NOW)

    def test_clear_keeps_queue(self):
        self.cache.replace_orders([make_order()])
        self.cache.set_last_sync_time(NOW)
        self.queue.push([make_order()])

        self.cache.clear()

        self.assertEqual(self.cache.load_orders().orders, [])
        self.assertIsNone(self.cache.get_last_sync_time())
        self.assertEqual(self.queue.count(), 1)


class TestIngestionQueue(OfflineStoreTestCase):

    def test_fifo_with_monotonic_ids(self):
        first = self.queue.push([make_order("A-1")])
        second = self.queue.push([make_order("A-2"), make_order("A-3")])

        items = self.queue.items()

        self.assertLess(first.id, second.id)
        self.assertEqual([i.id for i in items], [first.id, second.id])
        self.assertEqual(items[1].orders, second.orders)
        self.assertEqual(self.queue.count(), 2)

    def test_ids_not_reused_after_remove(self):
        first = self.queue.push([make_order("A-1")])
        self.queue.remove(first.id)
        second = self.queue.push([make_order("A-2")])
        self.assertGreater(second.id, first.id)

    def test_undecodable_item_left_in_place(self):
        self.db.execute("INSERT INTO queue (orders, timestamp) VALUES (?, ?)", ("oops", NOW.isoformat()))
        self.queue.push([make_order()])
        self.assertEqual(len(self.queue.items()), 1)
        self.assertEqual(self.queue.count(), 2)
        self.logger.error.assert_called_once()

    def test_undecodable_items_can_be_listed_and_purged(self):
        bad = self.db.execute("INSERT INTO queue (orders, timestamp) VALUES (?, ?)",
                              ("oops", NOW.isoformat()))
        huge = self.db.execute("INSERT INTO queue (orders, timestamp) VALUES (?, ?)",
                               ('[{"order_no": "A-9", "order_type": "CO", "design_code": "D1", '
                                '"qty": 1e400}]', NOW.isoformat()))
        good = self.queue.push([make_order()])

        self.assertEqual(self.queue.undecodable_ids(), [bad, huge])
        self.assertEqual(self.queue.purge_undecodable(), [bad, huge])
        self.assertEqual(self.queue.count(), 1)
        self.assertEqual([i.id for i in self.queue.items()], [good.id])
        self.assertEqual(self.queue.purge_undecodable(), [])

    def test_unwritable_database_raises_local_store_error(self):
        blocker = os.path.join(self.tmp.name, "file")
        Path(blocker).write_text("not a directory")
        with self.assertRaises((LocalStoreError, OSError)):
            OfflineDatabase(os.path.join(blocker, "offline.db"))


# ======================================================================
# Sync service
# ======================================================================


class TestSyncService(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        db = OfflineDatabase(os.path.join(self.tmp.name, "offline.db"))
        self.logger = MagicMock()
        self.queue = IngestionQueue(db, logger=self.logger)
        self.cache = SnapshotCache(db, logger=self.logger)
        self.remote = FakeRemote()
        self.service = SyncService(self.remote, self.queue, self.cache, logger=self.logger)

    async def test_successful_submission_is_confirmed(self):
        outcome = await self.service.submit_batch([make_order()])
        self.assertEqual(outcome.status, SubmissionStatus.CONFIRMED)
        self.assertEqual(self.queue.count(), 0)
        self.assertEqual(len(self.remote.uploads), 1)

    async def test_failed_submission_queues_exactly_one_item(self):
        self.remote.offline = True
        orders = [make_order("A-1"), make_order("A-2")]

        outcome = await self.service.submit_batch(orders)

        self.assertEqual(outcome.status, SubmissionStatus.QUEUED)
        self.assertIn("network unreachable", outcome.error)
        items = self.queue.items()
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].id, outcome.queue_item_id)
        self.assertEqual(list(items[0].orders), orders)
        self.assertEqual(self.service.state.queue_count, 1)
        self.logger.log_batch_queued.assert_called_once()

    async def test_replay_removes_only_the_uploaded_item(self):
        self.remote.offline = True
        await self.service.submit_batch([make_order("A-1")])
        self.remote.offline = False

        report = await self.service.process_queue()

        self.assertEqual(report.uploaded_batches, 1)
        self.assertEqual(report.uploaded_orders, 1)
        self.assertEqual(report.remaining, 0)
        self.assertEqual(self.queue.count(), 0)
        self.assertEqual(self.remote.uploads[0][0].order_no, "A-1")
        self.assertIsNotNone(self.service.state.last_sync_time)

    async def test_failing_item_does_not_block_others(self):
        self.remote.offline = True
        for order_no in ("A-1", "BAD", "A-3"):
            await self.service.submit_batch([make_order(order_no)])
        self.remote.offline = False
        self.remote.poisoned.add("BAD")

        report = await self.service.process_queue()

        self.assertEqual([u[0].order_no for u in self.remote.uploads], ["A-1", "A-3"])
        self.assertEqual(report.failed_batches, 1)
        self.assertEqual(report.remaining, 1)
        self.assertEqual(self.queue.items()[0].orders[0].order_no, "BAD")
        self.assertIsNotNone(self.service.state.error)

    async def test_concurrent_sweeps_do_not_overlap(self):
        self.remote.offline = True
        await self.service.submit_batch([make_order("A-1")])
        self.remote.offline = False

        first, second = await asyncio.gather(self.service.process_queue(), self.service.process_queue())

        self.assertFalse(first.skipped)
        self.assertTrue(second.skipped)
        self.assertEqual(len(self.remote.uploads), 1)
        self.assertFalse(self.service.state.is_syncing)

    async def test_connectivity_transition_triggers_sweep(self):
        self.remote.offline = True
        await self.service.submit_batch([make_order("A-1")])
        self.remote.offline = False

        self.assertIsNone(await self.service.on_connectivity_change(False))
        report = await self.service.on_connectivity_change(True)
        self.assertEqual(report.uploaded_batches, 1)
        self.assertIsNone(await self.service.on_connectivity_change(True))

    async def test_first_online_report_sweeps_queue_left_by_previous_run(self):
        self.queue.push([make_order("A-1")])
        service = SyncService(self.remote, self.queue, self.cache, logger=self.logger)

        report = await service.on_connectivity_change(True)

        self.assertEqual(report.uploaded_batches, 1)
        self.assertEqual(self.queue.count(), 0)
        self.assertEqual(self.remote.uploads[0][0].order_no, "A-1")

    async def test_sweep_reports_undecodable_items(self):
        stuck = self.queue.db.execute("INSERT INTO queue (orders, timestamp) VALUES (?, ?)",
                                      ("oops", NOW.isoformat()))
        self.queue.push([make_order("A-1")])

        report = await self.service.process_queue()

        self.assertEqual(report.uploaded_batches, 1)
        self.assertEqual(report.remaining, 1)
        self.assertEqual(report.undecodable_ids, [stuck])

    async def test_refresh_snapshots_replaces_cache(self):
        self.remote.orders = [make_order("R-1")]
        self.remote.designs = [("D100", MasterDesignEntry("Ring", "Ramesh"))]

        await self.service.refresh_snapshots()

        self.assertEqual([o.order_no for o in self.cache.load_orders().orders], ["R-1"])
        self.assertEqual(self.cache.load_master_designs()[0], self.remote.designs)
        state = await self.service.load_state()
        self.assertIsNotNone(state.last_sync_time)


# ======================================================================
# Ingestion pipeline
# ======================================================================


class TestIngestionPipeline(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        reader = MagicMock()
        reader.read.return_value = Workbook(sheets=[TabularSheet.from_value_rows("Orders", [
            ["Order No", "Order Type", "Design Code", "Karigar", "Qty"],
            ["A-1", "CO", "D100", "", 1],
            ["A-2", "CO", "D999", "Imran", 2],
            ["A-3", "STOCK", "D100", "", 1],
        ])])
        self.logger = MagicMock()
        self.pipeline = IngestionPipeline(
            master_designs=[("D100", MasterDesignEntry("Ring", "Suresh", "K1"))],
            spreadsheet_reader=reader,
            logger=self.logger,
        )

    async def test_load_then_apply_registry(self):
        mapping = await self.pipeline.load_file(UploadedFile("orders.xlsx", b"x"), NOW)
        self.assertEqual(mapping.unmapped_design_codes, ["D999"])
        self.assertEqual(mapping.mapped_orders[0].karigar_name, "Suresh")

        remapped = self.pipeline.apply_registry(
            self.pipeline.master_designs + [("D999", MasterDesignEntry("Chain", "Ramesh"))]
        )
        self.assertEqual(remapped.unmapped_orders, [])
        self.assertEqual(remapped.mapped_orders[1].karigar_name, "Imran")
        self.assertEqual(remapped, self.pipeline.apply_registry(self.pipeline.master_designs))

    async def test_reconcile_and_import_missing(self):
        await self.pipeline.load_file(UploadedFile("orders.xlsx", b"x"), NOW)
        result = self.pipeline.reconcile([make_order("A-1", "D100")])

        self.assertEqual([o.order_no for o in result.matched], ["A-1"])
        self.assertEqual([o.order_no for o in result.missing], ["A-3"])
        self.assertEqual([o.order_no for o in result.unmapped], ["A-2"])

        sync = MagicMock()
        sync.submit_batch = MagicMock(side_effect=self._confirm)
        await self.pipeline.import_missing(sync, result)
        self.assertEqual([o.order_no for o in sync.submit_batch.call_args[0][0]], ["A-3"])

    async def test_commit_submits_whole_batch(self):
        await self.pipeline.load_file(UploadedFile("orders.xlsx", b"x"), NOW)
        sync = MagicMock()
        sync.submit_batch = MagicMock(side_effect=self._confirm)
        await self.pipeline.commit(sync)
        self.assertEqual(len(sync.submit_batch.call_args[0][0]), 3)

    async def test_reconcile_before_load_fails(self):
        with self.assertRaises(RuntimeError):
            self.pipeline.reconcile([])

    @staticmethod
    async def _confirm(orders):
        return SubmissionStatus.CONFIRMED


if __name__ == "__main__":
    unittest.main()
