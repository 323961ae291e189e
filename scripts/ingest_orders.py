#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Order Ingestion CLI Tool
Parse an order file, map it against the master designs and optionally submit it.

Usage:
    python scripts/ingest_orders.py orders.xlsx --designs master.xlsx
    python scripts/ingest_orders.py orders.pdf --designs master.xlsx --submit
    python scripts/ingest_orders.py --sync
    python scripts/ingest_orders.py --purge-undecodable
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Fix encoding for Windows
if sys.platform == 'win32':
    import io
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Add src to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from karigarflow.errors import KarigarFlowError
from karigarflow.ingestion_service import IngestionPipeline
from karigarflow.models import SubmissionStatus, UploadedFile
from karigarflow.offline_store import IngestionQueue, OfflineDatabase, SnapshotCache
from karigarflow.order_file_parser import parse_master_design_file


def _banner(title):
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80 + "\n")


def _build_sync_service(db_path=None):
    from karigarflow.remote_store import SheetsOrderStore
    from karigarflow.sync_service import SyncService

    db = OfflineDatabase(db_path)
    return SyncService(SheetsOrderStore(), IngestionQueue(db), SnapshotCache(db))


async def ingest(args) -> int:
    master_designs = []
    if args.designs:
        master_designs = parse_master_design_file(UploadedFile.from_path(args.designs))

    pipeline = IngestionPipeline(master_designs=master_designs)
    mapping = await pipeline.load_file(UploadedFile.from_path(args.file))

    _banner(f"KARIGARFLOW - {Path(args.file).name}")
    print(f"Parsed:   {len(mapping.preview_orders)} order(s)")
    print(f"Mapped:   {len(mapping.mapped_orders)}")
    print(f"Unmapped: {len(mapping.unmapped_orders)}")
    if mapping.unmapped_design_codes:
        print("\nUnknown design codes:")
        for code in mapping.unmapped_design_codes:
            print(f"   {code}")
    for warning in pipeline.parse_result.warnings:
        print(f"Warning: {warning}")

    if not args.submit:
        return 0

    outcome = await pipeline.commit(_build_sync_service(args.db))
    if outcome.status is SubmissionStatus.CONFIRMED:
        print(f"\nSubmitted {outcome.order_count} order(s)")
    else:
        print(f"\nSubmission failed, batch queued as #{outcome.queue_item_id}: {outcome.error}")
    return 0


async def sync(args) -> int:
    report = await _build_sync_service(args.db).process_queue()
    _banner("KARIGARFLOW - QUEUE SYNC")
    print(f"Uploaded: {report.uploaded_orders} order(s) in {report.uploaded_batches} batch(es)")
    print(f"Failed:   {report.failed_batches} batch(es)")
    print(f"Queued:   {report.remaining}")
    for error in report.errors:
        print(f"   {error}")
    if report.undecodable_ids:
        print(f"Undecodable: {report.undecodable_ids} (rerun with --purge-undecodable to drop)")
    return 1 if report.failed_batches else 0


def purge(args) -> int:
    dropped = IngestionQueue(OfflineDatabase(args.db)).purge_undecodable()
    print(f"Dropped {len(dropped)} undecodable queue item(s): {dropped}")
    return 0


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(description="Ingest karigar order files")
    parser.add_argument("file", nargs="?", help="Order file (.xlsx, .xls or .pdf)")
    parser.add_argument("--designs", help="Master design file (.xlsx, .xls or .pdf)")
    parser.add_argument("--submit", action="store_true", help="Submit the batch to Google Sheets")
    parser.add_argument("--sync", action="store_true", help="Replay queued batches and exit")
    parser.add_argument("--purge-undecodable", action="store_true",
                        help="Drop queued batches that can no longer be read and exit")
    parser.add_argument("--db", help="Offline store path (defaults to KARIGARFLOW_OFFLINE_DB_PATH)")
    args = parser.parse_args()

    if not args.sync and not args.file and not args.purge_undecodable:
        parser.error("an order file is required unless --sync is given")

    try:
        if args.purge_undecodable:
            code = purge(args)
        else:
            code = asyncio.run(sync(args) if args.sync else ingest(args))
    except KarigarFlowError as e:
        print(f"Error: {e}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
