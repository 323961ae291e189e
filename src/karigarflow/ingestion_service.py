"""
Ingestion Pipeline

Holds one uploaded batch through its stages:

    load_file -> (apply_registry)* -> reconcile -> commit / import_missing

The raw parsed orders are kept so the mapping can be recomputed whenever
the master-design registry changes (for instance after the operator adds
the codes reported as unmapped).
"""
import asyncio
from datetime import datetime
from typing import List, Optional, Sequence

from .design_mapping import apply_master_design_mapping
from .flow_logger import get_logger
from .models import (
    MappingResult,
    MasterDesignPair,
    Order,
    ParseResult,
    ReconciliationResult,
    SubmissionOutcome,
    UploadedFile,
    utc_now,
)
from .order_file_parser import parse_order_file
from .reconciliation import compare_orders_with_existing
from .sync_service import SyncService


class IngestionPipeline:
    """Stateful wrapper around parse, map, reconcile and submit for one batch."""

    def __init__(self, master_designs: Optional[Sequence[MasterDesignPair]] = None,
                 spreadsheet_reader=None, pdf_reader=None, logger=None):
        self.master_designs: List[MasterDesignPair] = list(master_designs or [])
        self.spreadsheet_reader = spreadsheet_reader
        self.pdf_reader = pdf_reader
        self.logger = logger or get_logger()

        self.parse_result: Optional[ParseResult] = None
        self.mapping: Optional[MappingResult] = None

    @property
    def raw_orders(self) -> List[Order]:
        return list(self.parse_result.orders) if self.parse_result else []

    async def load_file(self, uploaded: UploadedFile,
                        upload_date: Optional[datetime] = None) -> MappingResult:
        """Parse ``uploaded`` and map it against the current registry."""
        upload_date = upload_date or utc_now()
        self.parse_result = await asyncio.to_thread(
            parse_order_file,
            uploaded,
            upload_date,
            spreadsheet_reader=self.spreadsheet_reader,
            pdf_reader=self.pdf_reader,
            logger=self.logger,
        )
        return self.apply_registry(self.master_designs)

    def apply_registry(self, master_designs: Sequence[MasterDesignPair]) -> MappingResult:
        """Re-map the raw batch against ``master_designs``. Safe to call repeatedly."""
        self.master_designs = list(master_designs)
        self.mapping = apply_master_design_mapping(self.raw_orders, self.master_designs)
        self.logger.log_mapping_result(
            len(self.mapping.mapped_orders),
            len(self.mapping.unmapped_orders),
            self.mapping.unmapped_design_codes,
        )
        return self.mapping

    def reconcile(self, existing_orders: Sequence[Order]) -> ReconciliationResult:
        if self.mapping is None:
            raise RuntimeError("No batch loaded")
        result = compare_orders_with_existing(
            self.mapping.all_orders, existing_orders, self.master_designs
        )
        self.logger.log_reconciliation(len(result.matched), len(result.missing), len(result.unmapped))
        if result.conflicts:
            self.logger.warning(
                f"{len(result.conflicts)} matched order(s) differ in qty or weight from the stored copy",
                component="Reconciliation",
            )
        return result

    async def commit(self, sync_service: SyncService) -> SubmissionOutcome:
        """Submit the whole batch, mapped and unmapped, as one unit."""
        if self.mapping is None:
            raise RuntimeError("No batch loaded")
        return await sync_service.submit_batch(self.mapping.all_orders)

    async def import_missing(self, sync_service: SyncService,
                             result: ReconciliationResult) -> Optional[SubmissionOutcome]:
        """Bulk import the orders reconciliation found missing from the store."""
        if not result.missing:
            self.logger.info("Nothing to import", component="Reconciliation")
            return None
        return await sync_service.submit_batch(result.missing)
