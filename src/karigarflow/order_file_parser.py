"""
Order file dispatch: picks the reader and parser from the file extension.

Unsupported extensions fail before any parsing is attempted.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional

from . import flow_config as cfg
from .document_readers import PdfTextReader, SpreadsheetReader
from .errors import UnsupportedFormatError
from .flow_logger import get_logger
from .models import MasterDesignPair, ParseResult, UploadedFile
from .pdf_parser import parse_master_designs_from_pdf_pages, parse_orders_from_pdf_pages
from .spreadsheet_parser import parse_master_designs_from_workbook, parse_orders_from_workbook

UNSUPPORTED_MESSAGE = "Unsupported file type. Please upload a PDF or Excel file (.pdf, .xlsx, .xls)."


def _check_supported(uploaded: UploadedFile) -> str:
    ext = uploaded.extension
    if ext not in cfg.SPREADSHEET_EXTENSIONS and ext not in cfg.PDF_EXTENSIONS:
        raise UnsupportedFormatError(f"{UNSUPPORTED_MESSAGE} Got: {uploaded.name}")
    return ext


def parse_order_file(
    uploaded: UploadedFile,
    upload_date: datetime,
    spreadsheet_reader: Optional[SpreadsheetReader] = None,
    pdf_reader: Optional[PdfTextReader] = None,
    logger=None,
) -> ParseResult:
    logger = logger or get_logger()
    ext = _check_supported(uploaded)

    if ext in cfg.PDF_EXTENSIONS:
        pages = (pdf_reader or PdfTextReader(logger=logger)).read(uploaded)
        result = parse_orders_from_pdf_pages(pages, upload_date)
    else:
        workbook = (spreadsheet_reader or SpreadsheetReader(logger=logger)).read(uploaded)
        result = parse_orders_from_workbook(workbook, upload_date)

    logger.log_parse_complete(uploaded.name, len(result.orders), len(result.warnings))
    return result


async def parse_order_file_async(uploaded: UploadedFile, upload_date: datetime, **kwargs) -> ParseResult:
    """Run ``parse_order_file`` off the event loop."""
    return await asyncio.to_thread(parse_order_file, uploaded, upload_date, **kwargs)


def parse_master_design_file(
    uploaded: UploadedFile,
    spreadsheet_reader: Optional[SpreadsheetReader] = None,
    pdf_reader: Optional[PdfTextReader] = None,
    logger=None,
) -> List[MasterDesignPair]:
    logger = logger or get_logger()
    ext = _check_supported(uploaded)

    if ext in cfg.PDF_EXTENSIONS:
        pages = (pdf_reader or PdfTextReader(logger=logger)).read(uploaded)
        designs = parse_master_designs_from_pdf_pages(pages)
    else:
        workbook = (spreadsheet_reader or SpreadsheetReader(logger=logger)).read(uploaded)
        designs = parse_master_designs_from_workbook(workbook)

    logger.info(f"{uploaded.name} - Parsed {len(designs)} master design(s)", component="Parser")
    return designs
