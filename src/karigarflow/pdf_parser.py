"""
PDF Order Parser
================

Parses the text lines produced by ``PdfTextReader`` into orders.

Two physical layouts exist, and a document uses exactly one of them:

1. Table rows with a karigar column::

     12AB-3-4  CO  D100  Ring Gold  5.50  2.00  3  Ramesh
     order no  type design generic   wt   size qty karigar

2. Karigar section headers followed by rows without a karigar::

     Ramesh Kumar
     12AB-3-4  CO  D100  5.50  2.00  3  urgent polish

``detect_layout`` picks the layout once per document. If any line anywhere
reads as a table row, the whole document is parsed as table rows starting
from that line; section headers are only considered otherwise.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

from . import flow_config as cfg
from .errors import NoValidDataError, NoValidOrdersError
from .models import MasterDesignEntry, MasterDesignPair, Order, ParseResult, utc_now
from .normalization import is_customer_order

# 12AB-3-4 (digits letters - digits - digits) or the compact 6010SO26CSO form
ORDER_NO_RE = re.compile(r"^\d+[A-Za-z]+(?:-\d+-\d+|\d+[A-Za-z]+)$")
DESIGN_CODE_RE = re.compile(r"^[A-Za-z0-9]+(?:-[A-Za-z0-9]+)*$")
KARIGAR_TOKEN_RE = re.compile(r"^[A-Za-z]+$")
ASCII_DIGITS_RE = re.compile(r"[0-9]+")
CAPITALIZED_WORD_RE = re.compile(r"^[A-Z][A-Za-z.&'-]*$")
EXPLICIT_KARIGAR_RE = re.compile(
    r"^(?:KARIGAR|FACTORY|MANUFACTURER|VENDOR)(?:\s+NAME)?\s*[:\-–—]\s*(.+)$",
    re.IGNORECASE,
)

TABLE_ROW_MIN_TOKENS = 8
SECTION_ROW_MIN_TOKENS = 6

PdfPages = Sequence[Sequence[str]]


@dataclass(frozen=True)
class TableRowLayout:
    """Every row carries its own karigar. Parsing starts at ``start``."""
    start: Tuple[int, int] = (0, 0)


@dataclass(frozen=True)
class SectionHeaderLayout:
    """Karigar names appear as section headers above their rows."""


Layout = Union[TableRowLayout, SectionHeaderLayout]


def _parse_measure(token: str) -> Optional[float]:
    try:
        value = float(token.replace(",", ""))
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


def _parse_qty(token: str) -> Optional[int]:
    if not ASCII_DIGITS_RE.fullmatch(token):
        return None
    qty = int(token)
    return qty if qty > 0 else None


def _has_order_keys(tokens: List[str]) -> bool:
    return bool(ORDER_NO_RE.match(tokens[0]) and DESIGN_CODE_RE.match(tokens[2]))


# ---------------------------------------------------------------------------
# Line classifiers
# ---------------------------------------------------------------------------

def parse_table_row(line: str, upload_date: datetime, created_at: datetime) -> Optional[Order]:
    """Parse a table-layout line. Returns None when the line is not a table row."""
    tokens = line.split()
    if len(tokens) < TABLE_ROW_MIN_TOKENS or not _has_order_keys(tokens):
        return None

    karigar_name = tokens[-1]
    if not KARIGAR_TOKEN_RE.match(karigar_name):
        return None

    weight = _parse_measure(tokens[-4])
    size = _parse_measure(tokens[-3])
    qty = _parse_qty(tokens[-2])
    if weight is None or size is None or qty is None:
        return None

    generic_name = " ".join(tokens[3:-4])
    if not re.search(r"[A-Za-z]", generic_name):
        return None

    order_type = tokens[1]
    return Order(
        order_no=tokens[0],
        order_type=order_type,
        design_code=tokens[2],
        generic_name=generic_name,
        karigar_name=karigar_name,
        weight=weight,
        size=size,
        qty=qty,
        is_customer_order=is_customer_order(order_type),
        upload_date=upload_date,
        created_at=created_at,
    )


def parse_section_row(
    line: str, karigar_name: str, upload_date: datetime, created_at: datetime
) -> Optional[Order]:
    """Parse ``order_no type design weight size qty [remarks...]``."""
    tokens = line.split()
    if len(tokens) < SECTION_ROW_MIN_TOKENS or not _has_order_keys(tokens):
        return None

    weight = _parse_measure(tokens[3])
    size = _parse_measure(tokens[4])
    qty = _parse_qty(tokens[5])
    if weight is None or size is None or qty is None:
        return None

    order_type = tokens[1]
    return Order(
        order_no=tokens[0],
        order_type=order_type,
        design_code=tokens[2],
        karigar_name=karigar_name,
        weight=weight,
        size=size,
        qty=qty,
        remarks=" ".join(tokens[6:]),
        is_customer_order=is_customer_order(order_type),
        upload_date=upload_date,
        created_at=created_at,
    )


def is_table_header(line: str) -> bool:
    upper = line.upper()
    hits = sum(1 for keyword in cfg.PDF_HEADER_KEYWORDS if keyword in upper)
    return hits >= cfg.PDF_HEADER_KEYWORD_THRESHOLD


def detect_karigar_header(line: str) -> Optional[str]:
    """
    Return the karigar name if ``line`` is a section header.

    Accepts ``Karigar: NAME`` / ``Factory - NAME`` forms and bare lines of
    1-3 capitalized words without digits.
    """
    stripped = line.strip()
    explicit = EXPLICIT_KARIGAR_RE.match(stripped)
    if explicit:
        return explicit.group(1).strip()

    if re.search(r"\d", stripped):
        return None
    words = stripped.split()
    if 1 <= len(words) <= 3 and all(CAPITALIZED_WORD_RE.match(w) for w in words):
        return " ".join(words)
    return None


# ---------------------------------------------------------------------------
# Layout detection and dispatch
# ---------------------------------------------------------------------------

def detect_layout(pages: PdfPages) -> Layout:
    placeholder = utc_now()
    for page_idx, lines in enumerate(pages):
        for line_idx, line in enumerate(lines):
            if parse_table_row(line, placeholder, placeholder) is not None:
                return TableRowLayout(start=(page_idx, line_idx))
    return SectionHeaderLayout()


def _parse_table_layout(
    pages: PdfPages, layout: TableRowLayout, upload_date: datetime, created_at: datetime
) -> Tuple[List[Order], int]:
    orders: List[Order] = []
    rejected = 0
    start_page, start_line = layout.start
    for page_idx in range(start_page, len(pages)):
        lines = pages[page_idx]
        first = start_line if page_idx == start_page else 0
        for line in lines[first:]:
            if not line.strip() or is_table_header(line):
                continue
            order = parse_table_row(line, upload_date, created_at)
            if order is None:
                rejected += 1
            else:
                orders.append(order)
    return orders, rejected


def _parse_section_layout(
    pages: PdfPages, upload_date: datetime, created_at: datetime
) -> Tuple[List[Order], int]:
    orders: List[Order] = []
    rejected = 0
    current_karigar = ""
    # The karigar context carries over page breaks
    for lines in pages:
        for line in lines:
            stripped = line.strip()
            if not stripped or is_table_header(stripped):
                continue
            header = detect_karigar_header(stripped)
            if header is not None:
                current_karigar = header
                continue
            order = parse_section_row(stripped, current_karigar, upload_date, created_at)
            if order is None:
                rejected += 1
            else:
                orders.append(order)
    return orders, rejected


def parse_orders_from_pdf_pages(
    pages: PdfPages,
    upload_date: datetime,
    created_at: Optional[datetime] = None,
) -> ParseResult:
    created_at = created_at or utc_now()
    layout = detect_layout(pages)

    if isinstance(layout, TableRowLayout):
        orders, rejected = _parse_table_layout(pages, layout, upload_date, created_at)
    else:
        orders, rejected = _parse_section_layout(pages, upload_date, created_at)

    if not orders:
        raise NoValidOrdersError(
            "No orders found in the PDF. Please ensure the PDF contains order data in a "
            "tabular format, or use an Excel file (.xlsx) for more reliable parsing."
        )

    result = ParseResult(orders=orders, source="pdf")
    if rejected:
        result.warnings.append(f"{rejected} line(s) could not be read as orders and were ignored")
    return result


# ---------------------------------------------------------------------------
# Master designs
# ---------------------------------------------------------------------------

def _split_master_design_line(line: str) -> List[str]:
    if "\t" in line or "  " in line:
        return [p.strip() for p in re.split(r"\s{2,}|\t", line) if p.strip()]
    tokens = line.split()
    if len(tokens) >= 3:
        return [tokens[0], " ".join(tokens[1:-1]), tokens[-1]]
    return tokens


def parse_master_designs_from_pdf_pages(pages: PdfPages) -> List[MasterDesignPair]:
    """
    Parse ``Design Code | Generic Name | Karigar Name`` rows.

    A header row is looked for in the first 10 lines; a code seen twice
    keeps its first entry.
    """
    lines = [line.strip() for page in pages for line in page if line.strip()]
    if not lines:
        raise NoValidDataError(
            "No text content found in PDF. The file may contain only images or be empty."
        )

    data_start = 0
    for idx, line in enumerate(lines[:10]):
        lowered = line.lower()
        if "design" in lowered and ("generic" in lowered or "karigar" in lowered):
            data_start = idx + 1
            break

    designs: List[MasterDesignPair] = []
    seen = set()
    for line in lines[data_start:]:
        if len(line) < 3:
            continue
        parts = _split_master_design_line(line)
        if len(parts) < 2:
            continue
        design_code = parts[0]
        lowered = design_code.lower()
        if "design" in lowered or "code" in lowered or design_code in seen:
            continue
        designs.append((
            design_code,
            MasterDesignEntry(
                generic_name=parts[1],
                karigar_name=parts[2] if len(parts) >= 3 else "",
                is_active=True,
            ),
        ))
        seen.add(design_code)

    if not designs:
        raise NoValidDataError(
            "Could not parse any master design entries from the PDF. Please use an Excel "
            "file (.xlsx) with columns: Design Code, Generic Name, Karigar Name."
        )
    return designs
