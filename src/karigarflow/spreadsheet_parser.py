"""
Spreadsheet Order Parser
========================

Turns the first sheet of a ``Workbook`` into ``Order`` records.

Rules:
- Columns are located through header aliases (case/spacing insensitive).
- Order No, Order Type, Design Code and Qty columns must exist
  (``SchemaError`` otherwise).
- Bad rows are skipped and reported as warnings; only a sheet with zero
  valid rows raises ``NoValidRowsError``.
- Row numbers in messages are spreadsheet row numbers (header is row 1).
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import flow_config as cfg
from .document_readers import TabularSheet, Workbook
from .errors import NoValidRowsError, RowValidationError, SchemaError
from .models import MasterDesignEntry, MasterDesignPair, Order, ParseResult, utc_now
from .normalization import is_customer_order

ORDER_COLUMN_ALIASES: Dict[str, List[str]] = {
    "order_no": ["order_no", "orderno", "order_number", "order"],
    "order_type": ["order_type", "ordertype", "type"],
    "design_code": ["design_code", "designcode", "design", "code"],
    "generic_name": ["generic_name", "genericname", "generic", "item_name"],
    "karigar_name": [
        "karigar_name", "karigarname", "karigar", "artisan",
        "factory", "factory_name", "manufacturer", "vendor",
    ],
    "weight": ["weight", "wt", "gross_weight"],
    "size": ["size", "sz"],
    "qty": ["qty", "quantity", "pieces", "pcs"],
    "remarks": ["remarks", "remark", "notes", "note", "comments"],
}

REQUIRED_ORDER_COLUMNS = {
    "order_no": "Order No",
    "order_type": "Order Type",
    "design_code": "Design Code",
    "qty": "Qty",
}

MASTER_DESIGN_COLUMN_ALIASES: Dict[str, List[str]] = {
    "design_code": ["design_code", "designcode", "design", "code", "item_code"],
    "generic_name": ["generic_name", "genericname", "generic", "name", "item_name"],
    "karigar_name": [
        "karigar_name", "karigarname", "karigar", "artisan", "craftsman",
        "factory", "factory_name", "factoryname", "karigar_factory",
        "karigar_factory_name", "factory_karigar", "factory_karigar_name",
        "manufacturer", "manufacturer_name", "vendor", "vendor_name",
    ],
}


def cell_text(value: Any) -> str:
    """Render a raw cell as trimmed text; 1234.0 from Excel becomes '1234'."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a numeric cell. Returns None for an empty cell.

    Raises ValueError for text that is not a finite number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    return number


def _resolve_columns(sheet: TabularSheet) -> Dict[str, Optional[str]]:
    columns = {name: sheet.find_column(aliases) for name, aliases in ORDER_COLUMN_ALIASES.items()}
    for name, label in REQUIRED_ORDER_COLUMNS.items():
        if columns[name] is None:
            raise SchemaError(
                f"Missing required column: {label}. "
                f"Expected one of: {', '.join(ORDER_COLUMN_ALIASES[name])}. "
                f"Found columns: {', '.join(sheet.headers) or '(none)'}"
            )
    return columns


def _parse_row(
    row: Dict[str, Any],
    row_number: int,
    columns: Dict[str, Optional[str]],
    upload_date: datetime,
    created_at: datetime,
) -> Order:
    def raw(name: str) -> Any:
        column = columns.get(name)
        return row.get(column) if column else None

    order_no = cell_text(raw("order_no"))
    order_type = cell_text(raw("order_type"))
    design_code = cell_text(raw("design_code"))

    if not order_no:
        raise RowValidationError(row_number, "Order No is required")
    if not order_type:
        raise RowValidationError(row_number, "Order Type is required")
    if not design_code:
        raise RowValidationError(row_number, "Design Code is required")

    try:
        weight = parse_number(raw("weight")) or 0.0
    except ValueError:
        raise RowValidationError(row_number, "Invalid weight value")
    if weight < 0:
        raise RowValidationError(row_number, "Weight cannot be negative")

    try:
        size = parse_number(raw("size")) or 0.0
    except ValueError:
        raise RowValidationError(row_number, "Invalid size value")
    if size < 0:
        raise RowValidationError(row_number, "Size cannot be negative")

    try:
        qty_value = parse_number(raw("qty"))
    except ValueError:
        qty_value = None
    if qty_value is None or qty_value <= 0 or not qty_value.is_integer():
        raise RowValidationError(row_number, "Quantity must be a positive whole number")

    return Order(
        order_no=order_no,
        order_type=order_type,
        design_code=design_code,
        generic_name=cell_text(raw("generic_name")),
        karigar_name=cell_text(raw("karigar_name")),
        weight=weight,
        size=size,
        qty=int(qty_value),
        remarks=cell_text(raw("remarks")),
        is_customer_order=is_customer_order(order_type),
        upload_date=upload_date,
        created_at=created_at,
    )


def parse_orders_from_workbook(
    workbook: Workbook,
    upload_date: datetime,
    created_at: Optional[datetime] = None,
) -> ParseResult:
    """Parse orders from the first sheet of ``workbook``."""
    sheet = workbook.first_sheet
    created_at = created_at or utc_now()

    if not sheet.headers:
        raise NoValidRowsError([], message="The Excel sheet is empty. Please upload a file with order data.")
    columns = _resolve_columns(sheet)

    result = ParseResult(source="spreadsheet")
    for idx, row in enumerate(sheet.rows):
        if all(cell_text(v) == "" for v in row.values()):
            continue
        try:
            result.orders.append(_parse_row(row, idx + 2, columns, upload_date, created_at))
        except RowValidationError as err:
            result.row_errors.append(err)
            result.warnings.append(str(err))

    if not result.orders:
        if not result.row_errors:
            raise NoValidRowsError([], message="The Excel sheet is empty. Please upload a file with order data.")
        raise NoValidRowsError(result.row_errors, limit=cfg.MAX_ROW_ERRORS_IN_MESSAGE)

    if result.row_errors:
        result.warnings.insert(
            0, f"{len(result.row_errors)} row(s) skipped, {len(result.orders)} order(s) parsed"
        )
    return result


def parse_master_designs_from_workbook(workbook: Workbook) -> List[MasterDesignPair]:
    """
    Parse master design rows: Design Code (required), Generic Name, Karigar Name.

    Missing generic names default to the design code, missing karigars to
    'Unassigned'. Every parsed entry is active.
    """
    sheet = workbook.first_sheet
    if not sheet.rows:
        raise NoValidRowsError([], message="The Excel sheet is empty. Please upload a file with master design data.")

    code_col = sheet.find_column(MASTER_DESIGN_COLUMN_ALIASES["design_code"])
    if code_col is None:
        raise SchemaError(
            "Missing required column: Design Code. "
            f"Expected one of: {', '.join(MASTER_DESIGN_COLUMN_ALIASES['design_code'])}. "
            f"Found columns: {', '.join(sheet.headers)}"
        )
    name_col = sheet.find_column(MASTER_DESIGN_COLUMN_ALIASES["generic_name"])
    karigar_col = sheet.find_column(MASTER_DESIGN_COLUMN_ALIASES["karigar_name"])

    entries: List[MasterDesignPair] = []
    for row in sheet.rows:
        design_code = cell_text(row.get(code_col))
        if not design_code:
            continue
        generic_name = cell_text(row.get(name_col)) if name_col else ""
        karigar_name = cell_text(row.get(karigar_col)) if karigar_col else ""
        entries.append((
            design_code,
            MasterDesignEntry(
                generic_name=generic_name or design_code,
                karigar_name=karigar_name or cfg.UNASSIGNED_KARIGAR,
                is_active=True,
            ),
        ))

    if not entries:
        raise NoValidRowsError(
            [], message="No valid master design entries found in the Excel file. Please check the data and try again."
        )
    return entries
