"""
Structural guards for orders read from untrusted places (local cache,
parsed files) before they reach metrics, sorting or the UI.

These checks look at *shape* only and never raise.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Tuple

from .flow_logger import get_logger
from .models import Order, SanitizeResult

REQUIRED_TEXT_FIELDS = ("order_no", "design_code", "order_type")
STRING_FIELDS = ("status", "generic_name", "karigar_name")
OPTIONAL_NUMERIC_FIELDS = ("weight", "size")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _as_mapping(record: Any):
    if isinstance(record, Order):
        return record.to_dict()
    if isinstance(record, Mapping):
        return record
    return None


def is_valid_persistent_order(record: Any) -> bool:
    """True if ``record`` (an Order or a dict) has every required field with the right kind."""
    data = _as_mapping(record)
    if data is None:
        return False

    for name in REQUIRED_TEXT_FIELDS:
        value = data.get(name)
        if not isinstance(value, str) or value == "":
            return False

    if not _is_number(data.get("qty")):
        return False

    for name in STRING_FIELDS:
        if not isinstance(data.get(name), str):
            return False

    for name in OPTIONAL_NUMERIC_FIELDS:
        if name in data and data[name] is not None and not _is_number(data[name]):
            return False

    return True


def sanitize_orders(records: Iterable[Any], logger=None) -> SanitizeResult:
    """Split ``records`` into valid entries and a count of dropped ones."""
    result = SanitizeResult()
    for record in records:
        if is_valid_persistent_order(record):
            result.valid_orders.append(record)
        else:
            result.skipped_count += 1
            (logger or get_logger()).warning(
                f"Skipped invalid order entry: {record!r}", component="Validation"
            )
    return result


def is_valid_master_design_record(record: Any) -> bool:
    if not isinstance(record, Mapping):
        return False
    code = record.get("design_code")
    if not isinstance(code, str) or not code.strip():
        return False
    for name in ("generic_name", "karigar_name"):
        if not isinstance(record.get(name, ""), str):
            return False
    return isinstance(record.get("is_active", True), bool)


def hydrate_orders(records: Iterable[Any], logger=None) -> Tuple[List[Order], int]:
    """
    Sanitize ``records`` and build Orders from what survives.

    Returns (orders, skipped); a record that passes the shape check but
    still cannot be converted counts as skipped.
    """
    logger = logger or get_logger()
    sanitized = sanitize_orders(records, logger=logger)
    orders: List[Order] = []
    skipped = sanitized.skipped_count
    for record in sanitized.valid_orders:
        if isinstance(record, Order):
            orders.append(record)
            continue
        try:
            orders.append(Order.from_dict(record))
        except (TypeError, ValueError, OverflowError) as exc:
            skipped += 1
            logger.warning(f"Skipped unconvertible order entry {record!r}: {exc}", component="Validation")
    return orders, skipped
