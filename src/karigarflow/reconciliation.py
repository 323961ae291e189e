"""
Reconciliation of a parsed batch against the orders already stored.

Billed orders are archival and left out of the comparison. Each parsed order
lands in exactly one bucket:

- unmapped: design code not in the master-design registry (checked first)
- matched:  (design code, order no) already present, treated as a duplicate
- missing:  new order, eligible for bulk import

Matched orders whose qty or weight differ from the stored copy are also
listed in ``conflicts``; the partition itself only looks at the key.
"""
from __future__ import annotations

import math
from typing import Dict, Iterable, Tuple

from .models import MasterDesignPair, Order, OrderStatus, ReconciliationResult
from .normalization import normalize_design_code, normalize_status

OrderKey = Tuple[str, str]


def order_key(order: Order) -> OrderKey:
    return normalize_design_code(order.design_code), order.order_no


def _differs(parsed: Order, existing: Order) -> bool:
    return parsed.qty != existing.qty or not math.isclose(parsed.weight, existing.weight, abs_tol=1e-6)


def compare_orders_with_existing(
    parsed_orders: Iterable[Order],
    existing_orders: Iterable[Order],
    master_designs: Iterable[MasterDesignPair],
) -> ReconciliationResult:
    existing_by_key: Dict[OrderKey, Order] = {}
    for order in existing_orders:
        if normalize_status(order.status) == OrderStatus.BILLED.value:
            continue
        existing_by_key.setdefault(order_key(order), order)

    master_codes = {normalize_design_code(code) for code, _ in master_designs}

    result = ReconciliationResult()
    for parsed in parsed_orders:
        key = order_key(parsed)
        if key[0] not in master_codes:
            result.unmapped.append(parsed)
            continue

        existing = existing_by_key.get(key)
        if existing is None:
            result.missing.append(parsed)
        else:
            result.matched.append(parsed)
            if _differs(parsed, existing):
                result.conflicts.append((parsed, existing))

    return result
