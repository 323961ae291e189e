"""
Master Design Mapping
=====================

Resolves each parsed order's design code against the master-design
registry.

Rules:
- Lookup key is the normalized design code; when the registry lists a code
  more than once, the last entry wins.
- Active entry -> mapped: generic name comes from the registry; the karigar
  comes from the registry only when the order has none (empty, blank or
  'Unassigned'). A karigar read from the document always wins.
- Missing or inactive entry -> unmapped: order passes through unchanged and
  its code is reported once.

The function is pure: inputs are never mutated and the result depends only
on the arguments, so it can be re-run whenever the registry changes.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List

from .models import MappingResult, MasterDesignEntry, MasterDesignPair, Order, PreviewRow
from .normalization import is_unassigned_karigar, normalize_design_code


def build_design_lookup(master_designs: Iterable[MasterDesignPair]) -> Dict[str, MasterDesignEntry]:
    lookup: Dict[str, MasterDesignEntry] = {}
    for code, entry in master_designs:
        lookup[normalize_design_code(code)] = entry
    return lookup


def map_order(order: Order, entry: MasterDesignEntry) -> Order:
    """Apply one active registry entry to one order (returns a copy)."""
    changes = {"generic_name": entry.generic_name}
    if is_unassigned_karigar(order.karigar_name):
        changes["karigar_name"] = entry.karigar_name
        changes["karigar_id"] = entry.karigar_id
    return replace(order, **changes)


def apply_master_design_mapping(
    raw_orders: Iterable[Order],
    master_designs: Iterable[MasterDesignPair],
) -> MappingResult:
    lookup = build_design_lookup(master_designs)
    result = MappingResult()
    unmapped_codes: Dict[str, None] = {}

    for order in raw_orders:
        entry = lookup.get(normalize_design_code(order.design_code))
        if entry is not None and entry.is_active:
            mapped = map_order(order, entry)
            result.mapped_orders.append(mapped)
            result.preview_orders.append(PreviewRow(order=mapped, is_mapped=True))
        else:
            unmapped_codes.setdefault(normalize_design_code(order.design_code), None)
            result.unmapped_orders.append(order)
            result.preview_orders.append(PreviewRow(order=order, is_mapped=False))

    result.unmapped_design_codes = list(unmapped_codes)
    return result


def collect_unmapped_design_codes(
    orders: Iterable[Order], master_designs: Iterable[MasterDesignPair]
) -> List[str]:
    """Design codes among ``orders`` with no active registry entry, first-seen order."""
    return apply_master_design_mapping(orders, master_designs).unmapped_design_codes
