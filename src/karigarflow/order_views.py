"""
Dashboard views over a list of orders: totals and sorted listings.

Every function sanitizes its input first, so a corrupt cache entry lowers
the counts instead of breaking the view.
"""
from typing import Iterable, List

from . import flow_config as cfg
from .models import KarigarTotals, Order, OrderMetrics, RecordLike
from .normalization import is_unassigned_karigar, normalize_design_code
from .order_validation import hydrate_orders


def _valid_orders(records: Iterable[RecordLike]):
    return hydrate_orders(records)


def format_karigar_name(name: str) -> str:
    """Display form of a karigar name; blank or placeholder -> 'Unassigned'."""
    if is_unassigned_karigar(name):
        return cfg.UNASSIGNED_KARIGAR
    return " ".join(name.split())


def derive_metrics(records: Iterable[RecordLike]) -> OrderMetrics:
    orders, skipped = _valid_orders(records)
    metrics = OrderMetrics(skipped_count=skipped)
    for order in orders:
        metrics.total_orders += 1
        metrics.total_weight += order.weight
        metrics.total_qty += order.qty
        if order.is_customer_order:
            metrics.co_orders += 1
        karigar = format_karigar_name(order.karigar_name)
        totals = metrics.karigar_wise.setdefault(karigar, KarigarTotals())
        totals.qty += order.qty
        totals.weight += order.weight
    return metrics


def sort_orders_design_wise(records: Iterable[RecordLike]) -> List[Order]:
    orders, _ = _valid_orders(records)
    return sorted(orders, key=lambda o: (normalize_design_code(o.design_code).lower(), o.order_no))


def sort_orders_karigar_wise(records: Iterable[RecordLike]) -> List[Order]:
    """Karigar name first, then design code, then order number."""
    orders, _ = _valid_orders(records)
    return sorted(
        orders,
        key=lambda o: (
            format_karigar_name(o.karigar_name).lower(),
            normalize_design_code(o.design_code).lower(),
            o.order_no,
        ),
    )
