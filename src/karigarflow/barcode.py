"""Decoding of scanned order labels ("DESIGNCODE ORDERNO")."""
from typing import Iterable, Optional

from .models import BarcodeData, Order
from .normalization import normalize_design_code


def parse_barcode_data(text: str) -> Optional[BarcodeData]:
    """Split a scanned label into design code and order number. None if malformed."""
    if not text:
        return None
    parts = text.strip().split()
    if len(parts) != 2:
        return None
    return BarcodeData(design_code=parts[0], order_no=parts[1])


def find_order_by_barcode(orders: Iterable[Order], text: str) -> Optional[Order]:
    data = parse_barcode_data(text)
    if data is None:
        return None
    code = normalize_design_code(data.design_code)
    for order in orders:
        if order.order_no == data.order_no and normalize_design_code(order.design_code) == code:
            return order
    return None
