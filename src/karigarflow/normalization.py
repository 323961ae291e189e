"""
Canonical forms for design codes, karigar names and statuses.

All functions are total: ``None`` and non-strings are treated as text,
empty input maps to the empty string, nothing raises.
"""
from __future__ import annotations

import re

from . import flow_config as cfg

_WHITESPACE_RE = re.compile(r"\s+")


def _collapse(value) -> str:
    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value)).strip()


def normalize_design_code(design_code) -> str:
    """Trim and collapse internal whitespace. Case is significant."""
    return _collapse(design_code)


def normalize_karigar_name(name) -> str:
    return _collapse(name).lower()


def normalize_status(status) -> str:
    return _collapse(status).lower()


def is_unassigned_karigar(name) -> bool:
    """Empty, whitespace-only or the 'Unassigned' placeholder."""
    normalized = normalize_karigar_name(name)
    return normalized == "" or normalized == cfg.UNASSIGNED_KARIGAR.lower()


def is_customer_order(order_type) -> bool:
    return "co" in _collapse(order_type).lower()
