"""
KarigarFlow Data Models
Dataclasses passed between the readers, parsers, engines and stores.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import RowValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_instant(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO string or epoch seconds into an aware datetime. None if unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class OrderStatus(Enum):
    """Workshop lifecycle states. BILLED is terminal."""
    PENDING = 'pending'
    DELIVERED = 'delivered'
    GIVEN_TO_HALLMARK = 'given_to_hallmark'
    RETURNED_FROM_HALLMARK = 'returned_from_hallmark'
    BILLED = 'billed'


# ---------------------------------------------------------------------------
# Core records
# ---------------------------------------------------------------------------

@dataclass
class Order:
    """One unit of work, keyed by order_no."""
    order_no: str
    order_type: str
    design_code: str
    generic_name: str = ""
    karigar_name: str = ""
    karigar_id: str = ""
    weight: float = 0.0
    size: float = 0.0
    qty: int = 1
    remarks: str = ""
    status: str = OrderStatus.PENDING.value
    is_customer_order: bool = False
    upload_date: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)
    last_status_change: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["upload_date"] = _format_instant(self.upload_date)
        d["created_at"] = _format_instant(self.created_at)
        d["last_status_change"] = _format_instant(self.last_status_change)
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Order":
        """Build an Order from a dict produced by to_dict (or a sanitized cache record)."""
        created_at = parse_instant(data.get("created_at")) or utc_now()
        return cls(
            order_no=str(data["order_no"]),
            order_type=str(data["order_type"]),
            design_code=str(data["design_code"]),
            generic_name=str(data.get("generic_name") or ""),
            karigar_name=str(data.get("karigar_name") or ""),
            karigar_id=str(data.get("karigar_id") or ""),
            weight=float(data.get("weight") or 0.0),
            size=float(data.get("size") or 0.0),
            qty=int(data["qty"]),
            remarks=str(data.get("remarks") or ""),
            status=str(data.get("status") or OrderStatus.PENDING.value),
            is_customer_order=bool(data.get("is_customer_order", False)),
            upload_date=parse_instant(data.get("upload_date")) or created_at,
            created_at=created_at,
            last_status_change=parse_instant(data.get("last_status_change")),
        )


@dataclass
class MasterDesignEntry:
    """Registry entry for one design code."""
    generic_name: str = ""
    karigar_name: str = ""
    karigar_id: str = ""
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MasterDesignEntry":
        return cls(
            generic_name=str(data.get("generic_name") or ""),
            karigar_name=str(data.get("karigar_name") or ""),
            karigar_id=str(data.get("karigar_id") or ""),
            is_active=bool(data.get("is_active", True)),
        )


# (design_code, entry) as returned by the remote store; codes need not be unique
MasterDesignPair = Tuple[str, MasterDesignEntry]


@dataclass
class UploadedFile:
    """An uploaded document: original file name plus raw bytes."""
    name: str
    content: bytes

    @classmethod
    def from_path(cls, path) -> "UploadedFile":
        with open(path, "rb") as fh:
            content = fh.read()
        return cls(name=str(path).replace("\\", "/").rsplit("/", 1)[-1], content=content)

    @property
    def extension(self) -> str:
        name = self.name.lower()
        return name[name.rfind("."):] if "." in name else ""


# ---------------------------------------------------------------------------
# Pipeline results
# ---------------------------------------------------------------------------

@dataclass
class ParseResult:
    orders: List[Order] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    row_errors: List[RowValidationError] = field(default_factory=list)
    source: str = ""


@dataclass
class PreviewRow:
    order: Order
    is_mapped: bool


@dataclass
class MappingResult:
    mapped_orders: List[Order] = field(default_factory=list)
    unmapped_orders: List[Order] = field(default_factory=list)
    unmapped_design_codes: List[str] = field(default_factory=list)
    preview_orders: List[PreviewRow] = field(default_factory=list)

    @property
    def all_orders(self) -> List[Order]:
        """Every order of the batch, in arrival order."""
        return [row.order for row in self.preview_orders]


@dataclass
class ReconciliationResult:
    matched: List[Order] = field(default_factory=list)
    missing: List[Order] = field(default_factory=list)
    unmapped: List[Order] = field(default_factory=list)
    # (parsed, existing) pairs sharing a key but differing in qty or weight
    conflicts: List[Tuple[Order, Order]] = field(default_factory=list)


@dataclass
class SanitizeResult:
    valid_orders: List[Any] = field(default_factory=list)
    skipped_count: int = 0


# ---------------------------------------------------------------------------
# Offline store / sync
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QueueItem:
    """A batch waiting for resubmission. Never mutated once stored."""
    id: int
    orders: Tuple[Order, ...]
    timestamp: datetime


@dataclass
class CacheSnapshot:
    orders: List[Order] = field(default_factory=list)
    skipped_count: int = 0


class SubmissionStatus(Enum):
    CONFIRMED = 'CONFIRMED'
    QUEUED = 'QUEUED'


@dataclass
class SubmissionOutcome:
    status: SubmissionStatus
    order_count: int = 0
    queue_item_id: Optional[int] = None
    error: str = ""


@dataclass
class SyncReport:
    uploaded_batches: int = 0
    uploaded_orders: int = 0
    failed_batches: int = 0
    failed_orders: int = 0
    remaining: int = 0
    errors: List[str] = field(default_factory=list)
    skipped: bool = False
    # queued items that cannot be decoded and are never replayed
    undecodable_ids: List[int] = field(default_factory=list)


@dataclass
class SyncState:
    is_syncing: bool = False
    queue_count: int = 0
    last_sync_time: Optional[datetime] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

@dataclass
class KarigarTotals:
    qty: int = 0
    weight: float = 0.0


@dataclass
class OrderMetrics:
    total_orders: int = 0
    total_weight: float = 0.0
    total_qty: int = 0
    co_orders: int = 0
    karigar_wise: Dict[str, KarigarTotals] = field(default_factory=dict)
    skipped_count: int = 0


@dataclass(frozen=True)
class BarcodeData:
    design_code: str
    order_no: str


RecordLike = Union[Order, Mapping[str, Any]]
