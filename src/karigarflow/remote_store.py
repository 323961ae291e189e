"""
Remote Order Store

``RemoteOrderStore`` is the contract the sync service submits through.
``SheetsOrderStore`` implements it on Google Sheets with one tab for orders
and one for the master-design registry, using the same service-account /
ADC authentication as the rest of the project.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import gspread
from oauth2client.service_account import ServiceAccountCredentials

from . import flow_config as cfg
from .errors import SubmissionError
from .flow_logger import get_logger
from .models import MasterDesignEntry, MasterDesignPair, Order, parse_instant
from .normalization import normalize_design_code

SCOPE = [
    'https://spreadsheets.google.com/feeds',
    'https://www.googleapis.com/auth/drive',
]


class RemoteOrderStore(ABC):
    """Authoritative store for orders and master designs."""

    @abstractmethod
    def get_orders(self) -> List[Order]:
        ...

    @abstractmethod
    def get_master_designs(self) -> List[MasterDesignPair]:
        ...

    @abstractmethod
    def upload_parsed_orders(self, orders: Sequence[Order]) -> None:
        """Persist a batch. Either the whole batch is stored or an exception is raised."""

    @abstractmethod
    def set_active_flag_for_master_design(self, design_code: str, active: bool) -> bool:
        ...

    @abstractmethod
    def save_master_designs(self, pairs: Sequence[MasterDesignPair]) -> None:
        ...


def _bool_cell(value) -> bool:
    return str(value).strip().upper() in ("TRUE", "YES", "1", "Y")


def _format_bool(value: bool) -> str:
    return "TRUE" if value else "FALSE"


def order_to_row(order: Order) -> List:
    d = order.to_dict()
    return [
        d["order_no"],
        d["order_type"],
        d["design_code"],
        d["generic_name"],
        d["karigar_name"],
        d["karigar_id"],
        d["weight"],
        d["size"],
        d["qty"],
        d["remarks"],
        d["status"],
        _format_bool(d["is_customer_order"]),
        d["upload_date"] or "",
        d["created_at"] or "",
        d["last_status_change"] or "",
    ]


def order_from_row(row: Dict[str, str]) -> Order:
    """Build an Order from a header->value mapping. Raises ValueError/KeyError on bad data."""
    created_at = parse_instant(row.get("Created_At"))
    data = {
        "order_no": row["Order_No"],
        "order_type": row["Order_Type"],
        "design_code": row["Design_Code"],
        "generic_name": row.get("Generic_Name", ""),
        "karigar_name": row.get("Karigar_Name", ""),
        "karigar_id": row.get("Karigar_ID", ""),
        "weight": float(row.get("Weight") or 0),
        "size": float(row.get("Size") or 0),
        "qty": int(float(row["Qty"])),
        "remarks": row.get("Remarks", ""),
        "status": row.get("Status") or "pending",
        "is_customer_order": _bool_cell(row.get("Is_Customer_Order", "")),
        "upload_date": row.get("Upload_Date"),
        "created_at": created_at,
        "last_status_change": row.get("Last_Status_Change"),
    }
    if not data["order_no"] or not data["design_code"]:
        raise ValueError("Order_No and Design_Code are required")
    return Order.from_dict(data)


def master_design_to_row(code: str, entry: MasterDesignEntry) -> List:
    return [code, entry.generic_name, entry.karigar_name, entry.karigar_id,
            _format_bool(entry.is_active)]


class SheetsOrderStore(RemoteOrderStore):
    """Google Sheets implementation of the remote order store."""

    def __init__(self, sheet_id: str = None, spreadsheet=None, logger=None):
        self.logger = logger or get_logger()
        if spreadsheet is None:
            creds_path = cfg.get_credentials_path()
            if creds_path:
                creds = ServiceAccountCredentials.from_json_keyfile_name(creds_path, SCOPE)
                client = gspread.authorize(creds)
            else:
                import google.auth
                credentials, _ = google.auth.default(scopes=SCOPE)
                client = gspread.authorize(credentials)
            spreadsheet = client.open_by_key(sheet_id or cfg.GOOGLE_SHEET_ID)

        self.spreadsheet = spreadsheet
        self.orders_ws = self._ensure_worksheet(cfg.ORDERS_SHEET_NAME, cfg.ORDER_COLUMNS)
        self.designs_ws = self._ensure_worksheet(
            cfg.MASTER_DESIGNS_SHEET_NAME, cfg.MASTER_DESIGN_COLUMNS
        )

    def _ensure_worksheet(self, tab_name: str, columns: List[str]):
        """Get or create a tab with its header row."""
        try:
            ws = self.spreadsheet.worksheet(tab_name)
        except gspread.exceptions.WorksheetNotFound:
            ws = self.spreadsheet.add_worksheet(title=tab_name, rows=1000, cols=len(columns))
            ws.append_row(columns)
            self.logger.info(f"Created worksheet '{tab_name}'", component="Sheets")
        return ws

    @staticmethod
    def _records(ws) -> List[Dict[str, str]]:
        values = ws.get_all_values()
        if not values:
            return []
        headers = values[0]
        return [dict(zip(headers, row)) for row in values[1:] if any(c.strip() for c in row)]

    def get_orders(self) -> List[Order]:
        orders = []
        for idx, record in enumerate(self._records(self.orders_ws), start=2):
            try:
                orders.append(order_from_row(record))
            except (KeyError, ValueError) as exc:
                self.logger.warning(f"Skipped unreadable order row {idx}: {exc}", component="Sheets")
        return orders

    def get_master_designs(self) -> List[MasterDesignPair]:
        pairs = []
        for record in self._records(self.designs_ws):
            code = (record.get("Design_Code") or "").strip()
            if not code:
                continue
            pairs.append((code, MasterDesignEntry(
                generic_name=record.get("Generic_Name", ""),
                karigar_name=record.get("Karigar_Name", ""),
                karigar_id=record.get("Karigar_ID", ""),
                is_active=_bool_cell(record.get("Is_Active", "TRUE")),
            )))
        return pairs

    def upload_parsed_orders(self, orders: Sequence[Order]) -> None:
        if not orders:
            return
        rows = [order_to_row(o) for o in orders]
        try:
            # One append_rows call per batch; RAW keeps codes like 00123 as text
            self.orders_ws.append_rows(rows, value_input_option="RAW")
        except gspread.exceptions.GSpreadException as exc:
            raise SubmissionError(f"Google Sheets rejected the batch: {exc}", len(rows)) from exc
        self.logger.info(f"Uploaded {len(rows)} order(s)", component="Sheets")

    def _find_design_row(self, design_code: str) -> Optional[int]:
        cell = self.designs_ws.find(design_code, in_column=1)
        return cell.row if cell else None

    def set_active_flag_for_master_design(self, design_code: str, active: bool) -> bool:
        row_num = self._find_design_row(design_code)
        if not row_num:
            self.logger.warning(f"Design code {design_code} not found", component="Sheets")
            return False
        col = cfg.MASTER_DESIGN_COLUMNS.index("Is_Active") + 1
        self.designs_ws.update_cell(row_num, col, _format_bool(active))
        return True

    def save_master_designs(self, pairs: Sequence[MasterDesignPair]) -> None:
        """
        Upsert registry entries keyed by normalized design code: existing
        rows are overwritten in place, new codes appended once.
        """
        values = self.designs_ws.get_all_values()
        existing_rows = {}
        for idx, row in enumerate(values[1:], start=2):
            key = normalize_design_code(row[0]) if row else ""
            if key:
                existing_rows.setdefault(key, idx)

        updates = []
        appended = {}
        last_col = chr(ord("A") + len(cfg.MASTER_DESIGN_COLUMNS) - 1)
        for code, entry in pairs:
            key = normalize_design_code(code)
            row_values = master_design_to_row(key, entry)
            row_num = existing_rows.get(key)
            if row_num:
                updates.append({'range': f'A{row_num}:{last_col}{row_num}', 'values': [row_values]})
            else:
                appended[key] = row_values

        if updates:
            self.designs_ws.batch_update(updates)
        if appended:
            self.designs_ws.append_rows(list(appended.values()), value_input_option="RAW")
        self.logger.info(
            f"Saved master designs - {len(updates)} updated, {len(appended)} added",
            component="Sheets",
        )
