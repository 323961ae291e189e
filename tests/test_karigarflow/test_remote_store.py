"""
Tests for karigarflow.remote_store

Covers: worksheet provisioning, order/master-design reads, batch upload and
registry upserts with a fully mocked gspread client.
No real Google Sheets are touched.
"""
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

import gspread

from karigarflow import flow_config as cfg
from karigarflow.errors import SubmissionError
from karigarflow.models import MasterDesignEntry, Order
from karigarflow.remote_store import SheetsOrderStore, order_from_row, order_to_row

NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def make_order(order_no="12AB-3-4", **kwargs):
    kwargs.setdefault("upload_date", NOW)
    kwargs.setdefault("created_at", NOW)
    return Order(order_no=order_no, order_type="CO", design_code="D100", **kwargs)


class TestSheetsOrderStore(unittest.TestCase):
    """Test SheetsOrderStore methods with mocked worksheets."""

    def setUp(self):
        patcher_creds = patch('karigarflow.remote_store.cfg.get_credentials_path',
                              return_value='/fake/path.json')
        patcher_sa = patch('karigarflow.remote_store.ServiceAccountCredentials.from_json_keyfile_name')
        patcher_gspread = patch('karigarflow.remote_store.gspread.authorize')
        patcher_sheet_id = patch('karigarflow.remote_store.cfg.GOOGLE_SHEET_ID', 'fake_id')

        patcher_creds.start()
        self.mock_sa = patcher_sa.start()
        self.mock_gspread = patcher_gspread.start()
        patcher_sheet_id.start()
        self.addCleanup(patch.stopall)

        self.orders_ws = MagicMock()
        self.designs_ws = MagicMock()
        tabs = {
            cfg.ORDERS_SHEET_NAME: self.orders_ws,
            cfg.MASTER_DESIGNS_SHEET_NAME: self.designs_ws,
        }
        self.mock_spreadsheet = MagicMock()
        self.mock_spreadsheet.worksheet.side_effect = lambda name: tabs[name]
        self.mock_gspread.return_value.open_by_key.return_value = self.mock_spreadsheet

        self.store = SheetsOrderStore(logger=MagicMock())

    def test_authorizes_with_service_account(self):
        self.mock_sa.assert_called_once()
        self.mock_gspread.return_value.open_by_key.assert_called_once_with('fake_id')

    def test_missing_tabs_are_created_with_headers(self):
        spreadsheet = MagicMock()
        spreadsheet.worksheet.side_effect = gspread.exceptions.WorksheetNotFound("missing")
        SheetsOrderStore(spreadsheet=spreadsheet, logger=MagicMock())

        self.assertEqual(spreadsheet.add_worksheet.call_count, 2)
        headers = [c[0][0] for c in spreadsheet.add_worksheet.return_value.append_row.call_args_list]
        self.assertEqual(headers, [cfg.ORDER_COLUMNS, cfg.MASTER_DESIGN_COLUMNS])

    def test_upload_is_a_single_append(self):
        orders = [make_order("A-1"), make_order("A-2")]
        self.store.upload_parsed_orders(orders)

        self.orders_ws.append_rows.assert_called_once()
        rows = self.orders_ws.append_rows.call_args[0][0]
        self.assertEqual([r[0] for r in rows], ["A-1", "A-2"])
        self.assertEqual(len(rows[0]), len(cfg.ORDER_COLUMNS))
        self.assertEqual(self.orders_ws.append_rows.call_args[1], {"value_input_option": "RAW"})

    def test_upload_keeps_leading_zero_codes_verbatim(self):
        self.store.upload_parsed_orders([make_order("00123")])
        rows = self.orders_ws.append_rows.call_args[0][0]
        self.assertEqual(rows[0][0], "00123")
        self.assertEqual(self.orders_ws.append_rows.call_args[1]["value_input_option"], "RAW")

    def test_upload_failure_raises_submission_error(self):
        self.orders_ws.append_rows.side_effect = gspread.exceptions.GSpreadException("quota exceeded")
        with self.assertRaises(SubmissionError) as ctx:
            self.store.upload_parsed_orders([make_order()])
        self.assertEqual(ctx.exception.order_count, 1)

    def test_get_orders_skips_unreadable_rows(self):
        good = [str(v) for v in order_to_row(make_order("A-1", weight=5.5, qty=2))]
        bad = list(good)
        bad[8] = "many"
        self.orders_ws.get_all_values.return_value = [cfg.ORDER_COLUMNS, good, bad, [""] * 15]

        orders = self.store.get_orders()

        self.assertEqual(len(orders), 1)
        self.assertEqual(orders[0].weight, 5.5)
        self.assertEqual(orders[0].qty, 2)
        self.assertEqual(orders[0].created_at, NOW)

    def test_get_master_designs(self):
        self.designs_ws.get_all_values.return_value = [
            cfg.MASTER_DESIGN_COLUMNS,
            ["D100", "Ring", "Ramesh", "K1", "TRUE"],
            ["D200", "Chain", "", "", "FALSE"],
            ["", "orphan", "", "", "TRUE"],
        ]
        pairs = self.store.get_master_designs()
        self.assertEqual([code for code, _ in pairs], ["D100", "D200"])
        self.assertTrue(pairs[0][1].is_active)
        self.assertFalse(pairs[1][1].is_active)

    def test_set_active_flag(self):
        cell = MagicMock()
        cell.row = 3
        self.designs_ws.find.return_value = cell
        self.assertTrue(self.store.set_active_flag_for_master_design("D100", False))
        self.designs_ws.update_cell.assert_called_once_with(3, 5, "FALSE")

    def test_set_active_flag_unknown_code(self):
        self.designs_ws.find.return_value = None
        self.assertFalse(self.store.set_active_flag_for_master_design("NOPE", True))
        self.designs_ws.update_cell.assert_not_called()

    def test_save_master_designs_upserts(self):
        self.designs_ws.get_all_values.return_value = [
            cfg.MASTER_DESIGN_COLUMNS,
            ["D100", "Ring", "Ramesh", "", "TRUE"],
        ]
        self.store.save_master_designs([
            ("D100", MasterDesignEntry("Ring Gold", "Ramesh")),
            ("D200", MasterDesignEntry("Chain", "Suresh")),
        ])

        updates = self.designs_ws.batch_update.call_args[0][0]
        self.assertEqual(updates[0]['range'], 'A2:E2')
        self.assertEqual(updates[0]['values'][0][1], "Ring Gold")
        appended = self.designs_ws.append_rows.call_args[0][0]
        self.assertEqual(appended, [["D200", "Chain", "Suresh", "", "TRUE"]])
        self.assertEqual(self.designs_ws.append_rows.call_args[1], {"value_input_option": "RAW"})

    def test_save_master_designs_matches_codes_after_normalizing(self):
        self.designs_ws.get_all_values.return_value = [
            cfg.MASTER_DESIGN_COLUMNS,
            [" D 100 ", "Ring", "Ramesh", "", "TRUE"],
        ]
        self.store.save_master_designs([
            ("D  100", MasterDesignEntry("Ring Gold", "Ramesh")),
            ("D200 ", MasterDesignEntry("Chain", "Suresh")),
            (" D200", MasterDesignEntry("Chain", "Mahesh")),
        ])

        updates = self.designs_ws.batch_update.call_args[0][0]
        self.assertEqual([u['range'] for u in updates], ['A2:E2'])
        self.assertEqual(updates[0]['values'][0][:2], ["D 100", "Ring Gold"])
        appended = self.designs_ws.append_rows.call_args[0][0]
        self.assertEqual(appended, [["D200", "Chain", "Mahesh", "", "TRUE"]])


class TestRowConversion(unittest.TestCase):

    def test_order_row_round_trip(self):
        order = make_order(weight=1.5, size=2.0, qty=3, is_customer_order=True, last_status_change=NOW)
        row = dict(zip(cfg.ORDER_COLUMNS, [str(v) for v in order_to_row(order)]))
        self.assertEqual(order_from_row(row), order)

    def test_missing_order_no_rejected(self):
        row = dict(zip(cfg.ORDER_COLUMNS, [str(v) for v in order_to_row(make_order())]))
        row["Order_No"] = ""
        with self.assertRaises(ValueError):
            order_from_row(row)


if __name__ == "__main__":
    unittest.main()
