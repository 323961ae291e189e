"""
SQLite-backed offline store.

One database file holds four tables:
- orders / master_designs: the display cache (last known remote state)
- queue: batches that failed to submit, replayed FIFO by the sync service
- metadata: key/value pairs (last sync time)

The cache and the queue are separate interfaces over the same file. Every
accessor opens its own connection and runs a single transaction.
"""
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from . import flow_config as cfg
from .errors import LocalStoreError
from .flow_logger import get_logger
from .models import (
    CacheSnapshot,
    MasterDesignEntry,
    MasterDesignPair,
    Order,
    QueueItem,
    parse_instant,
    utc_now,
)
from .order_validation import hydrate_orders, is_valid_master_design_record

SCHEMA = """
    CREATE TABLE IF NOT EXISTS orders (
        order_no TEXT PRIMARY KEY,
        payload TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS master_designs (
        design_code TEXT PRIMARY KEY,
        payload TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        orders TEXT NOT NULL,
        timestamp TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT
    );
"""


class OfflineDatabase:
    """Connection factory and schema owner for the offline store."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or cfg.OFFLINE_DB_PATH
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def connect(self) -> sqlite3.Connection:
        """Get a new connection (sqlite3 connections are not thread-safe)."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Cannot open offline store at {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        conn = self.connect()
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Cannot initialise offline store: {exc}") from exc
        finally:
            conn.close()

    def execute(self, sql: str, params: Iterable = ()) -> int:
        """Run one write statement in its own transaction. Returns lastrowid."""
        conn = self.connect()
        try:
            with conn:
                cursor = conn.execute(sql, tuple(params))
            return cursor.lastrowid
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Offline store write failed: {exc}") from exc
        finally:
            conn.close()

    def replace_table(self, table: str, key_column: str, rows: Iterable[Tuple[str, str]]):
        """Clear ``table`` and insert ``rows`` as one transaction."""
        conn = self.connect()
        try:
            with conn:
                conn.execute(f"DELETE FROM {table}")
                conn.executemany(
                    f"INSERT OR REPLACE INTO {table} ({key_column}, payload) VALUES (?, ?)",
                    list(rows),
                )
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Offline store write to {table} failed: {exc}") from exc
        finally:
            conn.close()

    def fetch_all(self, sql: str, params: Iterable = ()) -> List[sqlite3.Row]:
        conn = self.connect()
        try:
            return conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Offline store read failed: {exc}") from exc
        finally:
            conn.close()


class SnapshotCache:
    """Persisted mirror of the last known orders and master designs."""

    def __init__(self, db: OfflineDatabase, logger=None):
        self.db = db
        self.logger = logger or get_logger()

    def replace_orders(self, orders: Iterable[Order]) -> None:
        rows = [(o.order_no, json.dumps(o.to_dict())) for o in orders]
        self.db.replace_table("orders", "order_no", rows)

    def load_orders(self) -> CacheSnapshot:
        """
        Load cached orders, dropping anything that cannot be trusted.

        Rows with undecodable JSON or a missing/ill-typed field are counted
        in ``skipped_count`` instead of raising.
        """
        records = []
        undecodable = 0
        for row in self.db.fetch_all("SELECT payload FROM orders ORDER BY rowid"):
            try:
                records.append(json.loads(row["payload"]))
            except (TypeError, ValueError):
                undecodable += 1
                self.logger.warning(
                    f"Skipped undecodable cached order {row['payload']!r}", component="Cache"
                )

        orders, skipped = hydrate_orders(records, logger=self.logger)
        skipped += undecodable
        if skipped:
            self.logger.warning(
                f"{skipped} cached order(s) skipped; clear the local cache if this persists",
                component="Cache",
            )
        return CacheSnapshot(orders=orders, skipped_count=skipped)

    def replace_master_designs(self, pairs: Iterable[MasterDesignPair]) -> None:
        rows = {}
        for code, entry in pairs:
            payload = dict(entry.to_dict(), design_code=code)
            rows[code] = json.dumps(payload)
        self.db.replace_table("master_designs", "design_code", rows.items())

    def load_master_designs(self) -> Tuple[List[MasterDesignPair], int]:
        pairs: List[MasterDesignPair] = []
        skipped = 0
        for row in self.db.fetch_all("SELECT payload FROM master_designs ORDER BY rowid"):
            try:
                record = json.loads(row["payload"])
            except (TypeError, ValueError):
                record = None
            if not is_valid_master_design_record(record):
                skipped += 1
                self.logger.warning(
                    f"Skipped invalid cached master design {row['payload']!r}", component="Cache"
                )
                continue
            pairs.append((record["design_code"], MasterDesignEntry.from_dict(record)))
        return pairs, skipped

    def set_last_sync_time(self, when: Optional[datetime] = None) -> datetime:
        when = when or utc_now()
        self.db.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            (cfg.LAST_SYNC_KEY, when.isoformat()),
        )
        return when

    def get_last_sync_time(self) -> Optional[datetime]:
        rows = self.db.fetch_all("SELECT value FROM metadata WHERE key = ?", (cfg.LAST_SYNC_KEY,))
        return parse_instant(rows[0]["value"]) if rows else None

    def clear(self) -> None:
        """Drop cached orders, master designs and the last sync time. The queue is kept."""
        conn = self.db.connect()
        try:
            with conn:
                conn.execute("DELETE FROM orders")
                conn.execute("DELETE FROM master_designs")
                conn.execute("DELETE FROM metadata WHERE key = ?", (cfg.LAST_SYNC_KEY,))
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Clearing the offline cache failed: {exc}") from exc
        finally:
            conn.close()
        self.logger.info("Offline cache cleared", component="Cache")


class IngestionQueue:
    """Append-only FIFO of batches waiting to be submitted."""

    def __init__(self, db: OfflineDatabase, logger=None):
        self.db = db
        self.logger = logger or get_logger()

    def push(self, orders: Iterable[Order]) -> QueueItem:
        orders = tuple(orders)
        timestamp = utc_now()
        item_id = self.db.execute(
            "INSERT INTO queue (orders, timestamp) VALUES (?, ?)",
            (json.dumps([o.to_dict() for o in orders]), timestamp.isoformat()),
        )
        return QueueItem(id=item_id, orders=orders, timestamp=timestamp)

    def _decode(self, row) -> QueueItem:
        return QueueItem(
            id=row["id"],
            orders=tuple(Order.from_dict(d) for d in json.loads(row["orders"])),
            timestamp=parse_instant(row["timestamp"]) or utc_now(),
        )

    def items(self) -> List[QueueItem]:
        """Queued batches, oldest first. Undecodable items are logged and left in place."""
        result = []
        for row in self.db.fetch_all("SELECT id, orders, timestamp FROM queue ORDER BY id"):
            try:
                result.append(self._decode(row))
            except (TypeError, ValueError, KeyError, OverflowError) as exc:
                self.logger.error(
                    f"Queue item #{row['id']} cannot be decoded: {exc}", component="Queue"
                )
        return result

    def undecodable_ids(self) -> List[int]:
        """Ids of queued items that ``items`` cannot decode and so never replays."""
        stuck = []
        for row in self.db.fetch_all("SELECT id, orders, timestamp FROM queue ORDER BY id"):
            try:
                self._decode(row)
            except (TypeError, ValueError, KeyError, OverflowError):
                stuck.append(row["id"])
        return stuck

    def purge_undecodable(self) -> List[int]:
        """Delete undecodable items. Returns the removed ids."""
        stuck = self.undecodable_ids()
        for item_id in stuck:
            self.remove(item_id)
        if stuck:
            self.logger.warning(
                f"Dropped {len(stuck)} undecodable queue item(s): {stuck}", component="Queue"
            )
        return stuck

    def remove(self, item_id: int) -> None:
        self.db.execute("DELETE FROM queue WHERE id = ?", (item_id,))

    def count(self) -> int:
        rows = self.db.fetch_all("SELECT COUNT(*) AS n FROM queue")
        return rows[0]["n"]
