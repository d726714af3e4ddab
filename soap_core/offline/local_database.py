# =============================================================================
# soap_core/offline/local_database.py
# Local SQLite Database for Offline Operations
# =============================================================================
"""
LocalDatabase - SQLite-based durable store for every entity collection.

Features:
- Automatic schema creation
- Collection-partitioned JSON records (sales, orders, supermarkets, ...)
- Pending-operation queue table, FIFO by insertion
- Key/value settings (migration flags, last sync time)
- Transaction support and thread-local connections
"""

from __future__ import annotations
import sqlite3
import threading
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from contextlib import contextmanager
import logging

import numpy as np
import pandas as pd

from soap_core.domain.models import default_fragrance_records
from soap_core.errors import LocalStoreError

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    """Serialize the non-JSON types that reach the store from pandas/numpy."""
    if isinstance(value, (datetime, date, pd.Timestamp)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value: Any) -> str:
    return json.dumps(value, default=_json_default, ensure_ascii=False)


class LocalDatabase:
    """
    Local SQLite database for offline data storage.

    Each entity collection is stored as JSON documents keyed by
    (collection, id), so the local copy keeps exactly the shape the remote
    store returns.
    """

    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "soap_stock.db"

    SCHEMA = {
        "records": """
            CREATE TABLE IF NOT EXISTS records (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                data_json TEXT NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                sync_status TEXT DEFAULT 'pending',
                PRIMARY KEY (collection, id)
            )
        """,
        "sync_queue": """
            CREATE TABLE IF NOT EXISTS sync_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                operation TEXT NOT NULL,
                table_name TEXT NOT NULL,
                record_id TEXT,
                data_json TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                attempts INTEGER DEFAULT 0,
                last_attempt TEXT,
                status TEXT DEFAULT 'pending',
                error_message TEXT
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    # Collections that must never be empty
    DEFAULT_COLLECTIONS = {
        "fragrance_stock": ("fragrance_id", default_fragrance_records),
    }

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize local database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path or self.DEFAULT_DB_PATH)
        self._ensure_directory()
        self._local = threading.local()
        self._initialized = False

    def _ensure_directory(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise LocalStoreError(f"Local database error: {e}") from e
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Create the schema and seed default collections."""
        if self._initialized:
            return

        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")

        self._initialized = True
        for collection in self.DEFAULT_COLLECTIONS:
            self._seed_defaults(collection)
        logger.info(f"Local database initialized at: {self.db_path}")

    def _seed_defaults(self, collection: str) -> None:
        key, factory = self.DEFAULT_COLLECTIONS[collection]
        if self.count(collection) > 0:
            return
        for record in factory():
            self.upsert(collection, record[key], record, sync_status="synced")
        logger.info(f"Seeded default records for {collection}")

    # =========================================================================
    # RECORD OPERATIONS
    # =========================================================================

    def upsert(
        self,
        collection: str,
        record_id: str,
        data: Dict[str, Any],
        sync_status: str = "pending",
    ) -> Dict[str, Any]:
        """
        Insert or replace a record.

        Args:
            collection: Collection name (e.g. "sales")
            record_id: Stable record identifier
            data: Full record document
            sync_status: 'pending' until the remote store confirms it

        Returns:
            The stored record
        """
        now = datetime.now().isoformat()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO records (collection, id, data_json, created_at, updated_at, sync_status)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(collection, id) DO UPDATE SET
                    data_json = excluded.data_json,
                    updated_at = excluded.updated_at,
                    sync_status = excluded.sync_status
                """,
                [collection, str(record_id), dumps(data), now, now, sync_status]
            )
        return data

    def update(
        self,
        collection: str,
        record_id: str,
        patch: Dict[str, Any],
        sync_status: str = "pending",
    ) -> Optional[Dict[str, Any]]:
        """
        Merge a patch into an existing record.

        Returns:
            The updated record, or None if it does not exist
        """
        existing = self.get_by_id(collection, record_id)
        if existing is None:
            return None

        existing.update(patch)
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE records SET data_json = ?, updated_at = ?, sync_status = ?
                WHERE collection = ? AND id = ?
                """,
                [dumps(existing), datetime.now().isoformat(), sync_status,
                 collection, str(record_id)]
            )
        return existing

    def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record. Returns True if something was removed."""
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                [collection, str(record_id)]
            )
            return cursor.rowcount > 0

    def get_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Get a record by ID."""
        row = self._get_connection().execute(
            "SELECT data_json FROM records WHERE collection = ? AND id = ?",
            [collection, str(record_id)]
        ).fetchone()
        return json.loads(row["data_json"]) if row else None

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        """All records of a collection in insertion order."""
        rows = self._get_connection().execute(
            "SELECT data_json FROM records WHERE collection = ? ORDER BY rowid ASC",
            [collection]
        ).fetchall()
        return [json.loads(row["data_json"]) for row in rows]

    def count(self, collection: str) -> int:
        row = self._get_connection().execute(
            "SELECT COUNT(*) AS count FROM records WHERE collection = ?",
            [collection]
        ).fetchone()
        return row["count"] if row else 0

    def get_sync_status(self, collection: str, record_id: str) -> Optional[str]:
        row = self._get_connection().execute(
            "SELECT sync_status FROM records WHERE collection = ? AND id = ?",
            [collection, str(record_id)]
        ).fetchone()
        return row["sync_status"] if row else None

    def get_pending_record_ids(self, collection: str) -> List[str]:
        rows = self._get_connection().execute(
            "SELECT id FROM records WHERE collection = ? AND sync_status = 'pending'",
            [collection]
        ).fetchall()
        return [row["id"] for row in rows]

    def mark_record_synced(self, collection: str, record_id: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE records SET sync_status = 'synced' WHERE collection = ? AND id = ?",
                [collection, str(record_id)]
            )

    def replace_all(
        self,
        collection: str,
        records: List[Dict[str, Any]],
        key: str = "id",
        keep_pending: bool = True,
        skip_ids: Optional[Set[str]] = None,
    ) -> int:
        """
        Mirror a collection from a fresh remote read.

        Records still waiting for sync are kept when ``keep_pending`` is set;
        remote records whose id is in ``skip_ids`` are not written.

        Returns:
            Number of records written
        """
        now = datetime.now().isoformat()
        skip_ids = skip_ids or set()
        records = [r for r in records if str(r[key]) not in skip_ids]
        with self.transaction() as conn:
            if keep_pending:
                conn.execute(
                    "DELETE FROM records WHERE collection = ? AND sync_status != 'pending'",
                    [collection]
                )
            else:
                conn.execute("DELETE FROM records WHERE collection = ?", [collection])

            for record in records:
                conn.execute(
                    """
                    INSERT INTO records (collection, id, data_json, created_at, updated_at, sync_status)
                    VALUES (?, ?, ?, ?, ?, 'synced')
                    ON CONFLICT(collection, id) DO NOTHING
                    """,
                    [collection, str(record[key]), dumps(record), now, now]
                )
        return len(records)

    def clear_collection(self, collection: str) -> int:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM records WHERE collection = ?", [collection])
            return cursor.rowcount

    # =========================================================================
    # SYNC QUEUE MANAGEMENT
    # =========================================================================

    def enqueue_operation(
        self,
        operation: str,
        table: str,
        record_id: Optional[str],
        data: Dict[str, Any],
    ) -> int:
        """Append an operation to the sync queue. Returns its queue id."""
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sync_queue (operation, table_name, record_id, data_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [operation, table, record_id, dumps(data), datetime.now().isoformat()]
            )
            return cursor.lastrowid

    def get_queued_operations(self, include_failed: bool = False) -> List[Dict]:
        """Queued operations in FIFO order."""
        statuses = ("pending", "failed") if include_failed else ("pending",)
        placeholders = ", ".join("?" for _ in statuses)
        rows = self._get_connection().execute(
            f"""
            SELECT * FROM sync_queue
            WHERE status IN ({placeholders})
            ORDER BY id ASC
            """,
            list(statuses)
        ).fetchall()
        return [
            {
                "queue_id": row["id"],
                "operation": row["operation"],
                "table": row["table_name"],
                "record_id": row["record_id"],
                "data": json.loads(row["data_json"]) if row["data_json"] else {},
                "created_at": row["created_at"],
                "attempts": row["attempts"],
                "status": row["status"],
                "error_message": row["error_message"],
            }
            for row in rows
        ]

    def remove_operation(self, queue_id: int) -> None:
        """Drop an operation confirmed by the remote store."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM sync_queue WHERE id = ?", [queue_id])

    def mark_operation_failed(self, queue_id: int, error: str, max_attempts: int) -> None:
        """Record a failed attempt; park the operation once max_attempts is reached."""
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE sync_queue
                SET attempts = attempts + 1,
                    last_attempt = ?,
                    error_message = ?,
                    status = CASE WHEN attempts + 1 >= ? THEN 'failed' ELSE 'pending' END
                WHERE id = ?
                """,
                [datetime.now().isoformat(), error, max_attempts, queue_id]
            )

    def count_operations(self, status: str = "pending") -> int:
        row = self._get_connection().execute(
            "SELECT COUNT(*) AS count FROM sync_queue WHERE status = ?",
            [status]
        ).fetchone()
        return row["count"] if row else 0

    def has_queued_operations(self, table: str, record_id: str) -> bool:
        row = self._get_connection().execute(
            """
            SELECT 1 FROM sync_queue
            WHERE table_name = ? AND record_id = ? AND status IN ('pending', 'failed')
            LIMIT 1
            """,
            [table, str(record_id)]
        ).fetchone()
        return row is not None

    def get_queued_record_ids(self, table: str) -> Set[str]:
        rows = self._get_connection().execute(
            """
            SELECT DISTINCT record_id FROM sync_queue
            WHERE table_name = ? AND record_id IS NOT NULL AND status IN ('pending', 'failed')
            """,
            [table]
        ).fetchall()
        return {row["record_id"] for row in rows}

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        row = self._get_connection().execute(
            "SELECT value FROM app_settings WHERE key = ?",
            [key]
        ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return row["value"]

    def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting (JSON encoded)."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, dumps(value), datetime.now().isoformat()]
            )

    def delete_setting(self, key: str) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM app_settings WHERE key = ?", [key])

    def close(self) -> None:
        """Close this thread's database connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None

