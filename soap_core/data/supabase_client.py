# =============================================================================
# soap_core/data/supabase_client.py
# Supabase Client Configuration and Remote Store
# Handles database connections and CRUD operations per entity
# =============================================================================

from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional
import logging

from supabase import Client, create_client

from soap_core.domain.models import primary_key
from soap_core.errors import RemoteStoreError

logger = logging.getLogger(__name__)


def get_supabase_client(url: Optional[str], key: Optional[str]) -> Optional[Client]:
    """
    Create a Supabase client from resolved settings.

    Args:
        url: Project URL (https://your-project.supabase.co)
        key: Anon or service key

    Returns:
        Supabase client instance or None if not configured
    """
    if not url or not key:
        logger.warning("Supabase credentials not found; remote store disabled")
        return None

    try:
        return create_client(url, key)
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}")
        return None


class SupabaseStore:
    """
    CRUD against the remote tables, one table per entity plus ``payments``.

    Every failure is raised as RemoteStoreError so the data service can
    fall back to cache or local storage.
    """

    PAGE_SIZE = 1000
    PAYMENTS_TABLE = "payments"

    # Joined selects that denormalize related rows
    SELECTS = {
        "sales": "*, payments (*)",
        "orders": "*, supermarkets (name)",
    }

    # (column, descending)
    ORDERING = {
        "sales": ("date", True),
        "orders": ("date", True),
        "stock_history": ("date", True),
        "supermarkets": ("name", False),
        "fragrance_stock": ("name", False),
    }

    # Fields present on local records but not stored in the entity's table
    DERIVED_FIELDS = {
        "sales": ("payments",),
        "orders": ("supermarket_name",),
    }

    def __init__(self, client: Optional[Client]):
        self.client = client

    def is_connected(self) -> bool:
        """Check if a Supabase client is available."""
        return self.client is not None

    def _execute(self, table: str, operation: str, build: Callable[[Client], Any]):
        if self.client is None:
            raise RemoteStoreError("Supabase client not configured", table=table, operation=operation)
        try:
            return build(self.client).execute()
        except RemoteStoreError:
            raise
        except Exception as e:
            raise RemoteStoreError(
                f"Supabase {operation} on {table} failed: {e}",
                table=table,
                operation=operation,
            ) from e

    # =========================================================================
    # ROW SHAPING
    # =========================================================================

    def _to_row(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]:
        derived = self.DERIVED_FIELDS.get(entity, ())
        return {k: v for k, v in record.items() if k not in derived}

    def _from_row(self, entity: str, row: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(row)
        if entity == "orders":
            supermarket = record.pop("supermarkets", None) or {}
            record["supermarket_name"] = supermarket.get("name") or "Unknown"
        elif entity == "sales":
            record["payments"] = [
                {k: v for k, v in p.items() if k != "sale_id"}
                for p in record.get("payments") or []
            ]
        return record

    # =========================================================================
    # READS
    # =========================================================================

    def list(self, entity: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Fetch all rows of an entity (pages through the 1000 row limit).

        Args:
            entity: Entity name
            limit: Optional maximum number of rows

        Returns:
            Records in the local record shape
        """
        select = self.SELECTS.get(entity, "*")
        order_column, descending = self.ORDERING.get(entity, ("id", False))
        all_rows: List[Dict[str, Any]] = []
        offset = 0

        while True:
            batch_size = self.PAGE_SIZE
            if limit is not None:
                batch_size = min(batch_size, limit - len(all_rows))
                if batch_size <= 0:
                    break

            response = self._execute(
                entity,
                "select",
                lambda c: c.table(entity)
                .select(select)
                .order(order_column, desc=descending)
                .range(offset, offset + batch_size - 1),
            )
            rows = response.data or []
            all_rows.extend(rows)
            if len(rows) < batch_size:
                break
            offset += batch_size

        logger.debug(f"Fetched {len(all_rows)} rows from Supabase: {entity}")
        return [self._from_row(entity, row) for row in all_rows]

    def get(self, entity: str, record_id: str) -> Optional[Dict[str, Any]]:
        key = primary_key(entity)
        select = self.SELECTS.get(entity, "*")
        response = self._execute(
            entity,
            "select",
            lambda c: c.table(entity).select(select).eq(key, record_id).limit(1),
        )
        rows = response.data or []
        return self._from_row(entity, rows[0]) if rows else None

    # =========================================================================
    # WRITES
    # =========================================================================

    def create(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a record under its client-generated id.

        Upsert on the primary key, so replaying the same create never
        duplicates the row. A sale's payments are written right after it.

        Returns:
            The remote-confirmed record
        """
        key = primary_key(entity)
        row = self._to_row(entity, record)
        response = self._execute(
            entity,
            "insert",
            lambda c: c.table(entity).upsert(row, on_conflict=key),
        )

        created = dict(record)
        if response.data:
            created.update(self._from_row(entity, response.data[0]))

        if entity == "sales":
            created["payments"] = [
                self.add_payment(record[key], payment)
                for payment in record.get("payments") or []
            ]
        return created

    def update(self, entity: str, record_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update columns of one record.

        Returns:
            The updated row, or None if nothing matched
        """
        key = primary_key(entity)
        row = self._to_row(entity, patch)
        if not row:
            return self.get(entity, record_id)

        response = self._execute(
            entity,
            "update",
            lambda c: c.table(entity).update(row).eq(key, record_id),
        )
        rows = response.data or []
        return self._from_row(entity, rows[0]) if rows else None

    def delete(self, entity: str, record_id: str) -> bool:
        """Delete one record; a sale's payments go with it."""
        key = primary_key(entity)
        if entity == "sales":
            self._execute(
                self.PAYMENTS_TABLE,
                "delete",
                lambda c: c.table(self.PAYMENTS_TABLE).delete().eq("sale_id", record_id),
            )
        self._execute(
            entity,
            "delete",
            lambda c: c.table(entity).delete().eq(key, record_id),
        )
        return True

    def add_payment(self, sale_id: str, payment: Dict[str, Any]) -> Dict[str, Any]:
        """Write one payment row for a sale (idempotent on the payment id)."""
        row = dict(payment)
        row["sale_id"] = sale_id
        response = self._execute(
            self.PAYMENTS_TABLE,
            "insert",
            lambda c: c.table(self.PAYMENTS_TABLE).upsert(row, on_conflict="id"),
        )
        saved = dict(payment)
        if response.data:
            saved.update({k: v for k, v in response.data[0].items() if k != "sale_id"})
        return saved

    def upsert_many(self, entity: str, records: List[Dict[str, Any]]) -> int:
        """Bulk upsert on the primary key. Returns the number of rows sent."""
        if not records:
            return 0
        key = primary_key(entity)
        rows = [self._to_row(entity, r) for r in records]
        self._execute(
            entity,
            "upsert",
            lambda c: c.table(entity).upsert(rows, on_conflict=key),
        )
        return len(rows)
