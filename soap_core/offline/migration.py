# =============================================================================
# soap_core/offline/migration.py
# One-time Migration of Legacy Local Data to Supabase
# =============================================================================
"""
MigrationRunner - copies the pre-Supabase local data into the remote store.

Each entity type migrates once, guarded by a persisted "done" flag:

    supermarkets -> sales (+ payments) -> orders -> stock_history -> fragrance_stock

Supermarkets go first because sales and orders need the mapping from the
legacy supermarket id to the remote one. Remote ids are derived from the
legacy ids, so re-running after a flag reset upserts the same rows again
instead of duplicating them.

No function here raises: every step reports a MigrationResult.
"""

from __future__ import annotations
import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from soap_core.config import FRAGRANCE_STOCK, ORDERS, SALES, STOCK_HISTORY, SUPERMARKETS
from soap_core.data.supabase_client import SupabaseStore
from soap_core.logging import LogContext
from soap_core.offline.connection_manager import ConnectivityMonitor
from soap_core.offline.local_database import LocalDatabase

logger = logging.getLogger(__name__)

# Persisted "done" flags
MIGRATION_FLAGS = {
    SUPERMARKETS: "supermarket_migration_done",
    SALES: "sales_migration_done",
    ORDERS: "orders_migration_done",
    STOCK_HISTORY: "stock_migration_done",
    FRAGRANCE_STOCK: "fragrance_stock_migration_done",
}
COMPLETE_FLAG = "full_migration_complete"

# Keys of the legacy browser export
LEGACY_EXPORT_KEYS = {
    SUPERMARKETS: "soap_supermarkets",
    SALES: "soap_sales",
    ORDERS: "soap_orders",
    STOCK_HISTORY: "soap_stock",
    FRAGRANCE_STOCK: "soap_fragrance_stock",
}

UNMATCHED_SETTING = "migration_unmatched"

# Namespace for ids derived from legacy ids
LEGACY_NAMESPACE = uuid.UUID("6f1c9a52-3d4b-4e0a-9b8e-2c7d5a1f0e44")

ENTITY_LABELS = {
    SUPERMARKETS: "supermarkets",
    SALES: "sales",
    ORDERS: "orders",
    STOCK_HISTORY: "stock entries",
    FRAGRANCE_STOCK: "fragrance stocks",
}

ALREADY_DONE_LABELS = {
    SUPERMARKETS: "Supermarkets",
    SALES: "Sales",
    ORDERS: "Orders",
    STOCK_HISTORY: "Stock",
    FRAGRANCE_STOCK: "Fragrance stock",
}


@dataclass
class MigrationResult:
    """Outcome of migrating one entity type."""
    success: bool
    migrated: int = 0
    errors: int = 0
    message: str = ""


@dataclass
class MigrationSummary:
    """Outcome of a full migration run."""
    success: bool
    results: Dict[str, MigrationResult] = field(default_factory=dict)
    total_migrated: int = 0
    total_errors: int = 0


def legacy_collection(entity: str) -> str:
    """Local collection holding an entity's legacy records."""
    return f"legacy_{entity}"


def stable_id(entity: str, legacy_id: Any) -> str:
    """Remote id for a legacy record; legacy UUIDs are kept as they are."""
    value = str(legacy_id)
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return str(uuid.uuid5(LEGACY_NAMESPACE, f"{entity}:{value}"))


def _normalize(text: Optional[str]) -> str:
    return " ".join((text or "").split()).casefold()


def _name_address_key(record: Dict[str, Any]) -> Tuple[str, str]:
    return _normalize(record.get("name")), _normalize(record.get("address"))


class MigrationRunner:
    """
    One-time legacy migration.

    Usage:
        runner = MigrationRunner(local_db, remote, connection)
        runner.load_legacy_export("soap_export.json")
        summary = runner.run_full_migration()
    """

    def __init__(
        self,
        local_db: LocalDatabase,
        remote: SupabaseStore,
        connection: ConnectivityMonitor,
    ):
        self.local_db = local_db
        self.remote = remote
        self.connection = connection

    # =========================================================================
    # LEGACY DATA
    # =========================================================================

    def load_legacy_export(self, path: Path) -> Dict[str, int]:
        """
        Load a legacy JSON export into the local legacy collections.

        Args:
            path: JSON file whose keys are the legacy storage keys
                  (``soap_sales``, ``soap_supermarkets``, ...)

        Returns:
            Number of records loaded per entity
        """
        with open(path, "r", encoding="utf-8") as f:
            export = json.load(f)

        loaded = {}
        for entity, key in LEGACY_EXPORT_KEYS.items():
            records = export.get(key) or []
            if isinstance(records, str):
                records = json.loads(records)
            loaded[entity] = self.load_legacy_records(entity, records)

        logger.info(f"Loaded legacy export {path}: {loaded}")
        return loaded

    def load_legacy_records(self, entity: str, records: List[Dict[str, Any]]) -> int:
        """Replace the legacy collection of one entity."""
        collection = legacy_collection(entity)
        self.local_db.clear_collection(collection)
        id_field = "fragranceId" if entity == FRAGRANCE_STOCK else "id"
        for index, record in enumerate(records):
            record_id = record.get(id_field) or f"{entity}-{index}"
            self.local_db.upsert(collection, str(record_id), record, sync_status="synced")
        return len(records)

    def _legacy(self, entity: str) -> List[Dict[str, Any]]:
        return self.local_db.get_all(legacy_collection(entity))

    # =========================================================================
    # FLAGS & STATUS
    # =========================================================================

    def _is_done(self, flag: str) -> bool:
        return bool(self.local_db.get_setting(flag, False))

    def _mark_done(self, flag: str) -> None:
        self.local_db.set_setting(flag, True)

    def get_status(self) -> Dict[str, bool]:
        """Per-entity migration flags plus the overall completion flag."""
        status = {"is_complete": self._is_done(COMPLETE_FLAG)}
        for entity, flag in MIGRATION_FLAGS.items():
            status[entity] = self._is_done(flag)
        return status

    def is_migration_needed(self) -> bool:
        """True while legacy data exists and the full migration has not run."""
        if self._is_done(COMPLETE_FLAG):
            return False
        return any(self.local_db.count(legacy_collection(e)) > 0 for e in MIGRATION_FLAGS)

    def reset_flags(self) -> None:
        """Clear every migration flag (testing and manual re-runs)."""
        for flag in list(MIGRATION_FLAGS.values()) + [COMPLETE_FLAG]:
            self.local_db.delete_setting(flag)
        logger.info("Migration flags reset")

    def get_unmatched(self) -> List[Dict[str, Any]]:
        """Legacy sales/orders whose supermarket could not be resolved."""
        return self.local_db.get_setting(UNMATCHED_SETTING, []) or []

    # =========================================================================
    # ENTITY MIGRATIONS
    # =========================================================================

    def _run_entity(
        self,
        entity: str,
        migrate_one: Callable[[Dict[str, Any]], bool],
        prepare: Optional[Callable[[], None]] = None,
    ) -> MigrationResult:
        """
        Shared per-entity protocol.

        ``migrate_one`` returns False for a record skipped as an error and
        raises on a remote failure; both count as one error and the batch
        continues.
        """
        flag = MIGRATION_FLAGS[entity]
        label = ENTITY_LABELS[entity]

        if self._is_done(flag):
            return MigrationResult(True, 0, 0, f"{ALREADY_DONE_LABELS[entity]} already migrated")

        if not self.connection.is_online or not self.remote.is_connected():
            return MigrationResult(False, 0, 0, f"Cannot migrate {label} while offline")

        legacy = self._legacy(entity)
        if not legacy:
            self._mark_done(flag)
            return MigrationResult(True, 0, 0, f"No {label} to migrate")

        migrated = 0
        errors = 0
        try:
            if prepare is not None:
                prepare()
            for record in legacy:
                try:
                    ok = migrate_one(record)
                except Exception as e:
                    logger.error(f"Failed to migrate {entity} record {record.get('id')}: {e}")
                    ok = False
                if ok:
                    migrated += 1
                else:
                    errors += 1
        except Exception as e:
            logger.error(f"{label.capitalize()} migration error: {e}")
            return MigrationResult(False, migrated, errors + 1, f"{ALREADY_DONE_LABELS[entity]} migration failed")

        self._mark_done(flag)
        message = f"Migrated {migrated} {label}"
        if errors:
            message += f" with {errors} errors"
        return MigrationResult(True, migrated, errors, message)

    def migrate_supermarkets(self) -> MigrationResult:
        existing: Dict[str, Any] = {}

        def prepare():
            remote = self.remote.list(SUPERMARKETS)
            existing["by_legacy"] = {r["legacy_id"]: r for r in remote if r.get("legacy_id")}
            existing["by_key"] = {_name_address_key(r): r for r in remote}

        def migrate_one(old: Dict[str, Any]) -> bool:
            legacy_id = str(old.get("id"))
            match = existing["by_legacy"].get(legacy_id) or existing["by_key"].get(_name_address_key(old))
            location = old.get("location") or {}
            record = {
                "id": match["id"] if match else stable_id(SUPERMARKETS, legacy_id),
                "name": old.get("name", ""),
                "address": old.get("address", ""),
                "latitude": location.get("lat"),
                "longitude": location.get("lng"),
                "email": old.get("email") or None,
                "phone_numbers": old.get("phoneNumbers") or [],
                "total_sales": int(old.get("totalSales") or 0),
                "total_value": float(old.get("totalValue") or 0),
                "legacy_id": legacy_id,
            }
            self.remote.create(SUPERMARKETS, record)
            return True

        return self._run_entity(SUPERMARKETS, migrate_one, prepare)

    def _supermarket_mapping(self) -> Dict[str, str]:
        """
        Legacy supermarket id -> remote id.

        Matches on the carried legacy id first, then on normalised
        (name, address).
        """
        remote = self.remote.list(SUPERMARKETS)
        by_legacy = {str(r["legacy_id"]): r["id"] for r in remote if r.get("legacy_id")}
        by_key = {_name_address_key(r): r["id"] for r in remote}

        mapping = {}
        for old in self._legacy(SUPERMARKETS):
            legacy_id = str(old.get("id"))
            remote_id = by_legacy.get(legacy_id) or by_key.get(_name_address_key(old))
            if remote_id:
                mapping[legacy_id] = remote_id
        return mapping

    def _record_unmatched(self, entity: str, old: Dict[str, Any]) -> None:
        unmatched = [
            u for u in self.get_unmatched()
            if not (u["entity"] == entity and u["legacy_id"] == str(old.get("id")))
        ]
        unmatched.append({
            "entity": entity,
            "legacy_id": str(old.get("id")),
            "supermarket_id": old.get("supermarketId"),
        })
        self.local_db.set_setting(UNMATCHED_SETTING, unmatched)
        logger.warning(f"No remote supermarket found for {entity} {old.get('id')}")

    def migrate_sales(self) -> MigrationResult:
        mapping: Dict[str, str] = {}

        def prepare():
            mapping.update(self._supermarket_mapping())

        def migrate_one(sale: Dict[str, Any]) -> bool:
            supermarket_id = mapping.get(str(sale.get("supermarketId")))
            if not supermarket_id:
                self._record_unmatched(SALES, sale)
                return False

            sale_id = stable_id(SALES, sale["id"])
            record = {
                "id": sale_id,
                "supermarket_id": supermarket_id,
                "date": sale.get("date"),
                "quantity": sale.get("quantity"),
                "cartons": sale.get("cartons"),
                "price_per_unit": sale.get("pricePerUnit"),
                "total_value": sale.get("totalValue"),
                "is_paid": bool(sale.get("isPaid")),
                "payment_date": sale.get("paymentDate") or None,
                "payment_note": sale.get("paymentNote") or None,
                "expected_payment_date": sale.get("expectedPaymentDate") or None,
                "remaining_amount": sale.get("remainingAmount"),
                "from_order": bool(sale.get("fromOrder")),
                "note": sale.get("note") or None,
                "fragrance_distribution": sale.get("fragranceDistribution") or None,
            }
            self.remote.create(SALES, record)

            # Payments follow their sale; a failure here does not undo the sale
            for payment in sale.get("payments") or []:
                try:
                    self.remote.add_payment(sale_id, {
                        "id": stable_id("payments", payment["id"]),
                        "date": payment.get("date"),
                        "amount": payment.get("amount"),
                        "note": payment.get("note") or None,
                    })
                except Exception as e:
                    logger.error(f"Failed to migrate payments for sale {sale['id']}: {e}")
            return True

        return self._run_entity(SALES, migrate_one, prepare)

    def migrate_orders(self) -> MigrationResult:
        mapping: Dict[str, str] = {}

        def prepare():
            mapping.update(self._supermarket_mapping())

        def migrate_one(order: Dict[str, Any]) -> bool:
            supermarket_id = mapping.get(str(order.get("supermarketId")))
            if not supermarket_id:
                self._record_unmatched(ORDERS, order)
                return False

            self.remote.create(ORDERS, {
                "id": stable_id(ORDERS, order["id"]),
                "supermarket_id": supermarket_id,
                "date": order.get("date"),
                "quantity": order.get("quantity"),
                "status": order.get("status") or "pending",
                "price_per_unit": order.get("pricePerUnit"),
            })
            return True

        return self._run_entity(ORDERS, migrate_one, prepare)

    def migrate_stock_history(self) -> MigrationResult:
        def migrate_one(entry: Dict[str, Any]) -> bool:
            self.remote.create(STOCK_HISTORY, {
                "id": stable_id(STOCK_HISTORY, entry["id"]),
                "date": entry.get("date"),
                "quantity": entry.get("quantity"),
                "type": entry.get("type"),
                "reason": entry.get("reason"),
                "current_stock": entry.get("currentStock"),
                "fragrance_distribution": entry.get("fragranceDistribution") or None,
            })
            return True

        return self._run_entity(STOCK_HISTORY, migrate_one)

    def migrate_fragrance_stock(self) -> MigrationResult:
        # Upsert: the remote table may already hold the seeded defaults
        def migrate_one(fragrance: Dict[str, Any]) -> bool:
            self.remote.create(FRAGRANCE_STOCK, {
                "fragrance_id": str(fragrance["fragranceId"]),
                "name": fragrance.get("name"),
                "quantity": int(fragrance.get("quantity") or 0),
                "color": fragrance.get("color"),
            })
            return True

        return self._run_entity(FRAGRANCE_STOCK, migrate_one)

    # =========================================================================
    # ORCHESTRATION
    # =========================================================================

    def run_full_migration(self) -> MigrationSummary:
        """
        Run every entity migration in dependency order.

        The completion flag is set once all five have run, whatever their
        error counts. Nothing is flagged while offline.
        """
        if self._is_done(COMPLETE_FLAG):
            return MigrationSummary(success=True)

        if not self.connection.is_online or not self.remote.is_connected():
            logger.warning("Migration postponed: remote store not reachable")
            return MigrationSummary(success=False, total_errors=1)

        steps = (
            (SUPERMARKETS, self.migrate_supermarkets),
            (SALES, self.migrate_sales),
            (ORDERS, self.migrate_orders),
            (STOCK_HISTORY, self.migrate_stock_history),
            (FRAGRANCE_STOCK, self.migrate_fragrance_stock),
        )

        summary = MigrationSummary(success=True)
        with LogContext(logger, "Full legacy migration"):
            for entity, step in steps:
                result = step()
                summary.results[entity] = result
                summary.total_migrated += result.migrated
                summary.total_errors += result.errors
                logger.info(f"{entity}: {result.message}")

        if all(r.success for r in summary.results.values()):
            self._mark_done(COMPLETE_FLAG)
        else:
            summary.success = False

        logger.info(
            f"Migration completed: {summary.total_migrated} migrated, "
            f"{summary.total_errors} errors"
        )
        return summary
