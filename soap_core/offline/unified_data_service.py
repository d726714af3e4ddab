# =============================================================================
# soap_core/offline/unified_data_service.py
# Unified Data Service - Single API for Online/Offline Operations
# =============================================================================
"""
UnifiedDataService - The primary API for all data operations.

This service provides a unified interface that automatically handles:
- Online mode: Supabase reads (cached) and writes
- Offline mode: cache, then local SQLite reads; local writes + sync queue
- Fallback when a remote call fails mid-session
- Automatic replay of queued writes when connectivity returns

Usage:
------
from soap_core.offline import get_data_service

service = get_data_service()

sales = service.list_sales()
sale = service.create_sale({"supermarket_id": sm_id, "quantity": 90, "price_per_unit": 180})
service.add_payment(sale.id, {"amount": 5000})

print(service.get_sync_status())
"""

from __future__ import annotations
import threading
from dataclasses import asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
import logging

from soap_core.analytics.business_logic import (
    DEFAULT_MAX_STOCK,
    calculate_sale_totals,
    is_valid_price_per_unit,
    stock_percentage,
)
from soap_core.config import (
    ENTITIES,
    FRAGRANCE_STOCK,
    ORDERS,
    SALES,
    STOCK_HISTORY,
    SUPERMARKETS,
    AppSettings,
    StorageConfig,
    load_settings,
)
from soap_core.data.geocoding import DEFAULT_COORDINATES, Geocoder
from soap_core.data.supabase_client import SupabaseStore, get_supabase_client
from soap_core.domain.models import (
    FragranceStock,
    Order,
    OrderStatus,
    Payment,
    PhoneNumber,
    Sale,
    StockHistoryEntry,
    StockMovementType,
    Supermarket,
    default_fragrance_records,
    new_id,
    parse_datetime,
    primary_key,
    to_model,
)
from soap_core.errors import (
    DataValidationError,
    InsufficientStockError,
    OfflineError,
    RecordNotFoundError,
    ReferentialIntegrityError,
    RemoteStoreError,
)
from soap_core.logging import setup_logging
from soap_core.offline.cache_manager import CacheManager
from soap_core.offline.connection_manager import ConnectivityMonitor, get_connection_manager
from soap_core.offline.local_database import LocalDatabase
from soap_core.offline.migration import MigrationRunner, MigrationSummary
from soap_core.offline.result import StorageResult
from soap_core.offline.sync_engine import DrainResult, OperationType, PendingOperation, SyncEngine

logger = logging.getLogger(__name__)

PAYMENT_TOLERANCE = 0.01

# Sort applied to every list() result: (field, descending)
SORT_KEYS = {
    SALES: ("date", True),
    ORDERS: ("date", True),
    STOCK_HISTORY: ("date", True),
    SUPERMARKETS: ("name", False),
    FRAGRANCE_STOCK: ("name", False),
}

# Running totals only sales may change
PROTECTED_SUPERMARKET_FIELDS = ("id", "total_sales", "total_value", "legacy_id")


def _coerce(model, data: Union[Any, Mapping[str, Any]]):
    """Accept either an entity instance or a plain mapping from the UI."""
    if isinstance(data, model):
        return data
    record = dict(data)
    key = "fragrance_id" if model is FragranceStock else "id"
    record.setdefault(key, new_id())
    return model.from_record(record)


def _validate_price(price_per_unit: float) -> None:
    if not is_valid_price_per_unit(price_per_unit):
        raise DataValidationError(
            f"Unknown price per unit: {price_per_unit:g} DA",
            field="price_per_unit",
            actual=price_per_unit,
        )


def _validate_sale_amounts(sale: Sale) -> None:
    """Cartons, total and balance must follow from quantity, price and payments."""
    totals = calculate_sale_totals(sale.quantity, sale.price_per_unit)
    if int(sale.cartons) != totals["cartons"]:
        raise DataValidationError(
            f"Sale of {sale.quantity} units is {totals['cartons']} cartons, not {sale.cartons}",
            field="cartons",
            expected=totals["cartons"],
            actual=sale.cartons,
        )
    if abs(float(sale.total_value) - totals["total_value"]) > PAYMENT_TOLERANCE:
        raise DataValidationError(
            "Total value does not match quantity x price",
            field="total_value",
            expected=totals["total_value"],
            actual=sale.total_value,
        )

    remaining = 0.0 if sale.is_paid else totals["total_value"] - sale.amount_paid
    if abs(float(sale.remaining_amount) - remaining) > PAYMENT_TOLERANCE:
        raise DataValidationError(
            "Remaining amount does not match total value less payments",
            field="remaining_amount",
            expected=round(remaining, 2),
            actual=sale.remaining_amount,
        )


class UnifiedDataService:
    """
    Hybrid storage facade over Supabase, a file cache and local SQLite.

    Reads:  remote (online) -> cache -> local
    Writes: local first, then remote; on failure or offline, queued
    """

    def __init__(
        self,
        local_db: LocalDatabase,
        remote: SupabaseStore,
        connection: ConnectivityMonitor,
        cache: CacheManager,
        config: Optional[StorageConfig] = None,
        sync_engine: Optional[SyncEngine] = None,
        geocoder: Optional[Geocoder] = None,
        max_stock: int = DEFAULT_MAX_STOCK,
    ):
        self.local_db = local_db
        self.remote = remote
        self.connection = connection
        self.cache = cache
        self.config = config or StorageConfig()
        self.sync_engine = sync_engine or SyncEngine(local_db)
        self.geocoder = geocoder
        self.max_stock = max_stock
        self.migration = MigrationRunner(local_db, remote, connection)
        self._stock_lock = threading.RLock()
        self._initialized = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.connection.is_online

    @property
    def pending_sync_count(self) -> int:
        return self.sync_engine.pending_count

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    def initialize(self) -> None:
        """Prepare local storage and replay queued work on reconnection."""
        if self._initialized:
            return

        self.local_db.initialize()
        self.connection.register_callback(self._on_connection_change)

        self._initialized = True
        logger.info(f"UnifiedDataService initialized. Online: {self.is_online}")

    def close(self) -> None:
        self.connection.unregister_callback(self._on_connection_change)
        self.local_db.close()

    def _on_connection_change(self, online: bool) -> None:
        """Handle connection status changes."""
        logger.info(f"Connection changed: online={online}")
        if online:
            self.sync_now()

    # =========================================================================
    # ROUTING
    # =========================================================================

    def _remote_configured(self, entity: str) -> bool:
        return self.config.uses_remote(entity) and self.remote.is_connected()

    def _sort(self, entity: str, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        field, descending = SORT_KEYS[entity]
        if field == "date":
            key = lambda r: parse_datetime(r.get("date")) or datetime.min
        else:
            key = lambda r: str(r.get(field) or "").casefold()
        return sorted(records, key=key, reverse=descending)

    def _fetch_remote(self, entity: str) -> List[Dict[str, Any]]:
        """
        Remote read; refreshes the local mirror and the cache.

        Records with queued operations keep their local version, so a read
        never hides a change that is still waiting for sync.
        """
        records = self.remote.list(entity)
        if entity == FRAGRANCE_STOCK and not records:
            self.remote.upsert_many(FRAGRANCE_STOCK, default_fragrance_records())
            records = self.remote.list(entity)

        queued = self.sync_engine.queued_record_ids(entity)
        self.local_db.replace_all(entity, records, key=primary_key(entity), skip_ids=queued)
        if queued:
            logger.debug(f"{len(queued)} {entity} records still queued, serving merged view")
            records = self.local_db.get_all(entity)

        self.cache.set(entity, records)
        return records

    def _read_cache(self, entity: str, failed: StorageResult) -> StorageResult:
        logger.warning(f"Remote read of {entity} unavailable ({failed.error}), trying cache")
        entry = self.cache.get(entity)
        if entry is None:
            return StorageResult.fail(f"No cached {entity}", error_code="CACHE_MISS", source="cache")
        logger.debug(f"Serving {entity} from cache ({entry.cached_at.isoformat()})")
        return StorageResult.ok(entry.value, source="cache")

    def _read_local(self, entity: str) -> StorageResult:
        return StorageResult.attempt(lambda: self.local_db.get_all(entity), source="local")

    def _list(self, entity: str) -> List[Dict[str, Any]]:
        """
        Read an entity list.

        1. remote when configured and online (result cached)
        2. cache when the remote read failed or we are offline
        3. local store when nothing is cached
        """
        if not self._remote_configured(entity):
            return self._sort(entity, self._read_local(entity).unwrap())

        if self.connection.is_online:
            result = StorageResult.attempt(lambda: self._fetch_remote(entity), source="remote")
        else:
            result = StorageResult.fail("Offline", error_code="OFFLINE", source="remote")

        records = (
            result
            .or_else(lambda failed: self._read_cache(entity, failed))
            .or_else(lambda failed: self._read_local(entity))
            .unwrap()
        )
        return self._sort(entity, records)

    def _find(self, entity: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Locate one record locally, falling back to a remote lookup."""
        record = self.local_db.get_by_id(entity, record_id)
        if record is not None or not self._remote_configured(entity) or not self.is_online:
            return record

        result = StorageResult.attempt(lambda: self.remote.get(entity, record_id), source="remote")
        if result.success and result.data is not None:
            self.local_db.upsert(entity, record_id, result.data, sync_status="synced")
            return result.data
        return None

    def _write(
        self,
        entity: str,
        op_type: OperationType,
        record_id: str,
        payload: Dict[str, Any],
        local_apply: Optional[Callable[[], Any]],
        remote_apply: Callable[[], Any],
        table: Optional[str] = None,
        force_local: bool = False,
    ) -> StorageResult:
        """
        Apply a mutation locally, then remotely or to the sync queue.

        Args:
            entity: Entity whose cache and local collection are affected
            op_type: create, update or delete
            record_id: Target record id
            payload: What the queue replays if the remote write cannot happen now
            local_apply: Local write, run first (None when already applied)
            remote_apply: Remote write
            table: Remote table when it differs from the entity (payments)
            force_local: Skip the remote attempt (an earlier step already failed)

        Returns:
            StorageResult whose source is "remote" or "local"
        """
        table = table or entity
        local_record = local_apply() if local_apply else None

        if not self.config.uses_remote(entity):
            return StorageResult.ok(local_record, source="local")

        if force_local or not self.remote.is_connected() or not self.is_online:
            result = StorageResult.fail("Remote store not reachable", error_code="OFFLINE", source="remote")
        elif self.sync_engine.must_wait(table, record_id, payload):
            result = StorageResult.fail("Earlier changes still queued", error_code="QUEUED", source="remote")
        else:
            result = StorageResult.attempt(remote_apply, source="remote")

        self.cache.invalidate(entity)

        if result.success:
            if op_type is not OperationType.DELETE and table == entity:
                self.local_db.mark_record_synced(entity, record_id)
            data = result.data if isinstance(result.data, dict) else local_record
            return StorageResult.ok(data, source="remote")

        logger.warning(f"{op_type.value} on {table} ({record_id}) kept locally: {result.error}")
        self.sync_engine.enqueue(op_type, table, record_id, payload)
        return StorageResult.ok(
            local_record,
            source="local",
            metadata={"queued": True, "reason": result.error},
        )

    def _create(self, entity: str, record: Dict[str, Any], force_local: bool = False) -> StorageResult:
        record_id = str(record[primary_key(entity)])
        result = self._write(
            entity,
            OperationType.CREATE,
            record_id,
            record,
            local_apply=lambda: self.local_db.upsert(entity, record_id, record),
            remote_apply=lambda: self.remote.create(entity, record),
            force_local=force_local,
        )
        if result.source == "remote" and result.data:
            # Remote-assigned fields win
            self.local_db.upsert(entity, record_id, result.data, sync_status="synced")
        return result

    def _push_update(self, entity: str, record_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Remote update; a missing remote row is recreated from the local record."""
        updated = self.remote.update(entity, record_id, patch)
        if updated is not None:
            return updated

        record = self.local_db.get_by_id(entity, record_id)
        if record is None:
            logger.warning(f"Update for {entity} ({record_id}) matched no remote or local row")
            return None
        logger.warning(f"No remote {entity} row {record_id}, upserting the local record")
        return self.remote.create(entity, record)

    def _update(
        self,
        entity: str,
        record_id: str,
        patch: Dict[str, Any],
        force_local: bool = False,
    ) -> StorageResult:
        if self.local_db.get_by_id(entity, record_id) is None:
            raise RecordNotFoundError(f"{entity} record not found", table=entity, record_id=record_id)

        result = self._write(
            entity,
            OperationType.UPDATE,
            record_id,
            patch,
            local_apply=lambda: self.local_db.update(entity, record_id, patch),
            remote_apply=lambda: self._push_update(entity, record_id, patch),
            force_local=force_local,
        )
        # The local copy holds the complete record either way
        return StorageResult.ok(self.local_db.get_by_id(entity, record_id), source=result.source,
                                metadata=result.metadata)

    def _delete(self, entity: str, record_id: str) -> StorageResult:
        return self._write(
            entity,
            OperationType.DELETE,
            record_id,
            {},
            local_apply=lambda: self.local_db.delete(entity, record_id),
            remote_apply=lambda: self.remote.delete(entity, record_id),
        )

    # =========================================================================
    # GENERIC ENTITY OPERATIONS
    # =========================================================================

    def list_records(self, entity: str) -> List[Any]:
        """list() for any entity, as dataclasses."""
        return [to_model(entity, r) for r in self._list(entity)]

    def create_record(self, entity: str, data: Mapping[str, Any]) -> Any:
        """Create without entity-specific rules (migration tools, fixtures)."""
        record = dict(data)
        record.setdefault(primary_key(entity), new_id())
        return to_model(entity, self._create(entity, record).data)

    def update_record(self, entity: str, record_id: str, patch: Mapping[str, Any]) -> Optional[Any]:
        if self._find(entity, record_id) is None:
            return None
        return to_model(entity, self._update(entity, record_id, dict(patch)).data)

    def delete_record(self, entity: str, record_id: str) -> bool:
        if self._find(entity, record_id) is None:
            return False
        self._delete(entity, record_id)
        return True

    # =========================================================================
    # SALES
    # =========================================================================

    def list_sales(self) -> List[Sale]:
        return [Sale.from_record(r) for r in self._list(SALES)]

    def create_sale(self, data: Union[Sale, Mapping[str, Any]]) -> Sale:
        """
        Record a sale, remove its stock and update the supermarket totals.

        Raises:
            DataValidationError: bad quantity, an unknown price tier, cartons or
                amounts that disagree with quantity and price, or a
                distribution that does not sum to the sale's cartons
            InsufficientStockError: a fragrance lacks the requested cartons
        """
        sale = _coerce(Sale, data)
        if sale.quantity <= 0:
            raise DataValidationError("Quantity must be positive", field="quantity", actual=sale.quantity)
        _validate_price(sale.price_per_unit)
        _validate_sale_amounts(sale)

        with self._stock_lock:
            distribution = sale.fragrance_distribution
            if distribution:
                self._validate_sale_distribution(sale.cartons, distribution)

            created = self._create(SALES, sale.to_record()).data

            if distribution:
                self.update_stock(
                    -sale.cartons,
                    StockMovementType.REMOVED,
                    f"Vente de {sale.cartons} cartons - {sale.date:%d/%m/%Y}",
                    {fid: -qty for fid, qty in distribution.items()},
                )

        self._adjust_supermarket_totals(sale.supermarket_id, sale.quantity, sale.total_value)
        logger.info(f"Recorded sale {sale.id}: {sale.quantity} units for {sale.total_value:.2f}")
        return Sale.from_record(created)

    def _validate_sale_distribution(self, cartons: int, distribution: Dict[str, int]) -> None:
        if any(qty < 0 for qty in distribution.values()):
            raise DataValidationError("Fragrance quantities cannot be negative", field="fragrance_distribution")

        total = sum(distribution.values())
        if total != cartons:
            raise DataValidationError(
                f"Fragrance distribution totals {total} cartons, sale has {cartons}",
                field="fragrance_distribution",
                expected=cartons,
                actual=total,
            )

        available = {f.fragrance_id: f for f in self.list_fragrance_stock()}
        for fragrance_id, qty in distribution.items():
            fragrance = available.get(fragrance_id)
            if fragrance is None:
                raise DataValidationError(f"Unknown fragrance '{fragrance_id}'", field="fragrance_distribution")
            if fragrance.quantity < qty:
                raise InsufficientStockError(
                    f"Not enough {fragrance.name}: {fragrance.quantity} available, {qty} requested",
                    fragrance_id=fragrance_id,
                    available=fragrance.quantity,
                    requested=qty,
                )

    def delete_sale(self, sale_id: str) -> bool:
        """Delete a sale and its payments, restoring any stock it removed."""
        record = self._find(SALES, sale_id)
        if record is None:
            return False
        sale = Sale.from_record(record)

        with self._stock_lock:
            self._delete(SALES, sale_id)
            if sale.fragrance_distribution:
                self.update_stock(
                    sale.cartons,
                    StockMovementType.ADDED,
                    f"Annulation de vente - {sale.date:%d/%m/%Y}",
                    dict(sale.fragrance_distribution),
                )

        self._adjust_supermarket_totals(sale.supermarket_id, -sale.quantity, -sale.total_value)
        return True

    def set_sale_paid(
        self,
        sale_id: str,
        is_paid: bool,
        payment_date: Optional[datetime] = None,
    ) -> Optional[Sale]:
        """Mark a sale paid in full, or reopen it."""
        record = self._find(SALES, sale_id)
        if record is None:
            return None
        sale = Sale.from_record(record)

        if is_paid:
            patch = {
                "is_paid": True,
                "remaining_amount": 0.0,
                "payment_date": (payment_date or datetime.now()).isoformat(),
            }
        else:
            patch = {
                "is_paid": False,
                "remaining_amount": float(sale.total_value - sale.amount_paid),
                "payment_date": None,
            }

        return Sale.from_record(self._update(SALES, sale_id, patch).data)

    def add_payment(
        self,
        sale_id: str,
        payment: Union[Payment, Mapping[str, Any]],
    ) -> Optional[Sale]:
        """
        Append a payment and recompute the sale balance.

        Raises:
            DataValidationError: non-positive amount, more than the balance,
                or a sale already marked paid
        """
        record = self._find(SALES, sale_id)
        if record is None:
            return None
        sale = Sale.from_record(record)
        payment = _coerce(Payment, payment)

        if payment.amount <= 0:
            raise DataValidationError("Payment amount must be positive", field="amount", actual=payment.amount)
        if sale.is_paid:
            raise DataValidationError("Sale is already paid", field="is_paid", actual=True)
        outstanding = sale.total_value - sale.amount_paid
        if payment.amount > outstanding + PAYMENT_TOLERANCE:
            raise DataValidationError(
                "Payment exceeds the remaining amount",
                field="amount",
                expected=round(outstanding, 2),
                actual=payment.amount,
            )

        sale.payments.append(payment)
        sale.recompute_balance(paid_on=payment.date)
        balance = {
            "remaining_amount": sale.remaining_amount,
            "is_paid": sale.is_paid,
            "payment_date": sale.payment_date.isoformat() if sale.payment_date else None,
        }

        payment_row = payment.to_record()
        payment_result = self._write(
            SALES,
            OperationType.CREATE,
            payment.id,
            {**payment_row, "sale_id": sale_id},
            local_apply=lambda: self.local_db.update(
                SALES, sale_id, {"payments": [p.to_record() for p in sale.payments], **balance}
            ),
            remote_apply=lambda: self.remote.add_payment(sale_id, payment_row),
            table=SupabaseStore.PAYMENTS_TABLE,
        )
        self._write(
            SALES,
            OperationType.UPDATE,
            sale_id,
            balance,
            local_apply=None,
            remote_apply=lambda: self._push_update(SALES, sale_id, balance),
            force_local=payment_result.source != "remote",
        )

        return Sale.from_record(self.local_db.get_by_id(SALES, sale_id))

    # =========================================================================
    # SUPERMARKETS
    # =========================================================================

    def list_supermarkets(self) -> List[Supermarket]:
        return [Supermarket.from_record(r) for r in self._list(SUPERMARKETS)]

    def _geocode(self, address: str):
        if self.geocoder is None:
            return DEFAULT_COORDINATES
        return self.geocoder.geocode(address)

    def _validate_phone_numbers(self, phones: List[PhoneNumber]) -> None:
        if not any(p.number and p.number.strip() for p in phones):
            raise DataValidationError("At least one phone number is required", field="phone_numbers")

    def create_supermarket(self, data: Union[Supermarket, Mapping[str, Any]]) -> Supermarket:
        """
        Register a supermarket, geocoding its address.

        Raises:
            DataValidationError: missing name, address or phone number
        """
        supermarket = _coerce(Supermarket, data)
        if not supermarket.name.strip():
            raise DataValidationError("Supermarket name is required", field="name")
        if not supermarket.address.strip():
            raise DataValidationError("Supermarket address is required", field="address")
        self._validate_phone_numbers(supermarket.phone_numbers)

        if supermarket.latitude is None or supermarket.longitude is None:
            supermarket.latitude, supermarket.longitude = self._geocode(supermarket.address)
        supermarket.total_sales = 0
        supermarket.total_value = 0.0

        created = self._create(SUPERMARKETS, supermarket.to_record()).data
        return Supermarket.from_record(created)

    def update_supermarket(self, supermarket_id: str, patch: Mapping[str, Any]) -> Optional[Supermarket]:
        """Edit contact details. Running totals are not editable here."""
        record = self._find(SUPERMARKETS, supermarket_id)
        if record is None:
            return None

        changes = {k: v for k, v in patch.items() if k not in PROTECTED_SUPERMARKET_FIELDS}
        if "phone_numbers" in changes:
            phones = [
                p if isinstance(p, PhoneNumber) else PhoneNumber(p.get("name", ""), p.get("number", ""))
                for p in changes["phone_numbers"]
            ]
            self._validate_phone_numbers(phones)
            changes["phone_numbers"] = [asdict(p) for p in phones]

        if changes.get("address") and changes["address"] != record.get("address") \
                and "latitude" not in changes:
            changes["latitude"], changes["longitude"] = self._geocode(changes["address"])

        if not changes:
            return Supermarket.from_record(record)
        return Supermarket.from_record(self._update(SUPERMARKETS, supermarket_id, changes).data)

    def delete_supermarket(self, supermarket_id: str) -> bool:
        """
        Delete a supermarket nobody references.

        Raises:
            ReferentialIntegrityError: sales or orders still point at it
        """
        if self._find(SUPERMARKETS, supermarket_id) is None:
            return False

        references = {
            SALES: sum(1 for r in self._list(SALES) if r.get("supermarket_id") == supermarket_id),
            ORDERS: sum(1 for r in self._list(ORDERS) if r.get("supermarket_id") == supermarket_id),
        }
        if any(references.values()):
            raise ReferentialIntegrityError(
                "Supermarket still has sales or orders",
                table=SUPERMARKETS,
                record_id=supermarket_id,
                references=references,
            )

        self._delete(SUPERMARKETS, supermarket_id)
        return True

    def _adjust_supermarket_totals(self, supermarket_id: str, quantity: int, value: float) -> None:
        record = self._find(SUPERMARKETS, supermarket_id)
        if record is None:
            logger.warning(f"Supermarket {supermarket_id} not found, totals not updated")
            return
        self._update(SUPERMARKETS, supermarket_id, {
            "total_sales": int(record.get("total_sales") or 0) + quantity,
            "total_value": float(record.get("total_value") or 0) + value,
        })

    # =========================================================================
    # ORDERS
    # =========================================================================

    def list_orders(self) -> List[Order]:
        return [Order.from_record(r) for r in self._list(ORDERS)]

    def create_order(self, data: Union[Order, Mapping[str, Any]]) -> Optional[Order]:
        order = _coerce(Order, data)
        if order.quantity <= 0:
            raise DataValidationError("Quantity must be positive", field="quantity", actual=order.quantity)
        _validate_price(order.price_per_unit)

        supermarket = self._find(SUPERMARKETS, order.supermarket_id)
        if supermarket is None:
            raise DataValidationError("Unknown supermarket", field="supermarket_id", actual=order.supermarket_id)

        order.supermarket_name = supermarket.get("name") or "Unknown"
        order.status = OrderStatus.PENDING
        return Order.from_record(self._create(ORDERS, order.to_record()).data)

    def delete_order(self, order_id: str) -> None:
        """Delete a pending order."""
        record = self._find(ORDERS, order_id)
        if record is None:
            raise RecordNotFoundError("Order not found", table=ORDERS, record_id=order_id)
        if record.get("status") != OrderStatus.PENDING.value:
            raise DataValidationError(
                "Only pending orders can be deleted",
                field="status",
                actual=record.get("status"),
            )
        self._delete(ORDERS, order_id)

    def complete_order(
        self,
        order_id: str,
        fragrance_distribution: Optional[Dict[str, int]] = None,
    ) -> Optional[Order]:
        """Deliver a pending order: records the sale, then flips the status."""
        record = self._find(ORDERS, order_id)
        if record is None:
            return None
        order = Order.from_record(record)
        if order.status is not OrderStatus.PENDING:
            raise DataValidationError(
                "Only pending orders can be completed",
                field="status",
                actual=order.status.value,
            )

        self.create_sale(Sale(
            supermarket_id=order.supermarket_id,
            quantity=order.quantity,
            price_per_unit=order.price_per_unit,
            fragrance_distribution=fragrance_distribution,
            from_order=True,
        ))
        updated = self._update(ORDERS, order_id, {"status": OrderStatus.DELIVERED.value}).data
        return Order.from_record(updated)

    # =========================================================================
    # STOCK
    # =========================================================================

    def list_stock_history(self, limit: Optional[int] = None) -> List[StockHistoryEntry]:
        entries = [StockHistoryEntry.from_record(r) for r in self._list(STOCK_HISTORY)]
        return entries[:limit] if limit else entries

    def list_fragrance_stock(self) -> List[FragranceStock]:
        return [FragranceStock.from_record(r) for r in self._list(FRAGRANCE_STOCK)]

    def get_current_stock(self) -> int:
        return sum(f.quantity for f in self.list_fragrance_stock())

    def get_stock_percentage(self) -> float:
        return stock_percentage(self.get_current_stock(), self.max_stock)

    def _distribute_evenly(self, delta: int, fragrance_ids: List[str]) -> Dict[str, int]:
        """Spread a delta over fragrances; the remainder goes to the first ones."""
        if not fragrance_ids or delta == 0:
            return {}
        sign = 1 if delta > 0 else -1
        base, remainder = divmod(abs(delta), len(fragrance_ids))
        spread = {}
        for index, fragrance_id in enumerate(sorted(fragrance_ids)):
            amount = base + (1 if index < remainder else 0)
            if amount:
                spread[fragrance_id] = sign * amount
        return spread

    def _normalize_stock_deltas(
        self,
        delta: int,
        movement: StockMovementType,
        fragrance_deltas: Optional[Mapping[str, int]],
        fragrance_ids: List[str],
    ) -> Dict[str, int]:
        if fragrance_deltas is None:
            return self._distribute_evenly(delta, fragrance_ids)

        deltas = {str(k): int(v) for k, v in fragrance_deltas.items() if int(v) != 0}
        # Removals are sometimes expressed with positive per-fragrance counts
        if movement is StockMovementType.REMOVED and all(v > 0 for v in deltas.values()):
            deltas = {k: -v for k, v in deltas.items()}

        total = sum(deltas.values())
        if total != delta:
            raise DataValidationError(
                f"Fragrance deltas total {total}, movement is {delta}",
                field="fragrance_distribution",
                expected=delta,
                actual=total,
            )
        return deltas

    def update_stock(
        self,
        delta: int,
        movement_type: Union[StockMovementType, str],
        reason: str,
        fragrance_deltas: Optional[Mapping[str, int]] = None,
    ) -> int:
        """
        Apply a stock movement and record it in the history.

        Order of writes: fragrance quantities, then the read-back total,
        then the history entry carrying that total. If the remote store
        fails part-way, the remaining steps go to local storage and the
        queue instead of the remote.

        Args:
            delta: Signed carton count (positive = added)
            movement_type: added, removed or adjusted
            reason: Free-text reason for the history
            fragrance_deltas: Signed carton count per fragrance id

        Returns:
            The new total stock in cartons
        """
        try:
            movement = StockMovementType(movement_type)
        except ValueError:
            raise DataValidationError(f"Unknown stock movement '{movement_type}'", field="type")

        delta = int(delta)
        if movement is StockMovementType.REMOVED and delta > 0:
            delta = -delta
        if movement is StockMovementType.ADDED and delta < 0:
            raise DataValidationError("Added stock must be positive", field="quantity", actual=delta)

        with self._stock_lock:
            fragrances = {f.fragrance_id: f for f in self.list_fragrance_stock()}
            deltas = self._normalize_stock_deltas(delta, movement, fragrance_deltas, list(fragrances))

            new_quantities = {}
            for fragrance_id, change in deltas.items():
                fragrance = fragrances.get(fragrance_id)
                if fragrance is None:
                    raise DataValidationError(f"Unknown fragrance '{fragrance_id}'", field="fragrance_distribution")
                if fragrance.quantity + change < 0:
                    raise InsufficientStockError(
                        f"Not enough {fragrance.name} in stock",
                        fragrance_id=fragrance_id,
                        available=fragrance.quantity,
                        requested=-change,
                    )
                new_quantities[fragrance_id] = fragrance.quantity + change

            # (a) fragrance levels
            all_remote = True
            for fragrance_id, quantity in new_quantities.items():
                result = self._update(
                    FRAGRANCE_STOCK, fragrance_id, {"quantity": quantity},
                    force_local=not all_remote,
                )
                all_remote = all_remote and result.source == "remote"

            # (b) read back the total from where the levels were written
            total = self._read_back_total(from_remote=all_remote)

            # (c) history entry with that total
            entry = StockHistoryEntry(
                quantity=delta,
                type=movement,
                reason=reason,
                current_stock=total,
                fragrance_distribution=deltas or None,
            )
            self._create(STOCK_HISTORY, entry.to_record(), force_local=not all_remote)

        logger.info(f"Stock {movement.value} {delta:+d} cartons, total now {total}")
        return total

    def _read_back_total(self, from_remote: bool) -> int:
        local_total = lambda failed=None: StorageResult.ok(
            sum(int(r.get("quantity") or 0) for r in self.local_db.get_all(FRAGRANCE_STOCK)),
            source="local",
        )
        if not from_remote or not self._remote_configured(FRAGRANCE_STOCK):
            return local_total().unwrap()

        return (
            StorageResult.attempt(
                lambda: sum(int(r.get("quantity") or 0) for r in self.remote.list(FRAGRANCE_STOCK)),
                source="remote",
            )
            .or_else(local_total)
            .unwrap()
        )

    def set_fragrance_stock(self, fragrance_id: str, quantity: int) -> Optional[FragranceStock]:
        """Set one fragrance's level; recorded as an adjustment in the history."""
        if int(quantity) < 0:
            raise DataValidationError("Stock cannot be negative", field="quantity", actual=quantity)

        with self._stock_lock:
            current = next((f for f in self.list_fragrance_stock() if f.fragrance_id == fragrance_id), None)
            if current is None:
                return None

            change = int(quantity) - current.quantity
            if change:
                self.update_stock(
                    change,
                    StockMovementType.ADJUSTED,
                    f"Ajustement manuel - {current.name}",
                    {fragrance_id: change},
                )

        record = self.local_db.get_by_id(FRAGRANCE_STOCK, fragrance_id)
        return FragranceStock.from_record(record) if record else None

    # =========================================================================
    # MIGRATION
    # =========================================================================

    def run_migration(self) -> MigrationSummary:
        summary = self.migration.run_full_migration()
        if summary.total_migrated:
            for entity in ENTITIES:
                self.cache.invalidate(entity)
        return summary

    def get_migration_status(self) -> Dict[str, bool]:
        return self.migration.get_status()

    def is_migration_needed(self) -> bool:
        return self.migration.is_migration_needed()

    def reset_migration_flags(self) -> None:
        self.migration.reset_flags()

    # =========================================================================
    # SYNC OPERATIONS
    # =========================================================================

    def _replay(self, op: PendingOperation) -> None:
        """Apply one queued operation to the remote store."""
        if op.table == SupabaseStore.PAYMENTS_TABLE:
            payment = {k: v for k, v in op.payload.items() if k != "sale_id"}
            self.remote.add_payment(op.payload["sale_id"], payment)
        elif op.type is OperationType.CREATE:
            self.remote.create(op.table, op.payload)
        elif op.type is OperationType.UPDATE:
            self._push_update(op.table, op.record_id, op.payload)
        elif op.type is OperationType.DELETE:
            self.remote.delete(op.table, op.record_id)

    def _refresh_sync_flags(self) -> None:
        for entity in ENTITIES:
            for record_id in self.local_db.get_pending_record_ids(entity):
                if not self.sync_engine.has_pending(entity, record_id):
                    self.local_db.mark_record_synced(entity, record_id)

    def sync_now(self, include_failed: bool = False) -> DrainResult:
        """
        Replay queued operations if online.

        Returns:
            DrainResult (skipped when offline or a drain is already running)
        """
        if not self.is_online or not self.remote.is_connected():
            logger.warning("Cannot sync: offline")
            return DrainResult(skipped=True)

        result = self.sync_engine.drain(self._replay, include_failed=include_failed)
        if result.synced:
            self._refresh_sync_flags()
            for entity in ENTITIES:
                self.cache.invalidate(entity)
        return result

    def force_sync(self) -> DrainResult:
        """
        Manual sync, including operations parked as failed.

        Raises:
            OfflineError: when not connected
        """
        if not self.is_online:
            raise OfflineError("Cannot sync while offline")
        if not self.remote.is_connected():
            raise RemoteStoreError("Supabase client not configured", operation="sync")
        return self.sync_now(include_failed=True)

    def get_sync_status(self) -> Dict[str, Any]:
        last_sync = self.sync_engine.last_sync
        return {
            "last_sync": last_sync.isoformat() if last_sync else None,
            "is_online": self.is_online,
            "pending": self.sync_engine.pending_count,
            "failed": self.sync_engine.failed_count,
            "is_syncing": self.sync_engine.is_syncing,
        }

    # =========================================================================
    # STATUS & DIAGNOSTICS
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """Get comprehensive status information for display."""
        status = {
            "sync": self.sync_engine.get_status_display(),
            "cache": self.cache.get_cache_stats(),
            "migration": self.get_migration_status(),
            "storage": asdict(self.config),
        }
        if hasattr(self.connection, "get_status_display"):
            status["connection"] = self.connection.get_status_display()
        return status


# Singleton accessor
_data_service: Optional[UnifiedDataService] = None
_service_lock = threading.Lock()


def create_data_service(settings: AppSettings) -> UnifiedDataService:
    """Wire every collaborator from resolved settings."""
    local_db = LocalDatabase(settings.db_path)
    client = get_supabase_client(settings.supabase_url, settings.supabase_key)
    connection = get_connection_manager(
        settings.supabase_url,
        settings.ping_url,
        timeout=settings.connection_timeout,
    )
    geocoder = None
    if settings.geocoding_enabled:
        geocoder = Geocoder(
            timeout=settings.geocoding_timeout,
            user_agent=settings.geocoding_user_agent,
        )

    service = UnifiedDataService(
        local_db=local_db,
        remote=SupabaseStore(client),
        connection=connection,
        cache=CacheManager(settings.cache_dir),
        config=settings.storage,
        geocoder=geocoder,
        max_stock=settings.max_stock,
    )
    service.initialize()
    return service


def get_data_service(settings: Optional[AppSettings] = None) -> UnifiedDataService:
    """
    Get the process-wide UnifiedDataService.

    Resolves settings and configures logging on first use.
    """
    global _data_service
    if _data_service is None:
        with _service_lock:
            if _data_service is None:
                settings = settings or load_settings()
                setup_logging(settings.log_level)
                _data_service = create_data_service(settings)
    return _data_service
