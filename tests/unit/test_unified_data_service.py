# =============================================================================
# tests/unit/test_unified_data_service.py
# Unit Tests for UnifiedDataService
# =============================================================================

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from soap_core.config import AppSettings, StorageConfig
from soap_core.domain.models import OrderStatus, StockMovementType
from soap_core.errors import (
    DataValidationError,
    InsufficientStockError,
    OfflineError,
    RecordNotFoundError,
    ReferentialIntegrityError,
    RemoteStoreError,
)
from soap_core.offline import unified_data_service
from soap_core.offline.local_database import LocalDatabase


# =============================================================================
# HELPERS
# =============================================================================

@pytest.fixture
def supermarket(service, supermarket_data):
    return service.create_supermarket(supermarket_data)


@pytest.fixture
def stocked(service):
    """Five cartons of every fragrance"""
    service.update_stock(40, "added", "Réception fournisseur")
    return service


def local_fragrance_total(local_db):
    return sum(r["quantity"] for r in local_db.get_all("fragrance_stock"))


def remote_fragrance_total(remote):
    return sum(r["quantity"] for r in remote.tables["fragrance_stock"].values())


def latest_remote_history(remote):
    return list(remote.tables["stock_history"].values())[-1]


# =============================================================================
# READS
# =============================================================================

class TestReadRouting:
    """Test remote -> cache -> local read order"""

    def test_online_read_is_cached(self, service, remote, cache, supermarket):
        """A remote list() refreshes the cache and the local mirror"""
        names = [s.name for s in service.list_supermarkets()]

        assert names == ["Uno Bab Ezzouar"]
        assert cache.get("supermarkets").value[0]["id"] == supermarket.id
        assert ("select", "supermarkets") in remote.calls

    def test_offline_read_prefers_cache(self, service, connectivity, local_db, supermarket):
        """Offline with a cached read: the cache wins over local data"""
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        service.list_sales()

        connectivity.set_online(False)
        local_db.upsert("sales", "local-only", {
            "id": "local-only", "supermarket_id": supermarket.id,
            "quantity": 18, "price_per_unit": 166,
        })

        assert [s.id for s in service.list_sales()] == [sale.id]

    def test_remote_failure_falls_back_to_cache(self, service, remote, supermarket):
        service.list_supermarkets()
        remote.fail_on.add("select")

        assert [s.id for s in service.list_supermarkets()] == [supermarket.id]

    def test_no_cache_falls_back_to_local(self, service, connectivity, cache, supermarket):
        """Without a cache entry the local store answers"""
        cache.clear_all()
        connectivity.set_online(False)

        assert [s.id for s in service.list_supermarkets()] == [supermarket.id]

    def test_lists_sorted(self, service, supermarket):
        service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180,
                             "date": "2024-01-10T10:00:00"})
        service.create_sale({"supermarket_id": supermarket.id, "quantity": 18, "price_per_unit": 166,
                             "date": "2024-03-10T10:00:00"})

        dates = [s.date for s in service.list_sales()]

        assert dates == sorted(dates, reverse=True)

    def test_queued_local_changes_visible_online(self, service, connectivity, remote, supermarket):
        """Records with queued writes keep their local version on a remote read"""
        connectivity.set_online(False)
        service.update_supermarket(supermarket.id, {"email": "contact@uno.dz"})
        remote.fail_on.add("update")
        connectivity.set_online(True)

        listed = service.list_supermarkets()

        assert listed[0].email == "contact@uno.dz"
        assert remote.tables["supermarkets"][supermarket.id]["email"] is None

    def test_empty_remote_fragrances_seeded(self, service, remote):
        """An empty remote fragrance table gets the eight defaults"""
        fragrances = service.list_fragrance_stock()

        assert len(fragrances) == 8
        assert len(remote.tables["fragrance_stock"]) == 8


# =============================================================================
# WRITES & DURABILITY
# =============================================================================

class TestWrites:
    """Test write routing and queueing"""

    def test_sale_durable_before_return(self, service, connectivity, local_db, supermarket):
        """A created sale is in SQLite when create_sale returns, online or not"""
        online_sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        connectivity.set_online(False)
        offline_sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 18, "price_per_unit": 166})

        reopened = LocalDatabase(local_db.db_path)
        reopened.initialize()

        assert reopened.get_by_id("sales", online_sale.id)["quantity"] == 9
        assert reopened.get_by_id("sales", offline_sale.id)["quantity"] == 18
        reopened.close()

    def test_offline_write_is_queued(self, service, connectivity, remote, supermarket):
        connectivity.set_online(False)

        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})

        assert service.pending_sync_count == 2
        assert sale.id not in remote.tables.get("sales", {})

    def test_remote_failure_is_queued(self, service, remote, supermarket):
        """A failed remote insert is kept locally and replayed later"""
        remote.fail_on.add("insert")
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})

        assert service.pending_sync_count == 1

        remote.fail_on.clear()
        result = service.sync_now()

        assert result.synced == 1
        assert remote.tables["sales"][sale.id]["quantity"] == 9
        assert service.pending_sync_count == 0

    def test_replay_does_not_duplicate(self, service, connectivity, remote, local_db, supermarket):
        """Replaying a create the remote already holds leaves one row"""
        connectivity.set_online(False)
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        remote.create("sales", local_db.get_by_id("sales", sale.id))

        connectivity.set_online(True)

        assert len(remote.tables["sales"]) == 1
        assert service.pending_sync_count == 0

    def test_local_only_entities_never_touch_remote(self, local_service, remote, supermarket_data):
        supermarket = local_service.create_supermarket(supermarket_data)
        local_service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        local_service.update_stock(16, "added", "Réception")

        assert remote.calls == []
        assert local_service.pending_sync_count == 0
        assert local_service.get_current_stock() == 16

    def test_generic_operations(self, service):
        entry = service.create_record("stock_history", {
            "quantity": 1, "type": "adjusted", "reason": "Inventaire", "current_stock": 1,
        })

        assert service.update_record("stock_history", entry.id, {"reason": "Inventaire annuel"}).reason == \
            "Inventaire annuel"
        assert service.update_record("stock_history", "missing", {"reason": "x"}) is None
        assert service.delete_record("stock_history", entry.id) is True
        assert service.delete_record("stock_history", entry.id) is False


# =============================================================================
# SALES & PAYMENTS
# =============================================================================

class TestSales:
    """Test sale rules"""

    def test_sale_updates_supermarket_totals(self, service, supermarket):
        service.create_sale({"supermarket_id": supermarket.id, "quantity": 45, "price_per_unit": 180})

        updated = service.list_supermarkets()[0]

        assert updated.total_sales == 45
        assert updated.total_value == 8100

    def test_invalid_distribution_rejected_before_stock_change(self, stocked, remote, supermarket):
        """Cartons 5 with a distribution summing to 4 changes nothing"""
        history_before = len(remote.tables["stock_history"])

        with pytest.raises(DataValidationError):
            stocked.create_sale({
                "supermarket_id": supermarket.id, "quantity": 45, "price_per_unit": 180,
                "fragrance_distribution": {"1": 2, "2": 2},
            })

        assert len(remote.tables["stock_history"]) == history_before
        assert remote_fragrance_total(remote) == 40
        assert not remote.tables.get("sales")

    def test_sale_removes_distributed_stock(self, stocked, remote, supermarket):
        sale = stocked.create_sale({
            "supermarket_id": supermarket.id, "quantity": 45, "price_per_unit": 180,
            "fragrance_distribution": {"1": 3, "2": 2},
        })

        levels = {f.fragrance_id: f.quantity for f in stocked.list_fragrance_stock()}
        entry = latest_remote_history(remote)

        assert levels["1"] == 2
        assert levels["2"] == 3
        assert stocked.get_current_stock() == 35
        assert entry["type"] == "removed"
        assert entry["quantity"] == -5
        assert entry["reason"] == f"Vente de 5 cartons - {sale.date:%d/%m/%Y}"

    def test_insufficient_fragrance_stock(self, stocked, remote, supermarket):
        with pytest.raises(InsufficientStockError) as exc_info:
            stocked.create_sale({
                "supermarket_id": supermarket.id, "quantity": 54, "price_per_unit": 180,
                "fragrance_distribution": {"1": 6},
            })

        assert exc_info.value.details["available"] == 5
        assert not remote.tables.get("sales")

    def test_delete_sale_restores_stock(self, stocked, remote, supermarket):
        sale = stocked.create_sale({
            "supermarket_id": supermarket.id, "quantity": 18, "price_per_unit": 166,
            "fragrance_distribution": {"3": 2},
        })

        assert stocked.delete_sale(sale.id) is True

        entry = latest_remote_history(remote)
        assert stocked.get_current_stock() == 40
        assert entry["type"] == "added"
        assert entry["reason"].startswith("Annulation de vente")
        assert sale.id not in remote.tables["sales"]
        assert stocked.list_supermarkets()[0].total_sales == 0

    def test_delete_missing_sale(self, service):
        assert service.delete_sale("missing") is False

    def test_invalid_quantity(self, service, supermarket):
        with pytest.raises(DataValidationError):
            service.create_sale({"supermarket_id": supermarket.id, "quantity": 0, "price_per_unit": 180})

    def test_unknown_price_tier(self, service, supermarket):
        with pytest.raises(DataValidationError):
            service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 175})
        with pytest.raises(DataValidationError):
            service.create_order({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 175})

    @pytest.mark.parametrize("overrides", [
        {"cartons": 3},
        {"total_value": 1.0},
        {"remaining_amount": 0.0},
    ])
    def test_inconsistent_amounts_rejected(self, stocked, remote, supermarket, overrides):
        """Cartons and amounts must follow from quantity and price"""
        data = {
            "supermarket_id": supermarket.id, "quantity": 90, "price_per_unit": 180,
            "fragrance_distribution": {"1": 5, "2": 5},
            **overrides,
        }

        with pytest.raises(DataValidationError) as exc_info:
            stocked.create_sale(data)

        assert exc_info.value.details["field"] in overrides
        assert stocked.get_current_stock() == 40
        assert not remote.tables.get("sales")

    def test_consistent_amounts_accepted(self, stocked, supermarket):
        sale = stocked.create_sale({
            "supermarket_id": supermarket.id, "quantity": 90, "price_per_unit": 180,
            "cartons": 10, "total_value": 16200, "remaining_amount": 16200,
            "fragrance_distribution": {"1": 5, "2": 5},
        })

        assert sale.cartons == 10
        assert stocked.get_current_stock() == 30


class TestPayments:
    """Test payment bookkeeping"""

    def test_remaining_amount_invariant(self, service, remote, supermarket):
        """remaining == total - payments and paid only when nothing remains"""
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})

        for amount in (1000, 620):
            sale = service.add_payment(sale.id, {"amount": amount})
            assert sale.remaining_amount == pytest.approx(sale.total_value - sale.amount_paid)
            assert sale.is_paid == (sale.remaining_amount <= 0)

        assert sale.is_paid
        assert sale.payment_date is not None
        assert len(remote.payments) == 2
        assert remote.tables["sales"][sale.id]["remaining_amount"] == 0

    def test_partial_payment(self, service, supermarket):
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})

        sale = service.add_payment(sale.id, {"amount": 500, "date": datetime(2024, 2, 1)})

        assert sale.remaining_amount == 1120
        assert not sale.is_paid
        assert service.list_sales()[0].amount_paid == 500

    def test_payment_exceeding_balance(self, service, supermarket):
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})

        with pytest.raises(DataValidationError):
            service.add_payment(sale.id, {"amount": 1620.5})
        with pytest.raises(DataValidationError):
            service.add_payment(sale.id, {"amount": 0})

    def test_payment_within_tolerance(self, service, supermarket):
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        assert service.add_payment(sale.id, {"amount": 1620.005}).is_paid

    def test_offline_payment_replayed(self, service, connectivity, remote, supermarket):
        """Payment and balance are queued offline and reach the remote later"""
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        connectivity.set_online(False)

        service.add_payment(sale.id, {"amount": 500})
        assert service.pending_sync_count == 2

        connectivity.set_online(True)

        assert service.pending_sync_count == 0
        assert [p["amount"] for p in remote.payments.values()] == [500]
        assert remote.tables["sales"][sale.id]["remaining_amount"] == 1120

    def test_set_sale_paid(self, service, supermarket):
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        service.add_payment(sale.id, {"amount": 620})

        paid = service.set_sale_paid(sale.id, True, datetime(2024, 3, 1))
        assert paid.remaining_amount == 0
        assert paid.payment_date == datetime(2024, 3, 1)

        reopened = service.set_sale_paid(sale.id, False)
        assert reopened.remaining_amount == 1000
        assert reopened.payment_date is None
        assert service.set_sale_paid("missing", True) is None

    def test_paid_sale_rejects_payments(self, service, supermarket):
        """A sale marked paid stays paid until it is reopened"""
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        service.set_sale_paid(sale.id, True)

        with pytest.raises(DataValidationError):
            service.add_payment(sale.id, {"amount": 100})

        stored = service.list_sales()[0]
        assert stored.is_paid
        assert stored.remaining_amount == 0
        assert stored.payments == []

        service.set_sale_paid(sale.id, False)
        reopened = service.add_payment(sale.id, {"amount": 100})
        assert reopened.remaining_amount == 1520
        assert not reopened.is_paid


# =============================================================================
# SUPERMARKETS & ORDERS
# =============================================================================

class TestSupermarkets:
    """Test supermarket rules"""

    def test_phone_required(self, service, supermarket_data):
        supermarket_data["phone_numbers"] = [{"name": "Gérant", "number": "  "}]

        with pytest.raises(DataValidationError):
            service.create_supermarket(supermarket_data)

    def test_geocodes_missing_coordinates(self, service, supermarket_data):
        service.geocoder = MagicMock()
        service.geocoder.geocode.return_value = (36.7, 3.1)
        del supermarket_data["latitude"], supermarket_data["longitude"]

        created = service.create_supermarket(supermarket_data)

        assert (created.latitude, created.longitude) == (36.7, 3.1)
        assert created.total_sales == 0

    def test_update_keeps_totals_and_regeocodes(self, service, supermarket):
        service.geocoder = MagicMock()
        service.geocoder.geocode.return_value = (35.69, -0.63)

        updated = service.update_supermarket(supermarket.id, {"address": "Oran", "total_sales": 999})

        assert updated.address == "Oran"
        assert updated.latitude == 35.69
        assert updated.total_sales == 0
        service.geocoder.geocode.assert_called_once_with("Oran")

    def test_delete_referenced_supermarket_refused(self, service, supermarket):
        service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})

        with pytest.raises(ReferentialIntegrityError):
            service.delete_supermarket(supermarket.id)

    def test_delete_unreferenced_supermarket(self, service, remote, supermarket):
        assert service.delete_supermarket(supermarket.id) is True
        assert supermarket.id not in remote.tables["supermarkets"]
        assert service.delete_supermarket(supermarket.id) is False


class TestOrders:
    """Test order lifecycle"""

    def test_create_order_denormalizes_name(self, service, supermarket):
        order = service.create_order({"supermarket_id": supermarket.id, "quantity": 90, "price_per_unit": 180})

        assert order.supermarket_name == "Uno Bab Ezzouar"
        assert order.status is OrderStatus.PENDING

    def test_create_order_unknown_supermarket(self, service):
        with pytest.raises(DataValidationError):
            service.create_order({"supermarket_id": "nope", "quantity": 90, "price_per_unit": 180})

    def test_complete_order(self, stocked, supermarket):
        """Completion records a sale from the order and delivers it"""
        order = stocked.create_order({"supermarket_id": supermarket.id, "quantity": 90, "price_per_unit": 180})

        delivered = stocked.complete_order(order.id, {"1": 5, "2": 5})

        sale = stocked.list_sales()[0]
        assert delivered.status is OrderStatus.DELIVERED
        assert sale.from_order
        assert sale.cartons == 10
        assert stocked.get_current_stock() == 30

        with pytest.raises(DataValidationError):
            stocked.complete_order(order.id)

    def test_delete_order_rules(self, service, supermarket):
        order = service.create_order({"supermarket_id": supermarket.id, "quantity": 90, "price_per_unit": 180})
        service.complete_order(order.id)

        with pytest.raises(DataValidationError):
            service.delete_order(order.id)
        with pytest.raises(RecordNotFoundError):
            service.delete_order("missing")

    def test_delete_pending_order(self, service, remote, supermarket):
        order = service.create_order({"supermarket_id": supermarket.id, "quantity": 90, "price_per_unit": 180})

        service.delete_order(order.id)

        assert order.id not in remote.tables["orders"]
        assert service.list_orders() == []


# =============================================================================
# STOCK
# =============================================================================

class TestStock:
    """Test stock movements"""

    def test_even_distribution(self, service):
        """Undistributed movements spread over fragrances, remainder first"""
        service.update_stock(10, "added", "Réception")

        levels = {f.fragrance_id: f.quantity for f in service.list_fragrance_stock()}

        assert levels == {"1": 2, "2": 2, "3": 1, "4": 1, "5": 1, "6": 1, "7": 1, "8": 1}

    def test_stock_consistency(self, stocked, local_db, remote, supermarket):
        """Fragrance totals always equal the last history total"""
        stocked.update_stock(3, "removed", "Casse", {"1": 3})
        stocked.set_fragrance_stock("2", 10)
        stocked.create_sale({
            "supermarket_id": supermarket.id, "quantity": 18, "price_per_unit": 180,
            "fragrance_distribution": {"3": 2},
        })

        total = stocked.get_current_stock()

        assert total == 40
        assert remote_fragrance_total(remote) == total
        assert local_fragrance_total(local_db) == total
        assert latest_remote_history(remote)["current_stock"] == total

    def test_removed_positive_delta_normalized(self, stocked, remote):
        total = stocked.update_stock(3, StockMovementType.REMOVED, "Casse", {"1": 3})

        entry = latest_remote_history(remote)
        assert total == 37
        assert entry["quantity"] == -3
        assert entry["fragrance_distribution"] == {"1": -3}

    def test_invalid_movements(self, stocked):
        with pytest.raises(DataValidationError):
            stocked.update_stock(5, "stolen", "?")
        with pytest.raises(DataValidationError):
            stocked.update_stock(-5, "added", "?")
        with pytest.raises(DataValidationError):
            stocked.update_stock(4, "added", "?", {"1": 3})
        with pytest.raises(InsufficientStockError):
            stocked.update_stock(-100, "removed", "Inventaire")

    def test_set_fragrance_stock(self, stocked, remote):
        fragrance = stocked.set_fragrance_stock("4", 9)

        entry = latest_remote_history(remote)
        assert fragrance.quantity == 9
        assert entry["type"] == "adjusted"
        assert entry["reason"] == "Ajustement manuel - Fraîcheur Marine"
        assert entry["current_stock"] == 44

        with pytest.raises(DataValidationError):
            stocked.set_fragrance_stock("4", -1)
        assert stocked.set_fragrance_stock("99", 1) is None

    def test_stock_percentage(self, stocked):
        assert stocked.get_stock_percentage() == pytest.approx(40 / 2700 * 100)

    def test_partial_remote_failure_stays_consistent(self, service, remote, local_db):
        """After a remote failure mid-movement the rest goes to local storage"""
        service.list_fragrance_stock()
        remote.fail_on.add("update")

        total = service.update_stock(40, "added", "Réception")

        assert total == 40
        assert local_fragrance_total(local_db) == 40
        assert local_db.get_all("stock_history")[-1]["current_stock"] == 40
        assert service.pending_sync_count == 9
        assert service.get_current_stock() == 40

        remote.fail_on.clear()
        service.sync_now()

        assert remote_fragrance_total(remote) == 40
        assert latest_remote_history(remote)["current_stock"] == 40

    def test_history_limit(self, stocked):
        stocked.update_stock(8, "added", "Réception")
        assert len(stocked.list_stock_history(limit=1)) == 1
        assert len(stocked.list_stock_history()) == 2


# =============================================================================
# SYNC & STATUS
# =============================================================================

class TestSync:
    """Test manual sync and status"""

    def test_force_sync_offline(self, service, connectivity):
        connectivity.set_online(False)

        with pytest.raises(OfflineError):
            service.force_sync()
        assert service.sync_now().skipped

    def test_force_sync_without_client(self, service, remote):
        remote.connected = False

        with pytest.raises(RemoteStoreError):
            service.force_sync()

    def test_force_sync_retries_parked_operations(self, service, remote, supermarket):
        remote.fail_on.add("insert")
        service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        for _ in range(5):
            service.sync_now()

        assert service.get_sync_status()["failed"] == 1
        assert service.sync_now().synced == 0

        remote.fail_on.clear()
        result = service.force_sync()

        assert result.synced == 1
        assert service.get_sync_status()["failed"] == 0

    def test_deleted_sale_stays_deleted_after_parked_create(self, service, remote, supermarket):
        """A delete queued behind a parked create is replayed after it"""
        remote.fail_on.add("insert")
        sale = service.create_sale({"supermarket_id": supermarket.id, "quantity": 9, "price_per_unit": 180})
        for _ in range(5):
            service.sync_now()
        remote.fail_on.clear()

        assert service.delete_sale(sale.id)
        service.sync_now()

        assert service.pending_sync_count == 1
        assert service.get_sync_status()["failed"] == 1

        service.force_sync()

        assert sale.id not in remote.tables.get("sales", {})
        assert service.list_sales() == []
        assert service.pending_sync_count == 0
        assert service.get_sync_status()["failed"] == 0

    def test_sync_status(self, service):
        service.sync_now()
        status = service.get_sync_status()

        assert status["is_online"] is True
        assert status["pending"] == 0
        assert status["is_syncing"] is False
        assert status["last_sync"] is not None

    def test_status_sections(self, service):
        status = service.get_status()

        assert set(status) >= {"sync", "cache", "migration", "storage"}
        assert status["storage"]["sales_remote"] is True


class TestMigrationFacade:
    """Test migration through the service"""

    def test_run_migration_invalidates_cache(self, service, cache):
        service.migration.load_legacy_records("supermarkets", [
            {"id": "1700000000001", "name": "Ardis", "address": "Alger", "phoneNumbers": []},
        ])
        service.list_supermarkets()
        assert service.is_migration_needed()

        summary = service.run_migration()

        assert summary.success
        assert summary.total_migrated == 1
        assert not cache.has("supermarkets")
        assert service.get_migration_status()["is_complete"]
        assert [s.name for s in service.list_supermarkets()] == ["Ardis"]

        service.reset_migration_flags()
        assert not service.get_migration_status()["is_complete"]


class TestComposition:
    """Test wiring from settings"""

    def test_connection_timeout_reaches_monitor(self, tmp_path, connectivity, monkeypatch):
        captured = {}

        def fake_manager(supabase_url=None, ping_url=None, timeout=None, start_monitoring=True):
            captured["timeout"] = timeout
            return connectivity

        monkeypatch.setattr(unified_data_service, "get_connection_manager", fake_manager)
        settings = AppSettings(
            db_path=tmp_path / "soap.db",
            cache_dir=tmp_path / "cache",
            connection_timeout=1.5,
            geocoding_enabled=False,
            storage=StorageConfig.local_only(),
        )

        svc = unified_data_service.create_data_service(settings)

        assert captured["timeout"] == 1.5
        assert svc.connection is connectivity
        svc.close()
