# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import copy
import pytest
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

from soap_core.config import StorageConfig
from soap_core.domain.models import Sale, Payment, primary_key
from soap_core.errors import RemoteStoreError
from soap_core.offline.cache_manager import CacheManager
from soap_core.offline.local_database import LocalDatabase
from soap_core.offline.unified_data_service import UnifiedDataService


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class InMemoryRemoteStore:
    """
    Stand-in for SupabaseStore with the same method surface.

    ``fail_on`` holds operation names ("select", "insert", "update",
    "delete", "upsert") that raise RemoteStoreError, so tests can break the
    remote half-way through a sequence.
    """

    PAYMENTS_TABLE = "payments"

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.fail_on: set = set()
        self.connected = True
        self.calls: List[tuple] = []

    def _check(self, table: str, operation: str) -> None:
        self.calls.append((operation, table))
        if operation in self.fail_on:
            raise RemoteStoreError(f"Simulated {operation} failure", table=table, operation=operation)

    def _table(self, entity: str) -> Dict[str, Dict[str, Any]]:
        return self.tables.setdefault(entity, {})

    def _shape(self, entity: str, row: Dict[str, Any]) -> Dict[str, Any]:
        record = copy.deepcopy(row)
        if entity == "sales":
            record["payments"] = [
                {k: v for k, v in p.items() if k != "sale_id"}
                for p in self.payments.values() if p["sale_id"] == record["id"]
            ]
        elif entity == "orders":
            supermarket = self._table("supermarkets").get(record.get("supermarket_id")) or {}
            record["supermarket_name"] = supermarket.get("name") or "Unknown"
        return record

    def is_connected(self) -> bool:
        return self.connected

    def list(self, entity: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self._check(entity, "select")
        rows = [self._shape(entity, r) for r in self._table(entity).values()]
        return rows[:limit] if limit else rows

    def get(self, entity: str, record_id: str) -> Optional[Dict[str, Any]]:
        self._check(entity, "select")
        row = self._table(entity).get(record_id)
        return self._shape(entity, row) if row else None

    def create(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]:
        self._check(entity, "insert")
        row = {k: v for k, v in record.items() if k not in ("payments", "supermarket_name")}
        self._table(entity)[str(record[primary_key(entity)])] = copy.deepcopy(row)
        if entity == "sales":
            for payment in record.get("payments") or []:
                self.add_payment(record["id"], payment)
        return self._shape(entity, row)

    def update(self, entity: str, record_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self._check(entity, "update")
        row = self._table(entity).get(record_id)
        if row is None:
            return None
        row.update({k: v for k, v in patch.items() if k not in ("payments", "supermarket_name")})
        return self._shape(entity, row)

    def delete(self, entity: str, record_id: str) -> bool:
        self._check(entity, "delete")
        if entity == "sales":
            self.payments = {k: p for k, p in self.payments.items() if p["sale_id"] != record_id}
        self._table(entity).pop(record_id, None)
        return True

    def add_payment(self, sale_id: str, payment: Dict[str, Any]) -> Dict[str, Any]:
        self._check(self.PAYMENTS_TABLE, "insert")
        self.payments[payment["id"]] = {**payment, "sale_id": sale_id}
        return dict(payment)

    def upsert_many(self, entity: str, records: List[Dict[str, Any]]) -> int:
        self._check(entity, "upsert")
        for record in records:
            self._table(entity)[str(record[primary_key(entity)])] = copy.deepcopy(record)
        return len(records)


class FakeConnectivity:
    """Connectivity monitor driven by the test."""

    def __init__(self, online: bool = True):
        self._online = online
        self._callbacks: List[Callable[[bool], None]] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        changed = online != self._online
        self._online = online
        if changed:
            for callback in list(self._callbacks):
                callback(online)

    def register_callback(self, callback: Callable[[bool], None]) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[bool], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def local_db(tmp_path):
    """Initialized SQLite store in a temporary directory"""
    db = LocalDatabase(tmp_path / "soap_test.db")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def cache(tmp_path):
    """File cache in a temporary directory"""
    return CacheManager(tmp_path / "cache")


@pytest.fixture
def remote():
    """In-memory remote store"""
    return InMemoryRemoteStore()


@pytest.fixture
def connectivity():
    """Connectivity monitor that starts online"""
    return FakeConnectivity(online=True)


@pytest.fixture
def service(local_db, remote, connectivity, cache):
    """UnifiedDataService wired to fakes, every entity remote-first"""
    svc = UnifiedDataService(
        local_db=local_db,
        remote=remote,
        connection=connectivity,
        cache=cache,
        config=StorageConfig(),
    )
    svc.initialize()
    return svc


@pytest.fixture
def local_service(local_db, remote, connectivity, cache):
    """UnifiedDataService with every entity pinned to local storage"""
    svc = UnifiedDataService(
        local_db=local_db,
        remote=remote,
        connection=connectivity,
        cache=cache,
        config=StorageConfig.local_only(),
    )
    svc.initialize()
    return svc


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def supermarket_data():
    """Minimal valid supermarket payload"""
    return {
        "name": "Uno Bab Ezzouar",
        "address": "Centre commercial Bab Ezzouar, Alger",
        "phone_numbers": [{"name": "Gérant", "number": "0550 12 34 56"}],
        "latitude": 36.7215,
        "longitude": 3.1828,
    }


@pytest.fixture
def sample_sales():
    """Two months of sales at both price tiers"""
    return [
        Sale(supermarket_id="sm-1", quantity=9, price_per_unit=180,
             date=datetime(2024, 1, 10), is_paid=True, payment_date=datetime(2024, 2, 3)),
        Sale(supermarket_id="sm-1", quantity=18, price_per_unit=166,
             date=datetime(2024, 1, 20)),
        Sale(supermarket_id="sm-2", quantity=27, price_per_unit=180,
             date=datetime(2024, 2, 5),
             payments=[Payment(amount=4860, date=datetime(2024, 2, 6))],
             is_paid=True, payment_date=datetime(2024, 2, 6)),
    ]


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    query = mock_client.table.return_value
    query.select.return_value.order.return_value.range.return_value.execute.return_value.data = []
    query.select.return_value.eq.return_value.limit.return_value.execute.return_value.data = []
    query.upsert.return_value.execute.return_value.data = []
    query.update.return_value.eq.return_value.execute.return_value.data = []
    query.delete.return_value.eq.return_value.execute.return_value.data = []
    return mock_client


