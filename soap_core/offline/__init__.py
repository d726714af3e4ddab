# =============================================================================
# soap_core/offline/__init__.py
# Hybrid Online/Offline Storage for the Soap Stock Dashboard
# =============================================================================
"""
Hybrid Storage Module

Every read and write of the dashboard goes through UnifiedDataService,
which behaves the same whether Supabase is reachable or not.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                     HYBRID STORAGE LAYER                        │
├─────────────────────────────────────────────────────────────────┤
│                                                                 │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 UnifiedDataService                       │  │
│   │   (sales, supermarkets, orders, stock, migration)        │  │
│   └──────────────────────────────────────────────────────────┘  │
│                            │                                    │
│              ┌─────────────┴─────────────┐                      │
│              ▼                           ▼                      │
│   ┌──────────────────┐        ┌──────────────────┐              │
│   │  ConnectionMgr   │        │   CacheManager   │              │
│   │  (Online/Offline)│        │  (Entity lists)  │              │
│   └──────────────────┘        └──────────────────┘              │
│              │                                                  │
│   ┌──────────┴──────────┐                                       │
│   ▼                     ▼                                       │
│ ┌────────┐        ┌──────────┐                                  │
│ │Supabase│◄───────│  SQLite  │                                  │
│ │(Remote)│ Replay │ (Local)  │                                  │
│ └────────┘        └──────────┘                                  │
│              ▲                                                  │
│              │                                                  │
│   ┌──────────────────┐     ┌──────────────────┐                 │
│   │   SyncEngine     │     │ MigrationRunner  │                 │
│   │ (Pending queue)  │     │ (Legacy->remote) │                 │
│   └──────────────────┘     └──────────────────┘                 │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from soap_core.offline import get_data_service

service = get_data_service()

sales = service.list_sales()
service.update_stock(100, "added", "Livraison fournisseur")

print(service.is_online)            # True/False
print(service.pending_sync_count)   # Operations waiting for Supabase
"""

from soap_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionStatus,
    ConnectivityMonitor,
    get_connection_manager,
)

from soap_core.offline.local_database import LocalDatabase

from soap_core.offline.cache_manager import (
    CacheEntry,
    CacheManager,
)

from soap_core.offline.result import StorageResult

from soap_core.offline.sync_engine import (
    DrainResult,
    OperationType,
    PendingOperation,
    SyncEngine,
)

from soap_core.offline.migration import (
    MigrationResult,
    MigrationRunner,
    MigrationSummary,
)

from soap_core.offline.unified_data_service import (
    UnifiedDataService,
    create_data_service,
    get_data_service,
)

__all__ = [
    # Connection Management
    "ConnectionManager",
    "ConnectionStatus",
    "ConnectivityMonitor",
    "get_connection_manager",
    # Local Database
    "LocalDatabase",
    # Cache Management
    "CacheEntry",
    "CacheManager",
    # Results
    "StorageResult",
    # Sync Engine
    "DrainResult",
    "OperationType",
    "PendingOperation",
    "SyncEngine",
    # Migration
    "MigrationResult",
    "MigrationRunner",
    "MigrationSummary",
    # Unified Service (Main API)
    "UnifiedDataService",
    "create_data_service",
    "get_data_service",
]
