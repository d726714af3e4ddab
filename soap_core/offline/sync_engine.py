# =============================================================================
# soap_core/offline/sync_engine.py
# Pending Operation Queue and Replay
# =============================================================================
"""
SyncEngine - Durable queue of mutations waiting for the remote store.

Features:
- FIFO replay of a fixed snapshot (terminates even while new work arrives)
- Single drain at a time; a concurrent request is a no-op
- Operations removed only after confirmed remote success
- Per-record ordering: a failed or parked operation holds back later ones on the same record
- Retry counting; operations parked as failed after MAX_RETRY_ATTEMPTS
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
import logging

from soap_core.logging import LogContext
from soap_core.domain.models import parse_datetime
from soap_core.offline.local_database import LocalDatabase

logger = logging.getLogger(__name__)

LAST_SYNC_SETTING = "last_sync"

# Payload fields that point at a record in another table
FOREIGN_KEYS = {
    "sale_id": "sales",
    "supermarket_id": "supermarkets",
}


class OperationType(Enum):
    """Kinds of queued mutation."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class PendingOperation:
    """A mutation applied locally and not yet confirmed remotely."""
    type: OperationType
    table: str
    record_id: Optional[str]
    payload: Dict[str, Any]
    queue_id: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.now)
    attempts: int = 0
    failed: bool = False
    error_message: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> PendingOperation:
        return cls(
            type=OperationType(row["operation"]),
            table=row["table"],
            record_id=row["record_id"],
            payload=row["data"],
            queue_id=row["queue_id"],
            timestamp=parse_datetime(row["created_at"]) or datetime.now(),
            attempts=row["attempts"] or 0,
            failed=row["status"] == "failed",
            error_message=row["error_message"],
        )

    def ordering_keys(self) -> Set[Tuple[str, str]]:
        return ordering_keys(self.table, self.record_id, self.payload)


def ordering_keys(
    table: str,
    record_id: Optional[str],
    payload: Dict[str, Any],
) -> Set[Tuple[str, str]]:
    """Records a mutation depends on, its own target included."""
    keys = set()
    if record_id is not None:
        keys.add((table, str(record_id)))
    for column, foreign_table in FOREIGN_KEYS.items():
        value = payload.get(column)
        if value:
            keys.add((foreign_table, str(value)))
    return keys


@dataclass
class SyncState:
    """Current sync state."""
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    pending_count: int = 0
    failed_count: int = 0
    total_synced: int = 0


@dataclass
class DrainResult:
    """Outcome of one drain pass."""
    synced: int = 0
    failed: int = 0
    deferred: int = 0
    skipped: bool = False

    @property
    def success(self) -> bool:
        return not self.skipped and self.failed == 0 and self.deferred == 0


class SyncEngine:
    """
    Pending-operation queue backed by the local database.

    Usage:
        engine = SyncEngine(local_db)
        engine.enqueue(OperationType.CREATE, "sales", sale_id, record)
        engine.drain(replay_fn)
    """

    MAX_RETRY_ATTEMPTS = 5      # Attempts before an operation is parked as failed

    def __init__(self, local_db: LocalDatabase):
        self._local_db = local_db
        self._state = SyncState()
        self._drain_lock = threading.Lock()
        self._callbacks: List[Callable[[SyncState], None]] = []

        local_db.initialize()
        last_sync = local_db.get_setting(LAST_SYNC_SETTING)
        self._state.last_sync = parse_datetime(last_sync)

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    @property
    def pending_count(self) -> int:
        return self._local_db.count_operations("pending")

    @property
    def failed_count(self) -> int:
        return self._local_db.count_operations("failed")

    @property
    def last_sync(self) -> Optional[datetime]:
        return self._state.last_sync

    # =========================================================================
    # QUEUE
    # =========================================================================

    def enqueue(
        self,
        op_type: OperationType,
        table: str,
        record_id: Optional[str],
        payload: Dict[str, Any],
    ) -> PendingOperation:
        """
        Append an operation to the durable queue.

        Args:
            op_type: create, update or delete
            table: Remote table name
            record_id: Client-generated id of the target record
            payload: Full record (create) or patch (update)
        """
        queue_id = self._local_db.enqueue_operation(op_type.value, table, record_id, payload)
        logger.info(f"Queued {op_type.value} on {table} ({record_id}) for sync")
        self._state.pending_count = self.pending_count
        return PendingOperation(
            type=op_type,
            table=table,
            record_id=record_id,
            payload=payload,
            queue_id=queue_id,
        )

    def pending_operations(self, include_failed: bool = False) -> List[PendingOperation]:
        """Queued operations in enqueue order."""
        rows = self._local_db.get_queued_operations(include_failed=include_failed)
        return [PendingOperation.from_row(row) for row in rows]

    def _parked_operations(self) -> List[PendingOperation]:
        return [op for op in self.pending_operations(include_failed=True) if op.failed]

    def has_pending(self, table: str, record_id: str) -> bool:
        return self._local_db.has_queued_operations(table, record_id)

    def queued_record_ids(self, table: str) -> Set[str]:
        """Ids of records in ``table`` with operations still queued."""
        return self._local_db.get_queued_record_ids(table)

    def must_wait(self, table: str, record_id: Optional[str], payload: Dict[str, Any]) -> bool:
        """True when queued work on a related record has to reach the remote first."""
        return any(
            self.has_pending(key_table, key_id)
            for key_table, key_id in ordering_keys(table, record_id, payload)
        )

    # =========================================================================
    # DRAIN
    # =========================================================================

    def drain(
        self,
        sync_fn: Callable[[PendingOperation], Any],
        include_failed: bool = False,
    ) -> DrainResult:
        """
        Replay a snapshot of the queue through ``sync_fn``.

        Args:
            sync_fn: Applies one operation remotely; raises on failure
            include_failed: Also retry operations parked as failed

        Returns:
            DrainResult (skipped=True when another drain is running)
        """
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Drain already in progress, ignoring request")
            return DrainResult(skipped=True)

        result = DrainResult()
        try:
            self._state.is_syncing = True
            self._notify_callbacks()

            snapshot = self.pending_operations(include_failed=include_failed)
            if not snapshot:
                self._mark_synced_at(datetime.now(), success=True)
                return result

            blocked: Set[Tuple[str, str]] = set()
            if not include_failed:
                # Parked operations still come first for the records they touch
                for parked in self._parked_operations():
                    blocked |= parked.ordering_keys()

            with LogContext(logger, f"Replaying {len(snapshot)} pending operations"):
                for op in snapshot:
                    keys = op.ordering_keys()
                    if keys & blocked:
                        # Later work on anything this op touches waits too
                        blocked |= keys
                        result.deferred += 1
                        continue

                    try:
                        sync_fn(op)
                    except Exception as e:
                        logger.warning(
                            f"Replay of {op.type.value} on {op.table} ({op.record_id}) failed: {e}"
                        )
                        self._local_db.mark_operation_failed(
                            op.queue_id, str(e), self.MAX_RETRY_ATTEMPTS
                        )
                        blocked |= keys
                        result.failed += 1
                        continue

                    self._local_db.remove_operation(op.queue_id)
                    result.synced += 1

            self._state.total_synced += result.synced
            self._mark_synced_at(datetime.now(), success=result.success)
            logger.info(
                f"Sync complete: {result.synced} synced, {result.failed} failed, "
                f"{result.deferred} deferred"
            )
            return result

        finally:
            self._state.is_syncing = False
            self._state.pending_count = self.pending_count
            self._state.failed_count = self.failed_count
            self._drain_lock.release()
            self._notify_callbacks()

    def _mark_synced_at(self, when: datetime, success: bool) -> None:
        self._state.last_sync = when
        if success:
            self._state.last_sync_success = when
        self._local_db.set_setting(LAST_SYNC_SETTING, when.isoformat())

    # =========================================================================
    # CALLBACKS & STATUS
    # =========================================================================

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "is_syncing": self._state.is_syncing,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": (
                self._state.last_sync_success.isoformat()
                if self._state.last_sync_success else None
            ),
            "pending_count": self.pending_count,
            "failed_count": self.failed_count,
            "total_synced": self._state.total_synced,
        }
