# =============================================================================
# soap_core/offline/result.py
# Result container for storage fallback chains
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from soap_core.errors import SoapDashboardError

T = TypeVar("T")


@dataclass
class StorageResult(Generic[T]):
    """
    Outcome of one storage attempt.

    Fallback chains are written as explicit combinators instead of nested
    try/except blocks:

        result = (
            StorageResult.attempt(remote_read, source="remote")
            .or_else(lambda failed: cache_read())
            .or_else(lambda failed: StorageResult.attempt(local_read, source="local"))
        )
        records = result.unwrap()
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    source: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    exception: Optional[BaseException] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: T = None, source: Optional[str] = None,
           metadata: Dict[str, Any] = None) -> StorageResult[T]:
        """Create a successful result"""
        return cls(success=True, data=data, source=source, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        source: Optional[str] = None,
        metadata: Dict[str, Any] = None,
    ) -> StorageResult[T]:
        """Create a failed result"""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            source=source,
            metadata=metadata,
        )

    @classmethod
    def from_exception(cls, e: Exception, source: Optional[str] = None) -> StorageResult[T]:
        """Create a failed result from an exception"""
        if isinstance(e, SoapDashboardError):
            return cls(
                success=False,
                error=e.message,
                error_code=e.code,
                source=source,
                metadata=e.details,
                exception=e,
            )
        return cls(
            success=False,
            error=str(e),
            error_code="EXCEPTION",
            source=source,
            exception=e,
        )

    @classmethod
    def attempt(cls, func: Callable[[], T], source: Optional[str] = None) -> StorageResult[T]:
        """Run ``func`` and capture its value or its exception."""
        try:
            return cls.ok(func(), source=source)
        except Exception as e:
            return cls.from_exception(e, source=source)

    def or_else(self, fallback: Callable[[StorageResult[T]], StorageResult[T]]) -> StorageResult[T]:
        """Keep a success; otherwise hand this failure to ``fallback``."""
        if self.success:
            return self
        return fallback(self)

    def map(self, func: Callable[[T], Any]) -> StorageResult:
        if not self.success:
            return self
        return StorageResult.ok(func(self.data), source=self.source, metadata=self.metadata)

    def unwrap(self) -> T:
        """Return the data or raise the failure."""
        if self.success:
            return self.data
        if self.exception is not None:
            raise self.exception
        raise SoapDashboardError(self.error or "Storage operation failed", code=self.error_code)
