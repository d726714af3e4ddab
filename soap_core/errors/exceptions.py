# =============================================================================
# soap_core/errors/exceptions.py
# Custom Exception Hierarchy for the Soap Stock Dashboard core
# =============================================================================

from typing import Optional, Dict, Any


class SoapDashboardError(Exception):
    """
    Base exception for all storage, sync and business-rule errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "DATA_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "SOAP_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================

class DataValidationError(SoapDashboardError):
    """Raised when an operation is rejected before anything is written"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[Any] = None,
        actual: Optional[Any] = None,
        code: str = "DATA_001",
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if expected is not None:
            details["expected"] = expected
        if actual is not None:
            details["actual"] = actual

        super().__init__(
            message=message,
            code=code,
            details=details,
            **kwargs,
        )


class InsufficientStockError(DataValidationError):
    """Raised when a stock movement would leave a fragrance below zero"""

    def __init__(
        self,
        message: str,
        fragrance_id: Optional[str] = None,
        available: Optional[int] = None,
        requested: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if fragrance_id:
            details["fragrance_id"] = fragrance_id
        if available is not None:
            details["available"] = available
        if requested is not None:
            details["requested"] = requested

        super().__init__(message, code="DATA_002", details=details, **kwargs)


class ReferentialIntegrityError(DataValidationError):
    """Raised when deleting a record that other records still reference"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        record_id: Optional[str] = None,
        references: Optional[Dict[str, int]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if record_id:
            details["record_id"] = record_id
        if references:
            details["references"] = references

        super().__init__(message, code="DATA_003", details=details, **kwargs)


class RecordNotFoundError(SoapDashboardError):
    """Raised when the target of an update or delete exists in no store"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if record_id:
            details["record_id"] = record_id

        super().__init__(
            message=message,
            code="DATA_004",
            details=details,
            **kwargs,
        )


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class RemoteStoreError(SoapDashboardError):
    """Raised when the remote database is unreachable or a request fails"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )


class LocalStoreError(SoapDashboardError):
    """Raised when the local SQLite store fails"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection

        super().__init__(
            message=message,
            code="LOCAL_001",
            details=details,
            **kwargs,
        )


class OfflineError(SoapDashboardError):
    """Raised when an operation that needs the remote store is requested offline"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, code="SYNC_001", **kwargs)


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(SoapDashboardError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
