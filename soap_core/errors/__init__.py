# =============================================================================
# soap_core/errors/__init__.py
# Centralized Error Handling for the Soap Stock Dashboard core
# =============================================================================

from .exceptions import (
    SoapDashboardError,
    DataValidationError,
    InsufficientStockError,
    ReferentialIntegrityError,
    RecordNotFoundError,
    RemoteStoreError,
    LocalStoreError,
    OfflineError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    error_boundary,
)

__all__ = [
    # Exceptions
    "SoapDashboardError",
    "DataValidationError",
    "InsufficientStockError",
    "ReferentialIntegrityError",
    "RecordNotFoundError",
    "RemoteStoreError",
    "LocalStoreError",
    "OfflineError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "error_boundary",
]
