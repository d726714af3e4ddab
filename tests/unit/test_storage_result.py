# =============================================================================
# tests/unit/test_storage_result.py
# Unit Tests for StorageResult and error handling helpers
# =============================================================================

import pytest

from soap_core.errors import (
    DataValidationError,
    InsufficientStockError,
    RemoteStoreError,
    SoapDashboardError,
    error_boundary,
    handle_error,
    safe_execute,
)
from soap_core.offline.result import StorageResult


def _raise_remote():
    raise RemoteStoreError("Supabase down", table="sales", operation="select")


class TestStorageResult:
    """Test result construction and combinators"""

    def test_attempt_success(self):
        """A returning function gives a successful result"""
        result = StorageResult.attempt(lambda: [1, 2], source="remote")

        assert result
        assert result.data == [1, 2]
        assert result.source == "remote"

    def test_attempt_captures_exception(self):
        """Exceptions become failed results carrying the error code"""
        result = StorageResult.attempt(_raise_remote, source="remote")

        assert not result
        assert result.error_code == "REMOTE_001"
        assert result.metadata["table"] == "sales"

    def test_or_else_chain(self):
        """First success in the chain wins"""
        seen = []

        def cache(failed):
            seen.append(failed.error_code)
            return StorageResult.fail("miss", error_code="CACHE_MISS", source="cache")

        result = (
            StorageResult.attempt(_raise_remote, source="remote")
            .or_else(cache)
            .or_else(lambda failed: StorageResult.ok(["local"], source="local"))
        )

        assert seen == ["REMOTE_001"]
        assert result.source == "local"
        assert result.unwrap() == ["local"]

    def test_or_else_skipped_on_success(self):
        """A success never consults the fallback"""
        result = StorageResult.ok("remote").or_else(lambda failed: pytest.fail("fallback called"))
        assert result.data == "remote"

    def test_unwrap_reraises(self):
        """unwrap re-raises the captured exception"""
        with pytest.raises(RemoteStoreError):
            StorageResult.attempt(_raise_remote).unwrap()

    def test_unwrap_plain_failure(self):
        """A failure without exception raises the base error"""
        with pytest.raises(SoapDashboardError):
            StorageResult.fail("nothing", error_code="CACHE_MISS").unwrap()

    def test_map(self):
        assert StorageResult.ok(2).map(lambda x: x * 3).data == 6
        assert not StorageResult.fail("x").map(lambda x: x * 3)


class TestExceptions:
    """Test the exception hierarchy"""

    def test_insufficient_stock_is_validation(self):
        """Stock shortages are validation errors with details"""
        error = InsufficientStockError("Not enough Rose", fragrance_id="2", available=1, requested=3)

        assert isinstance(error, DataValidationError)
        assert error.code == "DATA_002"
        assert error.details == {"fragrance_id": "2", "available": 1, "requested": 3}
        assert "[DATA_002]" in str(error)

    def test_to_dict(self):
        data = DataValidationError("bad", field="amount").to_dict()

        assert data["error_type"] == "DataValidationError"
        assert data["details"]["field"] == "amount"
        assert data["recoverable"] is True


class TestHandlers:
    """Test error handling helpers"""

    def test_handle_error_structure(self):
        info = handle_error(RemoteStoreError("down"), log_error=False)

        assert info["code"] == "REMOTE_001"
        assert info["recoverable"] is True

    def test_safe_execute_default(self):
        """Failures return the default unless reraise is set"""
        assert safe_execute(_raise_remote, default=[]) == []
        with pytest.raises(RemoteStoreError):
            safe_execute(_raise_remote, reraise=True)

    def test_error_boundary(self):
        """Decorated calls degrade to the default value"""
        @error_boundary(default_return=False)
        def probe():
            raise TimeoutError("slow")

        assert probe() is False
