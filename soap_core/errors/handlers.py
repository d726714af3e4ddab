# =============================================================================
# soap_core/errors/handlers.py
# Error Handling Utilities for the Soap Stock Dashboard core
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any

from soap_core.logging import get_logger
from .exceptions import SoapDashboardError

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> dict:
    """
    Centralized error handling function.

    The core has no UI of its own, so the error is logged and returned as a
    dictionary the presentation layer can render.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        user_message: Custom message (uses the error message if None)

    Returns:
        Serializable description of the error
    """
    if isinstance(error, SoapDashboardError):
        payload = error.to_dict()
        if user_message:
            payload["message"] = user_message
    else:
        payload = {
            "error_type": error.__class__.__name__,
            "code": "UNKNOWN",
            "message": user_message or str(error),
            "details": {"traceback": traceback.format_exc()},
            "recoverable": True,
        }

    if log_error:
        logger.error(
            f"[{payload['code']}] {payload['message']}",
            extra={"details": payload["details"]},
            exc_info=error,
        )

    return payload


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Execute a function with automatic error handling.

    Usage:
        result = safe_execute(
            listener,
            True,
            default=None,
            error_message="Connectivity listener failed"
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message)
        if reraise:
            raise
        return default


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator to wrap functions with error handling.

    Args:
        default_return: Value to return if function fails
        error_message: Custom error message for the log
        log: Whether to log errors

    Usage:
        @error_boundary(default_return=False, error_message="Probe failed")
        def test_connectivity(self) -> bool:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.warning(
                        f"{error_message or 'Error'} in {func.__name__}: {e}"
                    )
                return default_return

        return wrapper

    return decorator
