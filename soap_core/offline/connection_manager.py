# =============================================================================
# soap_core/offline/connection_manager.py
# Connection Status Detection and Management
# =============================================================================
"""
ConnectionManager - Detects and monitors internet/Supabase connectivity.

Features:
- Starts offline until a check proves otherwise
- Periodic health checks in a background thread
- Callbacks with the new online flag on every transition
- Optional active HTTP probe (test_connectivity)
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Protocol
from urllib.parse import urlparse
import logging

import requests

from soap_core.errors import error_boundary

logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[bool], None]


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Internet and Supabase reachable
    OFFLINE = "offline"         # No connectivity
    DEGRADED = "degraded"       # Internet OK but Supabase unavailable
    UNKNOWN = "unknown"         # Never checked


class ConnectivityMonitor(Protocol):
    """What the storage layer needs from a connectivity source."""

    @property
    def is_online(self) -> bool:
        ...

    def register_callback(self, callback: ConnectivityCallback) -> None:
        ...

    def unregister_callback(self, callback: ConnectivityCallback) -> None:
        ...


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    internet_available: bool = False
    supabase_available: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


class ConnectionManager:
    """
    Connectivity detector owned by the composition root.

    Routing decisions use the cheap ``is_online`` flag only; the HTTP probe
    ``test_connectivity()`` is available to callers that need to know whether
    the network is actually reachable.

    Usage:
        manager = ConnectionManager(supabase_url=settings.supabase_url)
        manager.initialize()
        if manager.is_online:
            ...
    """

    # Configuration
    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between checks when offline
    CONNECTION_TIMEOUT = 5          # Timeout for connection tests
    PROBE_HOSTS = (
        ("8.8.8.8", 53),            # Google DNS
        ("1.1.1.1", 53),            # Cloudflare DNS
        ("208.67.222.222", 53),     # OpenDNS
    )

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        ping_url: str = "https://www.google.com/favicon.ico",
        timeout: float = CONNECTION_TIMEOUT,
    ):
        self.supabase_url = supabase_url
        self.ping_url = ping_url
        self.timeout = timeout
        self._state = ConnectionState()
        self._callbacks: List[ConnectivityCallback] = []
        self._callbacks_lock = threading.Lock()
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()
        self._initialized = False

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        """True only after a check found full connectivity."""
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return not self.is_online

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Run the first check and optionally start background monitoring.

        Args:
            start_monitoring: Whether to start the monitoring thread
        """
        if self._initialized:
            return

        self.check_connection()

        if start_monitoring:
            self.start_monitoring()

        self._initialized = True
        logger.info(f"ConnectionManager initialized. Status: {self._state.status.value}")

    # =========================================================================
    # CHECKS
    # =========================================================================

    def check_connection(self) -> ConnectionState:
        """
        Perform a connection check and update state.

        Returns:
            Updated ConnectionState
        """
        self._state.last_check = datetime.now()

        internet_ok = self._check_internet()
        self._state.internet_available = internet_ok

        supabase_ok = internet_ok and self._check_supabase()
        self._state.supabase_available = supabase_ok

        if internet_ok and supabase_ok:
            new_status = ConnectionStatus.ONLINE
        elif internet_ok:
            new_status = ConnectionStatus.DEGRADED
        else:
            new_status = ConnectionStatus.OFFLINE

        self._set_status(new_status)
        return self._state

    def _open_socket(self, host: str, port: int) -> bool:
        try:
            with socket.create_connection((host, port), timeout=self.timeout):
                return True
        except OSError:
            return False

    def _check_internet(self) -> bool:
        """Reach any well-known DNS resolver."""
        return any(self._open_socket(host, port) for host, port in self.PROBE_HOSTS)

    def _check_supabase(self) -> bool:
        """Open a TCP connection to the Supabase host."""
        if not self.supabase_url:
            # Nothing remote configured: internet alone counts as online
            return True

        parsed = urlparse(self.supabase_url)
        if not parsed.hostname:
            self._state.error_message = f"Invalid Supabase URL: {self.supabase_url}"
            return False
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return self._open_socket(parsed.hostname, port)

    @error_boundary(default_return=False, error_message="Connectivity probe failed")
    def test_connectivity(self) -> bool:
        """
        Active probe: HEAD request to the ping URL with a short timeout.

        Returns:
            False on any error or timeout, or when already flagged offline
        """
        if not self.is_online:
            return False
        requests.head(self.ping_url, timeout=self.timeout, allow_redirects=True)
        return True

    # =========================================================================
    # STATE TRANSITIONS
    # =========================================================================

    def _set_status(self, new_status: ConnectionStatus) -> None:
        was_online = self.is_online
        old_status = self._state.status
        self._state.status = new_status

        if new_status == ConnectionStatus.ONLINE:
            self._state.last_online = datetime.now()
            self._state.consecutive_failures = 0
            self._state.error_message = None
        else:
            self._state.consecutive_failures += 1

        if old_status != new_status:
            logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")

        if was_online != self.is_online:
            self._notify_callbacks()

    def set_online(self, online: bool) -> None:
        """Apply an external online/offline signal."""
        self._state.internet_available = online
        self._state.supabase_available = online
        self._set_status(ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE)

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        self.set_online(False)
        logger.info("Forced offline mode")

    # =========================================================================
    # MONITORING
    # =========================================================================

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            interval = (
                self.CHECK_INTERVAL_ONLINE
                if self.is_online
                else self.CHECK_INTERVAL_OFFLINE
            )

            if self._stop_monitoring.wait(timeout=interval):
                break

            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: ConnectivityCallback) -> None:
        """
        Register a callback for online/offline transitions.

        Args:
            callback: Function called with the new online flag
        """
        with self._callbacks_lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unregister_callback(self, callback: ConnectivityCallback) -> None:
        """Remove a registered callback."""
        with self._callbacks_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        """Call every listener; one failing listener never blocks the others."""
        online = self.is_online
        with self._callbacks_lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(online)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "internet": self._state.internet_available,
            "supabase": self._state.supabase_available,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }


# Singleton accessor
_connection_manager: Optional[ConnectionManager] = None
_manager_lock = threading.Lock()


def get_connection_manager(
    supabase_url: Optional[str] = None,
    ping_url: Optional[str] = None,
    timeout: float = ConnectionManager.CONNECTION_TIMEOUT,
    start_monitoring: bool = True,
) -> ConnectionManager:
    """
    Get the process-wide ConnectionManager, creating it on first use.

    Returns:
        ConnectionManager instance
    """
    global _connection_manager
    if _connection_manager is None:
        with _manager_lock:
            if _connection_manager is None:
                kwargs = {"supabase_url": supabase_url, "timeout": timeout}
                if ping_url:
                    kwargs["ping_url"] = ping_url
                manager = ConnectionManager(**kwargs)
                manager.initialize(start_monitoring=start_monitoring)
                _connection_manager = manager
    return _connection_manager
