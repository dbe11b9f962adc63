# =============================================================================
# cpd_core/offline/connection_manager.py
# Connection Status Detection and Management
# =============================================================================
"""
ConnectionManager - Detects and monitors internet/Supabase connectivity.

Features:
- Socket-level reachability checks (run off the event loop)
- Periodic health checks as an asyncio task
- Event callbacks for status changes
"""

from __future__ import annotations
import asyncio
import socket
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Full connectivity (Internet + Supabase)
    OFFLINE = "offline"         # No connectivity
    DEGRADED = "degraded"       # Internet OK but Supabase unavailable
    CHECKING = "checking"       # Currently checking status
    UNKNOWN = "unknown"         # Initial state


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
    Tracks whether the remote store is reachable.

    Usage:
        manager = ConnectionManager(settings.supabase_url)
        await manager.check_connection()
        if manager.is_online:
            # Use cloud services
        else:
            # Use local fallback
    """

    # Configuration
    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between checks when offline
    CONNECTION_TIMEOUT = 5          # Timeout for connection tests

    PROBE_HOSTS: Tuple[Tuple[str, int], ...] = (
        ("8.8.8.8", 53),            # Google DNS
        ("1.1.1.1", 53),            # Cloudflare DNS
        ("208.67.222.222", 53),     # OpenDNS
    )

    def __init__(self, supabase_url: Optional[str] = None):
        self.supabase_url = supabase_url or ""
        self._state = ConnectionState()
        self._callbacks: List[Callable[[ConnectionState], None]] = []
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        """Check if we have full connectivity."""
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        """Check if we're completely offline."""
        return self._state.status == ConnectionStatus.OFFLINE

    # =========================================================================
    # CHECKS
    # =========================================================================

    async def check_connection(self) -> ConnectionState:
        """
        Perform a connection check and update state.

        Returns:
            Updated ConnectionState
        """
        old_status = self._state.status
        self._state.status = ConnectionStatus.CHECKING
        self._state.last_check = datetime.now()

        internet_ok = await asyncio.to_thread(self._check_internet)
        self._state.internet_available = internet_ok

        supabase_ok = False
        if internet_ok:
            supabase_ok = await asyncio.to_thread(self._check_supabase)
        self._state.supabase_available = supabase_ok

        if internet_ok and supabase_ok:
            self._state.status = ConnectionStatus.ONLINE
            self._state.last_online = datetime.now()
            self._state.consecutive_failures = 0
            self._state.error_message = None
        elif internet_ok:
            self._state.status = ConnectionStatus.DEGRADED
            self._state.consecutive_failures += 1
        else:
            self._state.status = ConnectionStatus.OFFLINE
            self._state.consecutive_failures += 1

        if old_status != self._state.status:
            logger.info(f"Connection status changed: {old_status.value} -> {self._state.status.value}")
            self._notify_callbacks()

        return self._state

    def _probe(self, host: str, port: int) -> bool:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(self.CONNECTION_TIMEOUT)
        try:
            return sock.connect_ex((host, port)) == 0
        finally:
            sock.close()

    def _check_internet(self) -> bool:
        """Check internet connectivity by attempting to reach well-known hosts."""
        for host, port in self.PROBE_HOSTS:
            try:
                if self._probe(host, port):
                    return True
            except OSError:
                continue
        return False

    def _check_supabase(self) -> bool:
        """Check that the Supabase host accepts connections."""
        if not self.supabase_url:
            # No Supabase configured - nothing to reach
            return False

        parsed = urlparse(self.supabase_url)
        host = parsed.hostname
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        if not host:
            self._state.error_message = f"Invalid Supabase URL: {self.supabase_url}"
            return False

        try:
            return self._probe(host, port)
        except OSError as e:
            self._state.error_message = str(e)
            logger.debug(f"Supabase check failed: {e}")
            return False

    # =========================================================================
    # MONITORING
    # =========================================================================

    def start_monitoring(self) -> None:
        """Start background connection monitoring on the running loop."""
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._monitor_task = asyncio.get_running_loop().create_task(
            self._monitoring_loop(), name="ConnectionMonitor"
        )
        logger.debug("Connection monitoring started")

    async def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Connection monitoring stopped")

    async def _monitoring_loop(self) -> None:
        while True:
            try:
                await self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

            interval = (
                self.CHECK_INTERVAL_ONLINE
                if self.is_online
                else self.CHECK_INTERVAL_OFFLINE
            )
            await asyncio.sleep(interval)

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Register a callback for connection status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        self._state.status = ConnectionStatus.OFFLINE
        self._state.internet_available = False
        self._state.supabase_available = False
        self._notify_callbacks()
        logger.info("Forced offline mode")

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
