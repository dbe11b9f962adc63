# =============================================================================
# cpd_core/errors/__init__.py
# Centralized Error Handling for the CPD core
# =============================================================================

from .exceptions import (
    CPDError,
    NotAuthenticated,
    StorageWriteError,
    StorageReadError,
    NotFound,
    NetworkUnavailable,
    RemoteRejected,
    EntryValidationError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    error_boundary,
    set_alert_handler,
)

__all__ = [
    # Exceptions
    "CPDError",
    "NotAuthenticated",
    "StorageWriteError",
    "StorageReadError",
    "NotFound",
    "NetworkUnavailable",
    "RemoteRejected",
    "EntryValidationError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "error_boundary",
    "set_alert_handler",
]
