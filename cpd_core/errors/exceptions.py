# =============================================================================
# cpd_core/errors/exceptions.py
# Custom Exception Hierarchy for the CPD core
# =============================================================================

from typing import Optional, Dict, Any


class CPDError(Exception):
    """
    Base exception for all CPD core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
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
        self.code = code or "CPD_000"
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
# AUTHENTICATION
# =============================================================================

class NotAuthenticated(CPDError):
    """Raised when a remote operation is attempted without a session"""

    def __init__(self, message: str = "No authenticated session", **kwargs):
        super().__init__(
            message=message,
            code="AUTH_001",
            **kwargs,
        )


# =============================================================================
# LOCAL STORAGE EXCEPTIONS
# =============================================================================

class StorageWriteError(CPDError):
    """Raised when a record cannot be serialized or persisted locally"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


class StorageReadError(CPDError):
    """Raised when a stored record cannot be read or decoded"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key

        super().__init__(
            message=message,
            code="STORE_002",
            details=details,
            **kwargs,
        )


class NotFound(CPDError):
    """Raised when a record does not exist"""

    def __init__(
        self,
        message: str,
        entry_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if entry_id:
            details["entry_id"] = entry_id

        super().__init__(
            message=message,
            code="NOT_FOUND",
            details=details,
            **kwargs,
        )


# =============================================================================
# REMOTE STORE EXCEPTIONS
# =============================================================================

class NetworkUnavailable(CPDError):
    """Raised when the remote store cannot be reached (transient)"""

    def __init__(
        self,
        message: str = "Network unavailable",
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )


class RemoteRejected(CPDError):
    """Raised when the server refuses a request (validation, conflict, policy)"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        server_code: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if server_code:
            details["server_code"] = server_code

        super().__init__(
            message=message,
            code="REMOTE_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# ENTRY VALIDATION
# =============================================================================

class EntryValidationError(CPDError):
    """Raised when a CPD entry fails validation checks"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value

        super().__init__(
            message=message,
            code="ENTRY_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(CPDError):
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
