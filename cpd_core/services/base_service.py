# =============================================================================
# cpd_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Optional, Dict, Any, Awaitable, Callable
from dataclasses import dataclass

from cpd_core.logging import get_logger, LogContext
from cpd_core.errors import handle_error, CPDError


@dataclass
class ServiceResult:
    """
    Standard result container for service operations.

    Lets UI code show an outcome without catching exceptions itself.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        """Create a successful result"""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Dict[str, Any] = None
    ) -> ServiceResult:
        """Create a failed result"""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            metadata=metadata,
        )

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        """Create a failed result from an exception"""
        if isinstance(e, CPDError):
            return cls(
                success=False,
                error=e.message,
                error_code=e.code,
                metadata=e.details,
            )
        return cls(
            success=False,
            error=str(e),
            error_code="EXCEPTION",
        )


class BaseService(ABC):
    """
    Abstract base class for services.

    Provides:
    - A per-class logger
    - Timed operation logging
    - Coroutine execution wrapped into a ServiceResult

    Usage:
        class MyService(BaseService):
            async def refresh(self) -> ServiceResult:
                return await self.safe_execute("Refreshing", self._load)
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Exporting entries"):
                frame.to_csv(path)
        """
        return LogContext(self.logger, operation)

    async def safe_execute(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
        **kwargs
    ) -> ServiceResult:
        """
        Await a coroutine function with error handling and logging.

        Args:
            operation: Description of the operation
            func: Coroutine function to await
            *args, **kwargs: Arguments to pass to func

        Returns:
            ServiceResult with success/failure status
        """
        try:
            with self.log_operation(operation):
                result = await func(*args, **kwargs)
            return ServiceResult.ok(result)
        except CPDError as e:
            handle_error(e, show_user_message=False)
            return ServiceResult.from_exception(e)
        except Exception as e:
            self.logger.error(f"{operation} failed: {e}", exc_info=True)
            return ServiceResult.fail(str(e))
