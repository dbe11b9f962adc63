# =============================================================================
# cpd_core/errors/handlers.py
# Error Handling Utilities for the CPD core
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any, Awaitable

from cpd_core.logging import get_logger
from .exceptions import CPDError

logger = get_logger(__name__)

T = TypeVar("T")

# Receives (message, recoverable). The host application decides how to alert.
AlertHandler = Callable[[str, bool], None]

_alert_handler: Optional[AlertHandler] = None


def set_alert_handler(handler: Optional[AlertHandler]) -> None:
    """
    Register the callable used to surface failures to the user.

    Args:
        handler: Function taking (message, recoverable), or None to disable
    """
    global _alert_handler
    _alert_handler = handler


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        show_user_message: Whether to forward the error to the alert handler
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, CPDError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if show_user_message and _alert_handler is not None:
        if recoverable:
            alert = f"Error: {message}"
        else:
            alert = f"Critical Error: {message}. Please contact support."
        try:
            _alert_handler(alert, recoverable)
        except Exception as e:
            logger.error(f"Error in alert handler: {e}")


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
        count = safe_execute(store.count, default=0, error_message="Count failed")
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
    Decorator wrapping a coroutine function with error handling.

    Usage:
        @error_boundary(default_return=[], error_message="Could not load entries")
        async def load_entries() -> List[CPDEntry]:
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[Optional[T]]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.error(
                        f"Error in {func.__name__}: {e}",
                        exc_info=True,
                    )
                if error_message and _alert_handler is not None:
                    _alert_handler(error_message, True)
                return default_return

        return wrapper

    return decorator
