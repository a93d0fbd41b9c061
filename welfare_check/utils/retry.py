"""
Retry Utilities
Provides retry logic for store operations that may hit transient conflicts
"""

import asyncio
from typing import Optional, Callable, Awaitable, Any, Type, Tuple

from welfare_check.core.config import settings
from welfare_check.core.logging import get_logger

logger = get_logger(__name__)


class RetryError(Exception):
    """Raised when all retry attempts fail"""
    def __init__(self, message: str, attempts: int, last_exception: Optional[Exception] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


async def retry_async_operation(
    operation: Callable[[], Awaitable[Any]],
    max_attempts: Optional[int] = None,
    delay: Optional[float] = None,
    backoff_multiplier: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    operation_name: str = "operation"
) -> Any:
    """
    Execute an async operation with retry logic

    Args:
        operation: Async callable to execute
        max_attempts: Total attempts, first try included
            (defaults to one try plus settings.update_conflict_retries)
        delay: Initial delay between attempts in seconds
        backoff_multiplier: Multiplier for exponential backoff
        exceptions: Exception types that trigger another attempt
        operation_name: Name for logging purposes

    Returns:
        Result of the operation

    Raises:
        RetryError: If all attempts fail
    """
    if max_attempts is None:
        max_attempts = 1 + settings.update_conflict_retries
    if delay is None:
        delay = settings.retry_delay_seconds
    last_exception = None
    current_delay = delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except exceptions as e:
            last_exception = e
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed for {operation_name}: {e}"
            )

            if attempt < max_attempts:
                if current_delay > 0:
                    logger.info(f"Retrying {operation_name} in {current_delay:.1f}s...")
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff_multiplier
            else:
                logger.error(f"All {max_attempts} attempts failed for {operation_name}")

    raise RetryError(
        f"Failed {operation_name} after {max_attempts} attempts",
        attempts=max_attempts,
        last_exception=last_exception
    )
