"""Utility modules"""

from .retry import retry_async_operation, RetryError
from .locks import KeyedLock

__all__ = [
    "retry_async_operation",
    "RetryError",
    "KeyedLock"
]
