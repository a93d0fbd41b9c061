"""Core module for configuration, settings, and shared utilities"""

from .config import settings, get_settings, Settings
from .logging import setup_logging, get_logger, bind_call
from .exceptions import (
    WelfareCheckException,
    EventError,
    MalformedPayloadError,
    MissingCorrelationIdError,
    CallRecordError,
    RecordNotFoundError,
    DuplicateRecordError,
    UpdateConflictError,
    StoreError,
    StoreConflictError,
    StoreUnavailableError,
    WebhookError,
    WebhookValidationError
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    "Settings",
    # Logging
    "setup_logging",
    "get_logger",
    "bind_call",
    # Exceptions
    "WelfareCheckException",
    "EventError",
    "MalformedPayloadError",
    "MissingCorrelationIdError",
    "CallRecordError",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "UpdateConflictError",
    "StoreError",
    "StoreConflictError",
    "StoreUnavailableError",
    "WebhookError",
    "WebhookValidationError"
]
