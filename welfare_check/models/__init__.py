"""Data models for the Welfare Check service"""

from .call import (
    CallStatus,
    CallRecord,
    OutcomeSource,
    TERMINAL_STATUSES,
    MUTABLE_FIELDS,
    is_terminal
)

from .events import (
    EventType,
    BaseProviderEvent,
    CallStartedEvent,
    CallEndedEvent,
    CallAnalyzedEvent,
    UnhandledEvent,
    ProviderEvent
)

__all__ = [
    # Call models
    "CallStatus",
    "CallRecord",
    "OutcomeSource",
    "TERMINAL_STATUSES",
    "MUTABLE_FIELDS",
    "is_terminal",
    # Event models
    "EventType",
    "BaseProviderEvent",
    "CallStartedEvent",
    "CallEndedEvent",
    "CallAnalyzedEvent",
    "UnhandledEvent",
    "ProviderEvent"
]
