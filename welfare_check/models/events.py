"""
Typed provider webhook events

Each variant lists the fields the reconciler reads for that event type.
The normalizer is the only place untyped webhook JSON becomes one of these.
"""

from enum import Enum
from typing import Optional, Dict, Any, Literal, Union
from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Provider event types the reconciler acts on"""
    CALL_STARTED = "call_started"
    CALL_ENDED = "call_ended"
    CALL_ANALYZED = "call_analyzed"


class BaseProviderEvent(BaseModel):
    """Fields common to every provider event"""
    model_config = {"frozen": True}

    event_type: str
    external_call_id: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict, description="Raw webhook body")


class CallStartedEvent(BaseProviderEvent):
    event_type: Literal["call_started"] = "call_started"
    provider_status: Optional[str] = None
    start_timestamp: Optional[float] = None


class CallEndedEvent(BaseProviderEvent):
    event_type: Literal["call_ended"] = "call_ended"
    provider_status: Optional[str] = None
    disconnection_reason: Optional[str] = None
    start_timestamp: Optional[float] = None
    end_timestamp: Optional[float] = None
    transcript: Optional[str] = None
    analysis: Optional[Dict[str, Any]] = None


class CallAnalyzedEvent(BaseProviderEvent):
    event_type: Literal["call_analyzed"] = "call_analyzed"
    provider_status: Optional[str] = None
    disconnection_reason: Optional[str] = None
    transcript: Optional[str] = None
    analysis: Optional[Dict[str, Any]] = None


class UnhandledEvent(BaseProviderEvent):
    """Any event type the reconciler does not act on"""
    pass


ProviderEvent = Union[CallStartedEvent, CallEndedEvent, CallAnalyzedEvent, UnhandledEvent]

EVENT_MODELS = {
    EventType.CALL_STARTED.value: CallStartedEvent,
    EventType.CALL_ENDED.value: CallEndedEvent,
    EventType.CALL_ANALYZED.value: CallAnalyzedEvent,
}
