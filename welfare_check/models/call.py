"""
Data models for welfare check call records
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Status of a scheduled welfare call"""
    SCHEDULED = "scheduled"
    RINGING = "ringing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_TRANSFERRED = "completed_transferred"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no_answer"
    CANCELED = "canceled"
    UNKNOWN = "unknown"


TERMINAL_STATUSES = frozenset({
    CallStatus.COMPLETED,
    CallStatus.COMPLETED_TRANSFERRED,
    CallStatus.FAILED,
    CallStatus.BUSY,
    CallStatus.NO_ANSWER,
    CallStatus.CANCELED,
})

# Progress order of the non-terminal states
ACTIVE_STATUS_RANK = {
    CallStatus.SCHEDULED: 0,
    CallStatus.RINGING: 1,
    CallStatus.IN_PROGRESS: 2,
}


def is_terminal(status: CallStatus) -> bool:
    """Whether no further status transitions are expected"""
    return status in TERMINAL_STATUSES


class OutcomeSource(str, Enum):
    """Which tier of the outcome policy produced an outcome"""
    NONE = "none"
    EVENT = "event"
    DISCONNECTION = "disconnection"
    TAG = "tag"

    @property
    def rank(self) -> int:
        return _OUTCOME_SOURCE_RANK[self]


_OUTCOME_SOURCE_RANK = {
    OutcomeSource.NONE: 0,
    OutcomeSource.EVENT: 1,
    OutcomeSource.DISCONNECTION: 2,
    OutcomeSource.TAG: 3,
}


class CallRecord(BaseModel):
    """Persisted record of one scheduled welfare call attempt"""
    model_config = {
        "json_schema_extra": {
            "example": {
                "external_call_id": "call_8f2a61c0",
                "recipient_name": "Margaret Hughes",
                "phone_number": "+447700900123",
                "message": "Checking in after your hospital discharge.",
                "status": "scheduled"
            }
        }
    }

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Internal call identifier")
    external_call_id: str = Field(..., description="Provider-assigned call identifier")
    user_id: Optional[str] = Field(None, description="Owner who scheduled the call")
    recipient_name: str
    phone_number: str
    message: str = ""

    status: CallStatus = Field(default=CallStatus.SCHEDULED)
    outcome: Optional[str] = None
    outcome_source: OutcomeSource = Field(default=OutcomeSource.NONE)

    # Timestamps
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    version: int = Field(default=0, description="Incremented on every successful write")


# Fields the reconciler is allowed to write
MUTABLE_FIELDS = frozenset({
    "status",
    "outcome",
    "outcome_source",
    "started_at",
    "ended_at",
    "duration_seconds",
    "raw_payload",
})
