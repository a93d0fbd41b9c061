"""
Status Mapper
Maps Retell call status and disconnection reason to internal CallStatus
"""

from typing import Optional

from welfare_check.models.call import CallStatus

# Checked first; a mapped disconnection reason always wins
DISCONNECTION_REASON_MAPPING = {
    "user_hangup": CallStatus.COMPLETED,
    "agent_hangup": CallStatus.COMPLETED,
    "call_transferred": CallStatus.COMPLETED_TRANSFERRED,
    "error_internal": CallStatus.FAILED,
    "error_telephony": CallStatus.FAILED,
    "dial_failed": CallStatus.FAILED,
}

PROVIDER_STATUS_MAPPING = {
    "completed": CallStatus.COMPLETED,
    "failed": CallStatus.FAILED,
    "busy": CallStatus.BUSY,
    "no-answer": CallStatus.NO_ANSWER,
    "canceled": CallStatus.CANCELED,
    "in-progress": CallStatus.IN_PROGRESS,
    "ringing": CallStatus.IN_PROGRESS,
    "queued": CallStatus.IN_PROGRESS,
    "error": CallStatus.FAILED,
}


def map_status(
    provider_status: Optional[str] = None,
    disconnection_reason: Optional[str] = None
) -> CallStatus:
    """
    Map provider call status and disconnection reason to internal CallStatus

    The disconnection reason is authoritative when it is one of the known
    reasons; the provider status is only consulted otherwise.

    Args:
        provider_status: Provider call_status value
        disconnection_reason: Provider disconnection_reason value

    Returns:
        Internal CallStatus, UNKNOWN when neither value is recognised
    """
    if disconnection_reason:
        status = DISCONNECTION_REASON_MAPPING.get(disconnection_reason)
        if status is not None:
            return status

    if provider_status:
        status = PROVIDER_STATUS_MAPPING.get(provider_status)
        if status is not None:
            return status

    return CallStatus.UNKNOWN


def map_started_status(provider_status: Optional[str] = None) -> CallStatus:
    """Status written by a call_started event"""
    if provider_status == "ringing":
        return CallStatus.RINGING
    return CallStatus.IN_PROGRESS
