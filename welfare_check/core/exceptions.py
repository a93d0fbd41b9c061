"""
Custom Exceptions for the Welfare Check service
Provides structured error handling across the reconciliation pipeline
"""

from typing import Optional, Dict, Any


class WelfareCheckException(Exception):
    """Base exception for all welfare check errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


# Inbound Event Exceptions
class EventError(WelfareCheckException):
    """Base exception for inbound event errors"""
    pass


class MalformedPayloadError(EventError):
    """Raised when the webhook body cannot be parsed into a provider event"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="MALFORMED_PAYLOAD",
            details={"field": field} if field else {},
            status_code=400
        )


class MissingCorrelationIdError(EventError):
    """Raised when an event does not carry the provider call identifier"""

    def __init__(self, event_type: Optional[str] = None):
        super().__init__(
            message="Missing call_id in webhook payload",
            error_code="MISSING_CORRELATION_ID",
            details={"event_type": event_type} if event_type else {},
            status_code=400
        )


# Call Record Exceptions
class CallRecordError(WelfareCheckException):
    """Base exception for call record errors"""
    pass


class RecordNotFoundError(CallRecordError):
    """Raised when no call record matches the provider call identifier"""

    def __init__(self, external_call_id: str):
        super().__init__(
            message=f"Call record not found: {external_call_id}",
            error_code="RECORD_NOT_FOUND",
            details={"external_call_id": external_call_id},
            status_code=404
        )


class DuplicateRecordError(CallRecordError):
    """Raised when a call record already exists for the provider call identifier"""

    def __init__(self, external_call_id: str):
        super().__init__(
            message=f"Call record already exists: {external_call_id}",
            error_code="DUPLICATE_RECORD",
            details={"external_call_id": external_call_id},
            status_code=409
        )


class UpdateConflictError(CallRecordError):
    """Raised when a record keeps changing underneath the reconciler"""

    def __init__(self, external_call_id: str, attempts: int):
        super().__init__(
            message=f"Concurrent update conflict for call: {external_call_id}",
            error_code="UPDATE_CONFLICT",
            details={"external_call_id": external_call_id, "attempts": attempts},
            status_code=500
        )


# Store Exceptions
class StoreError(WelfareCheckException):
    """Base exception for call record store errors"""
    pass


class StoreConflictError(StoreError):
    """Raised by a store when the expected record version no longer matches"""

    def __init__(self, external_call_id: str, expected_version: Optional[int] = None):
        super().__init__(
            message=f"Version mismatch for call: {external_call_id}",
            error_code="STORE_CONFLICT",
            details={
                "external_call_id": external_call_id,
                "expected_version": expected_version
            },
            status_code=409
        )


class StoreUnavailableError(StoreError):
    """Raised when the call record store cannot be reached in time"""

    def __init__(self, message: str = "Call record store unavailable"):
        super().__init__(
            message=message,
            error_code="STORE_UNAVAILABLE",
            status_code=500
        )


# Webhook Exceptions
class WebhookError(WelfareCheckException):
    """Base exception for webhook errors"""
    pass


class WebhookValidationError(WebhookError):
    """Raised when webhook signature validation fails"""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(
            message=message,
            error_code="WEBHOOK_VALIDATION_FAILED",
            status_code=401
        )
