"""API Middleware"""

from .webhook_security import (
    RetellWebhookValidator,
    validate_retell_webhook,
    SIGNATURE_HEADER
)

__all__ = [
    "RetellWebhookValidator",
    "validate_retell_webhook",
    "SIGNATURE_HEADER"
]
