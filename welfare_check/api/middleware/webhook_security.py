"""
Webhook Security
Validates Retell webhook signatures
"""

import hmac
import hashlib
from typing import Optional
from fastapi import Request

from welfare_check.core.config import settings
from welfare_check.core.logging import get_logger
from welfare_check.core.exceptions import WebhookValidationError

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-retell-signature"


class RetellWebhookValidator:
    """
    Validates Retell webhook signatures: hex HMAC-SHA256 of the raw body
    keyed with the Retell API key
    """

    def __init__(self, api_key: Optional[str] = None, required: Optional[bool] = None):
        self.api_key = api_key if api_key is not None else settings.retell_api_key
        self.required = required if required is not None else settings.webhook_signature_required

    def compute_signature(self, body: bytes) -> str:
        """Compute expected Retell signature"""
        signature = hmac.new(
            self.api_key.encode("utf-8"),
            body,
            hashlib.sha256
        )
        return signature.hexdigest()

    def verify(self, body: bytes, signature: Optional[str]) -> bool:
        """
        Check a signature against the raw body

        Raises:
            WebhookValidationError: Signature missing or wrong
        """
        if not self.required:
            return True

        if not self.api_key:
            logger.error("RETELL_API_KEY not set but webhook signatures are required")
            raise WebhookValidationError("Webhook signing key not configured")

        if not signature:
            logger.warning("Signature header (x-retell-signature) missing")
            raise WebhookValidationError(f"Missing {SIGNATURE_HEADER} header")

        expected = self.compute_signature(body)
        if not hmac.compare_digest(signature.strip(), expected):
            logger.warning("Webhook signature verification failed")
            raise WebhookValidationError()

        return True

    async def validate(self, request: Request) -> bool:
        """Validate a Retell webhook request"""
        body = await request.body()
        return self.verify(body, request.headers.get(SIGNATURE_HEADER))


async def validate_retell_webhook(request: Request) -> bool:
    """
    Dependency for validating Retell webhooks

    Usage:
        @router.post("/retell", dependencies=[Depends(validate_retell_webhook)])
        async def webhook(request: Request):
            ...
    """
    return await RetellWebhookValidator().validate(request)
