"""
Event Normalizer
Turns a raw Retell webhook body into a typed provider event
"""

import json
from typing import Any, Dict, Union

from pydantic import ValidationError

from welfare_check.core.exceptions import MalformedPayloadError, MissingCorrelationIdError
from welfare_check.core.logging import get_logger
from welfare_check.models.events import EVENT_MODELS, ProviderEvent, UnhandledEvent

logger = get_logger(__name__)

# Webhook "call" keys and the event fields they populate
CALL_FIELD_MAPPING = {
    "call_status": "provider_status",
    "disconnection_reason": "disconnection_reason",
    "start_timestamp": "start_timestamp",
    "end_timestamp": "end_timestamp",
    "transcript": "transcript",
    "call_analysis": "analysis",
}


def parse_body(raw: Union[bytes, str, Dict[str, Any]]) -> Dict[str, Any]:
    """Decode the webhook body into a JSON object"""
    if isinstance(raw, dict):
        return raw

    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        raise MalformedPayloadError(f"Webhook body is not valid JSON: {e}")

    if not isinstance(payload, dict):
        raise MalformedPayloadError("Webhook body must be a JSON object")
    return payload


def normalize_event(raw: Union[bytes, str, Dict[str, Any]]) -> ProviderEvent:
    """
    Normalize a raw webhook body into a typed event

    Args:
        raw: Request body as bytes, text or an already decoded dict

    Returns:
        CallStartedEvent, CallEndedEvent, CallAnalyzedEvent or UnhandledEvent

    Raises:
        MalformedPayloadError: Body is not a well-formed provider event
        MissingCorrelationIdError: Event carries no call identifier
    """
    payload = parse_body(raw)

    event_type = payload.get("event")
    if not isinstance(event_type, str) or not event_type.strip():
        raise MalformedPayloadError("Webhook body has no event type", field="event")
    event_type = event_type.strip()

    call = payload.get("call")
    if call is None:
        raise MissingCorrelationIdError(event_type)
    if not isinstance(call, dict):
        raise MalformedPayloadError("Webhook 'call' must be a JSON object", field="call")

    call_id = call.get("call_id")
    if call_id is None or (isinstance(call_id, str) and not call_id.strip()):
        raise MissingCorrelationIdError(event_type)
    if not isinstance(call_id, str):
        raise MalformedPayloadError("call_id must be a string", field="call.call_id")

    model = EVENT_MODELS.get(event_type)
    if model is None:
        logger.debug(f"Unhandled event type {event_type} for call {call_id}")
        return UnhandledEvent(event_type=event_type, external_call_id=call_id.strip(), payload=payload)

    fields: Dict[str, Any] = {
        "external_call_id": call_id.strip(),
        "payload": payload,
    }
    for source_key, field_name in CALL_FIELD_MAPPING.items():
        if field_name in model.model_fields and call.get(source_key) is not None:
            fields[field_name] = call[source_key]

    try:
        return model(**fields)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise MalformedPayloadError(
            f"Invalid {event_type} payload: {first.get('msg')}",
            field=location or None
        )
