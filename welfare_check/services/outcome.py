"""
Outcome Extractor
Derives the short, human-facing outcome shown on the dashboard
"""

import re
from typing import Any, Optional, NamedTuple

from welfare_check.models.call import OutcomeSource

NO_OUTCOME = "no outcome available; inspect raw payload"

DISCONNECTION_LABELS = {
    "user_hangup": "call ended",
    "agent_hangup": "call ended",
    "call_transferred": "call transferred",
    "voicemail_reached": "voicemail",
    "dial_busy": "busy",
    "dial_no_answer": "no answer",
    "inactivity": "no response",
    "max_duration_reached": "max duration reached",
}

_WHITESPACE = re.compile(r"\s+")


class OutcomeSummary(NamedTuple):
    """Outcome text and the policy tier it came from"""
    text: str
    source: OutcomeSource


def normalize_label(value: str) -> str:
    """Lower-case a provider label and collapse underscores and whitespace"""
    return _WHITESPACE.sub(" ", value.replace("_", " ")).strip().lower()


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _find_outcome_tag(call: dict) -> Optional[str]:
    analysis = _as_dict(call.get("call_analysis"))
    custom = _as_dict(analysis.get("custom_analysis_data"))
    for candidate in (custom.get("outcome"), analysis.get("outcome"), call.get("outcome")):
        tag = _clean_str(candidate)
        if tag:
            return tag
    return None


def classify_disconnection(reason: str) -> str:
    """Human label for a disconnection reason"""
    label = DISCONNECTION_LABELS.get(reason)
    if label:
        return label
    if reason.startswith("error"):
        return "error"
    return normalize_label(reason)


def extract_outcome(payload: Any) -> OutcomeSummary:
    """
    Derive an outcome from a webhook payload.

    Priority: explicit outcome tag from the transcript analysis, then the
    disconnection reason, then the event type. Anything unusable yields
    the NO_OUTCOME sentinel rather than an error.

    Args:
        payload: Raw webhook body, normally ``{"event": ..., "call": {...}}``

    Returns:
        OutcomeSummary with the text and its source tier
    """
    body = _as_dict(payload)
    call = _as_dict(body.get("call"))

    tag = _find_outcome_tag(call)
    if tag:
        normalized = normalize_label(tag)
        if normalized:
            return OutcomeSummary(normalized, OutcomeSource.TAG)

    reason = _clean_str(call.get("disconnection_reason"))
    if reason:
        return OutcomeSummary(classify_disconnection(reason.strip()), OutcomeSource.DISCONNECTION)

    event_type = _clean_str(body.get("event"))
    if event_type:
        return OutcomeSummary(f"event: {normalize_label(event_type)}", OutcomeSource.EVENT)

    return OutcomeSummary(NO_OUTCOME, OutcomeSource.NONE)
