"""Services for the Welfare Check reconciler"""

from .status_mapper import map_status, map_started_status
from .outcome import OutcomeSummary, extract_outcome, NO_OUTCOME
from .normalizer import normalize_event
from .reconciler import (
    CallReconciler,
    ReconcileAction,
    ReconcileResult,
    plan_update,
    resolve_status
)

__all__ = [
    "map_status",
    "map_started_status",
    "OutcomeSummary",
    "extract_outcome",
    "NO_OUTCOME",
    "normalize_event",
    "CallReconciler",
    "ReconcileAction",
    "ReconcileResult",
    "plan_update",
    "resolve_status"
]
