"""
Call Status Reconciler
Applies Retell webhook events to call records
"""

import asyncio
import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Union

from pydantic import BaseModel, Field

from welfare_check.core.config import settings
from welfare_check.core.exceptions import (
    WelfareCheckException,
    EventError,
    RecordNotFoundError,
    UpdateConflictError,
    StoreConflictError,
    StoreUnavailableError
)
from welfare_check.core.logging import get_logger, bind_call
from welfare_check.db.base import CallRecordStore
from welfare_check.models.call import (
    CallRecord,
    CallStatus,
    OutcomeSource,
    ACTIVE_STATUS_RANK,
    is_terminal,
    utcnow
)
from welfare_check.models.events import (
    ProviderEvent,
    CallStartedEvent,
    CallEndedEvent,
    CallAnalyzedEvent
)
from welfare_check.services.normalizer import normalize_event
from welfare_check.services.outcome import OutcomeSummary, extract_outcome
from welfare_check.services.status_mapper import map_status, map_started_status
from welfare_check.utils.locks import KeyedLock
from welfare_check.utils.retry import retry_async_operation, RetryError

logger = get_logger(__name__)


class ReconcileAction(str, Enum):
    """What the reconciler did with an event"""
    APPLIED = "applied"
    NOOP = "noop"
    IGNORED = "ignored"
    REJECTED = "rejected"


class ReconcileResult(BaseModel):
    """Outcome of processing one webhook event"""
    action: ReconcileAction
    status_code: int
    event_type: Optional[str] = None
    external_call_id: Optional[str] = None
    changed_fields: List[str] = Field(default_factory=list)
    record: Optional[CallRecord] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ==================== State machine ====================

def resolve_status(
    current: CallStatus,
    proposed: CallStatus,
    allow_terminal_overwrite: bool = False
) -> CallStatus:
    """
    Decide the status after an event proposes a new one.

    Terminal statuses are never downgraded; only a terminal proposal may
    replace one, and only when allow_terminal_overwrite is set. UNKNOWN
    ignores non-terminal proposals. Active statuses only move forward.
    """
    if proposed == current:
        return current

    if is_terminal(current):
        if allow_terminal_overwrite and is_terminal(proposed):
            return proposed
        return current

    if current == CallStatus.UNKNOWN:
        return proposed if is_terminal(proposed) else current

    if is_terminal(proposed) or proposed == CallStatus.UNKNOWN:
        return proposed

    if ACTIVE_STATUS_RANK.get(proposed, -1) > ACTIVE_STATUS_RANK.get(current, -1):
        return proposed
    return current


def resolve_outcome(record: CallRecord, summary: OutcomeSummary) -> Dict[str, Any]:
    """Outcome fields to write; refinements never clear or downgrade an outcome"""
    if record.outcome is not None:
        if summary.source == OutcomeSource.NONE:
            return {}
        if summary.source.rank < record.outcome_source.rank:
            return {}
    return {"outcome": summary.text, "outcome_source": summary.source}


def to_datetime(timestamp: Optional[float], unit: str = "seconds") -> Optional[datetime]:
    """Convert a provider epoch timestamp, None when unusable"""
    if timestamp is None:
        return None
    seconds = timestamp / 1000.0 if unit == "milliseconds" else timestamp
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.warning(f"Ignoring out-of-range timestamp {timestamp}")
        return None


def derive_duration(started_at: Optional[datetime], ended_at: Optional[datetime]) -> Optional[int]:
    if started_at is None or ended_at is None:
        return None
    seconds = (ended_at - started_at).total_seconds()
    if seconds < 0:
        logger.warning(f"Call ended before it started ({started_at} > {ended_at})")
        return None
    return int(round(seconds))


def merge_payload(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge incoming into a copy of base; nested dicts merge, other values replace"""
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_payload(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _call_block(payload: Dict[str, Any]) -> Dict[str, Any]:
    call = payload.get("call")
    return call if isinstance(call, dict) else {}


def _plan_call_started(record: CallRecord, event: CallStartedEvent, unit: str) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    terminal = is_terminal(record.status)

    status = resolve_status(record.status, map_started_status(event.provider_status))
    if status != record.status:
        changes["status"] = status

    started_at = to_datetime(event.start_timestamp, unit)
    if started_at is not None and (record.started_at is None or not terminal):
        changes["started_at"] = started_at
    elif record.started_at is None and not terminal:
        changes["started_at"] = utcnow()

    if "started_at" in changes and record.ended_at is not None:
        changes["duration_seconds"] = derive_duration(changes["started_at"], record.ended_at)
    return changes


def _plan_call_ended(record: CallRecord, event: CallEndedEvent, unit: str) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}

    mapped = map_status(event.provider_status, event.disconnection_reason)
    status = resolve_status(record.status, mapped, allow_terminal_overwrite=True)
    if status != record.status:
        changes["status"] = status

    started_at = to_datetime(event.start_timestamp, unit) or record.started_at
    ended_at = to_datetime(event.end_timestamp, unit) or record.ended_at
    if started_at is not None:
        changes["started_at"] = started_at
    if ended_at is not None:
        changes["ended_at"] = ended_at
    changes["duration_seconds"] = derive_duration(started_at, ended_at)

    changes.update(resolve_outcome(record, extract_outcome(event.payload)))

    # Replace the payload; stored analysis fields survive and win over incoming ones
    payload = copy.deepcopy(event.payload)
    previous_analysis = _call_block(record.raw_payload).get("call_analysis")
    call = payload.get("call")
    if isinstance(previous_analysis, dict) and isinstance(call, dict):
        incoming_analysis = call.get("call_analysis")
        if isinstance(incoming_analysis, dict):
            call["call_analysis"] = merge_payload(incoming_analysis, previous_analysis)
        else:
            call["call_analysis"] = copy.deepcopy(previous_analysis)
    changes["raw_payload"] = payload
    return changes


def _plan_call_analyzed(record: CallRecord, event: CallAnalyzedEvent, unit: str) -> Dict[str, Any]:
    if event.analysis is None:
        logger.debug(f"call_analyzed for {event.external_call_id} has no analysis block")
        return {}

    changes: Dict[str, Any] = {}

    if not is_terminal(record.status):
        mapped = map_status(event.provider_status, event.disconnection_reason)
        if mapped != CallStatus.UNKNOWN:
            status = resolve_status(record.status, mapped)
            if status != record.status:
                changes["status"] = status

    changes.update(resolve_outcome(record, extract_outcome(event.payload)))

    changes["raw_payload"] = merge_payload(
        record.raw_payload,
        {"call": {"call_analysis": event.analysis}}
    )
    return changes


def plan_update(
    record: CallRecord,
    event: ProviderEvent,
    timestamp_unit: str = "seconds"
) -> Dict[str, Any]:
    """
    Compute the fields an event changes on a record.

    Args:
        record: Current stored record
        event: Normalized provider event
        timestamp_unit: "seconds" or "milliseconds" for provider timestamps

    Returns:
        Only the fields whose value differs from the record; empty for a no-op
    """
    if isinstance(event, CallStartedEvent):
        proposed = _plan_call_started(record, event, timestamp_unit)
    elif isinstance(event, CallEndedEvent):
        proposed = _plan_call_ended(record, event, timestamp_unit)
    elif isinstance(event, CallAnalyzedEvent):
        proposed = _plan_call_analyzed(record, event, timestamp_unit)
    else:
        return {}

    return {
        key: value
        for key, value in proposed.items()
        if getattr(record, key) != value
    }


# ==================== Orchestration ====================

class CallReconciler:
    """
    Normalizes webhook events and applies them to the call record store.

    Events for the same call are serialized with a per-call lock and the
    store write is a compare-and-swap on the record version; a version
    conflict is retried with a fresh read before giving up.
    """

    def __init__(
        self,
        store: CallRecordStore,
        store_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        timestamp_unit: Optional[str] = None
    ):
        """
        Args:
            store: Call record store handle
            store_timeout: Default deadline in seconds for each store call
            max_attempts: Read-merge-write attempts per event
            timestamp_unit: Unit of provider epoch timestamps
        """
        self.store = store
        self.store_timeout = store_timeout if store_timeout is not None else settings.store_timeout_seconds
        self.max_attempts = max_attempts if max_attempts is not None else 1 + settings.update_conflict_retries
        self.timestamp_unit = timestamp_unit or settings.timestamp_unit
        self._locks = KeyedLock()

    async def process(
        self,
        raw: Union[bytes, str, Dict[str, Any]],
        store_timeout: Optional[float] = None
    ) -> ReconcileResult:
        """
        Normalize and reconcile one raw webhook body.

        Never raises for bad input or store failures; the returned result
        carries the HTTP-style status code and error details.
        """
        try:
            event = normalize_event(raw)
        except EventError as e:
            logger.warning(f"Rejected webhook: {e.error_code} - {e.message}")
            return self._rejected(e)

        return await self.reconcile(event, store_timeout=store_timeout)

    async def reconcile(
        self,
        event: ProviderEvent,
        store_timeout: Optional[float] = None
    ) -> ReconcileResult:
        """Apply an already normalized event"""
        call_id = event.external_call_id
        log = bind_call(logger, call_id)

        if not isinstance(event, (CallStartedEvent, CallEndedEvent, CallAnalyzedEvent)):
            log.warning(f"Unhandled Retell event type: {event.event_type}")
            return ReconcileResult(
                action=ReconcileAction.IGNORED,
                status_code=200,
                event_type=event.event_type,
                external_call_id=call_id
            )

        log.info(f"Received Retell webhook event: {event.event_type}")
        timeout = store_timeout if store_timeout is not None else self.store_timeout

        try:
            async with self._locks.hold(call_id):
                return await retry_async_operation(
                    lambda: self._apply(event, timeout),
                    max_attempts=self.max_attempts,
                    exceptions=(StoreConflictError,),
                    operation_name=f"{event.event_type} update for {call_id}"
                )
        except RetryError as e:
            return self._rejected(UpdateConflictError(call_id, e.attempts), event)
        except WelfareCheckException as e:
            log.warning(f"Failed to reconcile {event.event_type}: {e.message}")
            return self._rejected(e, event)

    async def _apply(self, event: ProviderEvent, timeout: float) -> ReconcileResult:
        call_id = event.external_call_id
        log = bind_call(logger, call_id)

        record = await self._call_store(self.store.get(call_id), timeout)
        if record is None:
            raise RecordNotFoundError(call_id)

        changes = plan_update(record, event, self.timestamp_unit)
        if not changes:
            log.debug(f"No changes from {event.event_type}")
            return ReconcileResult(
                action=ReconcileAction.NOOP,
                status_code=204,
                event_type=event.event_type,
                external_call_id=call_id,
                record=record
            )

        updated = await self._call_store(
            self.store.update(call_id, changes, expected_version=record.version),
            timeout
        )
        log.info(
            f"Updated call record from {event.event_type} (fields: {', '.join(sorted(changes))}, status: {updated.status.value})"
        )
        return ReconcileResult(
            action=ReconcileAction.APPLIED,
            status_code=204,
            event_type=event.event_type,
            external_call_id=call_id,
            changed_fields=sorted(changes),
            record=updated
        )

    async def _call_store(self, operation, timeout: float):
        """Await a store call under a deadline, mapping failures to store errors"""
        try:
            return await asyncio.wait_for(operation, timeout=timeout)
        except asyncio.TimeoutError:
            raise StoreUnavailableError(f"Call record store timed out after {timeout}s")
        except WelfareCheckException:
            raise
        except Exception as e:
            logger.error(f"Call record store failure: {e}", exc_info=True)
            raise StoreUnavailableError(f"Call record store failure: {e}")

    def _rejected(
        self,
        error: WelfareCheckException,
        event: Optional[ProviderEvent] = None
    ) -> ReconcileResult:
        return ReconcileResult(
            action=ReconcileAction.REJECTED,
            status_code=error.status_code,
            event_type=event.event_type if event else None,
            external_call_id=event.external_call_id if event else None,
            error=error.to_dict()
        )
