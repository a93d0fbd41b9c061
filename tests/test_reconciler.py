"""
Tests for the call status reconciler
"""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from welfare_check.core.exceptions import StoreConflictError
from welfare_check.db.memory import InMemoryCallRecordStore
from welfare_check.models.call import CallStatus, OutcomeSource
from welfare_check.services.reconciler import (
    CallReconciler,
    ReconcileAction,
    resolve_status,
    merge_payload
)

from conftest import make_record, retell_event


def at(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class TestEndToEnd:
    """Full call lifecycles against the in-memory store"""

    @pytest.mark.asyncio
    async def test_scheduled_to_completed(self, store, reconciler):
        await store.create(make_record("X1"))

        result = await reconciler.process(retell_event("call_started", call_status="ringing"))
        assert result.action == ReconcileAction.APPLIED
        assert result.status_code == 204
        record = await store.get("X1")
        assert record.status == CallStatus.RINGING
        assert record.started_at is not None

        result = await reconciler.process(retell_event(
            "call_ended",
            call_status="completed",
            disconnection_reason="user_hangup",
            start_timestamp=1000,
            end_timestamp=1030,
        ))
        assert result.action == ReconcileAction.APPLIED
        record = await store.get("X1")
        assert record.status == CallStatus.COMPLETED
        assert record.started_at == at(1000)
        assert record.ended_at == at(1030)
        assert record.duration_seconds == 30
        assert record.outcome == "call ended"
        assert record.outcome_source == OutcomeSource.DISCONNECTION
        assert record.raw_payload["event"] == "call_ended"

    @pytest.mark.asyncio
    async def test_transfer_reason_beats_failed_status(self, store, reconciler):
        await store.create(make_record("X2"))

        result = await reconciler.process(retell_event(
            "call_ended", call_id="X2", call_status="failed", disconnection_reason="call_transferred"
        ))

        assert result.ok
        record = await store.get("X2")
        assert record.status == CallStatus.COMPLETED_TRANSFERRED
        assert record.outcome == "call transferred"

    @pytest.mark.asyncio
    async def test_ended_without_any_outcome_information(self, store, reconciler):
        await store.create(make_record("X1"))
        event = retell_event("call_ended", call_status="completed")

        await reconciler.process(event)

        record = await store.get("X1")
        assert record.status == CallStatus.COMPLETED
        assert record.outcome == "event: call ended"
        assert record.duration_seconds is None

    @pytest.mark.asyncio
    async def test_millisecond_timestamps(self, store):
        await store.create(make_record("X1"))
        reconciler = CallReconciler(store, max_attempts=2, timestamp_unit="milliseconds")

        await reconciler.process(retell_event(
            "call_ended", call_status="completed", start_timestamp=1714000000000, end_timestamp=1714000095500
        ))

        record = await store.get("X1")
        assert record.duration_seconds == 96
        assert record.started_at == at(1714000000)


class TestIdempotence:
    """Replaying events leaves the record unchanged"""

    @pytest.mark.asyncio
    async def test_call_ended_twice(self, store, reconciler, call_ended_payload):
        await store.create(make_record("X1"))

        first = await reconciler.process(json.dumps(call_ended_payload))
        after_first = await store.get("X1")
        second = await reconciler.process(json.dumps(call_ended_payload))
        after_second = await store.get("X1")

        assert first.action == ReconcileAction.APPLIED
        assert second.action == ReconcileAction.NOOP
        assert second.status_code == 204
        assert after_second == after_first
        assert after_second.duration_seconds == 30

    @pytest.mark.asyncio
    async def test_call_analyzed_twice(self, store, reconciler, call_ended_payload, call_analyzed_payload):
        await store.create(make_record("X1"))
        await reconciler.process(call_ended_payload)

        await reconciler.process(call_analyzed_payload)
        after_first = await store.get("X1")
        result = await reconciler.process(call_analyzed_payload)

        assert result.action == ReconcileAction.NOOP
        assert await store.get("X1") == after_first

    @pytest.mark.asyncio
    async def test_call_ended_replayed_after_analysis_keeps_refined_outcome(
        self, store, reconciler, call_ended_payload, call_analyzed_payload
    ):
        await store.create(make_record("X1"))
        await reconciler.process(call_ended_payload)
        await reconciler.process(call_analyzed_payload)
        refined = await store.get("X1")

        result = await reconciler.process(call_ended_payload)

        assert result.action == ReconcileAction.NOOP
        record = await store.get("X1")
        assert record == refined
        assert record.outcome == "recipient ok"


class TestOutOfOrder:
    """Events arriving late or in the wrong order"""

    @pytest.mark.asyncio
    async def test_analysis_merges_into_ended_payload(self, store, reconciler, call_ended_payload, call_analyzed_payload):
        await store.create(make_record("X1"))
        await reconciler.process(call_ended_payload)

        result = await reconciler.process(call_analyzed_payload)

        assert result.action == ReconcileAction.APPLIED
        record = await store.get("X1")
        assert record.status == CallStatus.COMPLETED
        assert record.duration_seconds == 30
        assert record.ended_at == at(1030)
        assert record.raw_payload["event"] == "call_ended"
        assert record.raw_payload["call"]["transcript"] == call_ended_payload["call"]["transcript"]
        assert record.raw_payload["call"]["call_analysis"]["call_summary"] == "Recipient confirmed they are well."
        assert record.outcome == "recipient ok"
        assert record.outcome_source == OutcomeSource.TAG

    @pytest.mark.asyncio
    async def test_analysis_before_ended_is_kept(self, store, reconciler, call_ended_payload, call_analyzed_payload):
        await store.create(make_record("X1", status=CallStatus.IN_PROGRESS))
        await reconciler.process(call_analyzed_payload)

        await reconciler.process(call_ended_payload)

        record = await store.get("X1")
        assert record.status == CallStatus.COMPLETED
        assert record.raw_payload["event"] == "call_ended"
        assert record.raw_payload["call"]["call_analysis"]["custom_analysis_data"]["outcome"] == "Recipient_OK"
        assert record.outcome == "recipient ok"

    @pytest.mark.asyncio
    async def test_ended_with_analysis_replayed_after_analyzed(self, store, reconciler):
        await store.create(make_record("X1"))
        ended = retell_event(
            "call_ended", call_status="completed", disconnection_reason="user_hangup",
            call_analysis={"call_summary": "partial"}
        )
        await reconciler.process(ended)
        await reconciler.process(retell_event(
            "call_analyzed", call_status="completed", disconnection_reason="user_hangup",
            call_analysis={"user_sentiment": "Positive", "custom_analysis_data": {"outcome": "Recipient_OK"}}
        ))
        merged = await store.get("X1")

        result = await reconciler.process(ended)

        assert result.action == ReconcileAction.NOOP
        record = await store.get("X1")
        assert record.raw_payload == merged.raw_payload
        assert record.raw_payload["call"]["call_analysis"] == {
            "call_summary": "partial",
            "user_sentiment": "Positive",
            "custom_analysis_data": {"outcome": "Recipient_OK"},
        }
        assert record.outcome == "recipient ok"

    @pytest.mark.asyncio
    async def test_analyzed_then_ended_with_own_analysis(self, store, reconciler, call_analyzed_payload):
        await store.create(make_record("X1", status=CallStatus.IN_PROGRESS))
        await reconciler.process(call_analyzed_payload)

        await reconciler.process(retell_event(
            "call_ended", call_status="completed", disconnection_reason="user_hangup",
            call_analysis={"call_summary": "partial", "in_voicemail": False}
        ))

        analysis = (await store.get("X1")).raw_payload["call"]["call_analysis"]
        assert set(analysis) == {
            "call_summary", "user_sentiment", "call_successful", "custom_analysis_data", "in_voicemail"
        }
        assert analysis["call_summary"] == "Recipient confirmed they are well."
        assert analysis["custom_analysis_data"] == {"outcome": "Recipient_OK"}
        assert analysis["in_voicemail"] is False

    @pytest.mark.asyncio
    async def test_ended_with_analysis_then_analyzed(self, store, reconciler, call_analyzed_payload):
        await store.create(make_record("X1"))
        await reconciler.process(retell_event(
            "call_ended", call_status="completed", call_analysis={"in_voicemail": False}
        ))

        await reconciler.process(call_analyzed_payload)

        record = await store.get("X1")
        analysis = record.raw_payload["call"]["call_analysis"]
        assert analysis["in_voicemail"] is False
        assert analysis["call_summary"] == "Recipient confirmed they are well."
        assert record.raw_payload["event"] == "call_ended"
        assert record.outcome == "recipient ok"

    @pytest.mark.asyncio
    async def test_stray_call_started_does_not_revert_terminal(self, store, reconciler, call_ended_payload):
        await store.create(make_record("X1"))
        await reconciler.process(call_ended_payload)
        completed = await store.get("X1")

        result = await reconciler.process(retell_event("call_started", call_status="ringing", start_timestamp=990))

        assert result.action == ReconcileAction.NOOP
        record = await store.get("X1")
        assert record.status == CallStatus.COMPLETED
        assert record == completed

    @pytest.mark.asyncio
    async def test_call_started_does_not_move_in_progress_back_to_ringing(self, store, reconciler):
        await store.create(make_record("X1", status=CallStatus.IN_PROGRESS, started_at=at(1000)))

        result = await reconciler.process(retell_event("call_started", call_status="ringing"))

        assert result.action == ReconcileAction.NOOP
        assert (await store.get("X1")).status == CallStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_analysis_does_not_overwrite_terminal_status(self, store, reconciler):
        await store.create(make_record("X1"))
        await reconciler.process(retell_event("call_ended", call_status="busy"))

        await reconciler.process(retell_event(
            "call_analyzed", call_status="completed", disconnection_reason="user_hangup",
            call_analysis={"call_summary": "Nobody answered."}
        ))

        record = await store.get("X1")
        assert record.status == CallStatus.BUSY
        assert record.raw_payload["call"]["call_analysis"]["call_summary"] == "Nobody answered."

    @pytest.mark.asyncio
    async def test_analysis_sets_status_when_ended_was_lost(self, store, reconciler, call_analyzed_payload):
        await store.create(make_record("X1", status=CallStatus.IN_PROGRESS))

        await reconciler.process(call_analyzed_payload)

        assert (await store.get("X1")).status == CallStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_analysis_without_analysis_block_is_noop(self, store, reconciler):
        await store.create(make_record("X1", status=CallStatus.IN_PROGRESS))

        result = await reconciler.process(retell_event("call_analyzed", call_status="completed"))

        assert result.action == ReconcileAction.NOOP
        assert (await store.get("X1")).status == CallStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_late_call_ended_replaces_terminal_status(self, store, reconciler):
        await store.create(make_record("X1"))
        await reconciler.process(retell_event("call_ended", call_status="failed"))

        await reconciler.process(retell_event("call_ended", call_status="failed", disconnection_reason="call_transferred"))

        assert (await store.get("X1")).status == CallStatus.COMPLETED_TRANSFERRED

    @pytest.mark.asyncio
    async def test_unmapped_call_ended_does_not_clear_terminal_status(self, store, reconciler):
        await store.create(make_record("X1", status=CallStatus.COMPLETED))

        await reconciler.process(retell_event("call_ended", call_status="registered"))

        assert (await store.get("X1")).status == CallStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unmapped_call_ended_marks_active_call_unknown(self, store, reconciler):
        await store.create(make_record("X1", status=CallStatus.RINGING))

        await reconciler.process(retell_event("call_ended", call_status="registered"))

        assert (await store.get("X1")).status == CallStatus.UNKNOWN


class TestNoOpAndErrors:
    """Acknowledged no-ops and structured failures"""

    @pytest.mark.asyncio
    async def test_unhandled_event_type(self, store, reconciler):
        await store.create(make_record("X1"))
        before = await store.get("X1")

        result = await reconciler.process(retell_event("call_queued", call_status="queued"))

        assert result.ok
        assert result.action == ReconcileAction.IGNORED
        assert result.status_code == 200
        assert await store.get("X1") == before

    @pytest.mark.asyncio
    async def test_missing_call_id_never_touches_store(self):
        store = MagicMock()
        store.get = AsyncMock()
        store.update = AsyncMock()
        reconciler = CallReconciler(store)

        result = await reconciler.process({"event": "call_ended", "call": {"call_status": "completed"}})

        assert result.action == ReconcileAction.REJECTED
        assert result.status_code == 400
        assert result.error["error"] == "MISSING_CORRELATION_ID"
        store.get.assert_not_called()
        store.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_body(self, reconciler):
        result = await reconciler.process(b"{not json")

        assert result.status_code == 400
        assert result.error["error"] == "MALFORMED_PAYLOAD"

    @pytest.mark.asyncio
    async def test_record_not_found(self, reconciler):
        result = await reconciler.process(retell_event("call_ended", call_id="missing"))

        assert result.action == ReconcileAction.REJECTED
        assert result.status_code == 404
        assert result.error["error"] == "RECORD_NOT_FOUND"
        assert result.external_call_id == "missing"

    @pytest.mark.asyncio
    async def test_store_timeout_is_store_unavailable(self):
        async def slow_get(external_call_id):
            await asyncio.sleep(1)

        store = MagicMock()
        store.get = slow_get
        reconciler = CallReconciler(store, store_timeout=0.01)

        result = await reconciler.process(retell_event("call_ended"))

        assert result.status_code == 500
        assert result.error["error"] == "STORE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_store_error_is_store_unavailable(self):
        store = MagicMock()
        store.get = AsyncMock(side_effect=ConnectionError("Not connected to database"))
        reconciler = CallReconciler(store)

        result = await reconciler.process(retell_event("call_ended"))

        assert result.status_code == 500
        assert result.error["error"] == "STORE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_caller_deadline_overrides_default(self):
        async def slow_get(external_call_id):
            await asyncio.sleep(0.2)

        store = MagicMock()
        store.get = slow_get
        reconciler = CallReconciler(store, store_timeout=5.0)

        result = await reconciler.process(retell_event("call_ended"), store_timeout=0.01)

        assert result.error["error"] == "STORE_UNAVAILABLE"


class ConflictingStore(InMemoryCallRecordStore):
    """Store that reports a version conflict for the first N updates"""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.update_calls = 0

    async def update(self, external_call_id, fields, expected_version=None):
        self.update_calls += 1
        if self.update_calls <= self.conflicts:
            raise StoreConflictError(external_call_id, expected_version)
        return await super().update(external_call_id, fields, expected_version)


class TestConcurrency:
    """Version conflicts and concurrent deliveries"""

    @pytest.mark.asyncio
    async def test_conflict_retried_once(self, call_ended_payload):
        store = ConflictingStore(conflicts=1)
        await store.create(make_record("X1"))
        reconciler = CallReconciler(store, max_attempts=2)

        result = await reconciler.process(call_ended_payload)

        assert result.action == ReconcileAction.APPLIED
        assert store.update_calls == 2
        assert (await store.get("X1")).status == CallStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_persistent_conflict_is_update_conflict(self, call_ended_payload):
        store = ConflictingStore(conflicts=5)
        await store.create(make_record("X1"))
        reconciler = CallReconciler(store, max_attempts=2)

        result = await reconciler.process(call_ended_payload)

        assert result.status_code == 500
        assert result.error["error"] == "UPDATE_CONFLICT"
        assert result.error["details"]["attempts"] == 2
        assert store.update_calls == 2
        assert (await store.get("X1")).status == CallStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_concurrent_ended_and_analyzed(self, store, reconciler, call_ended_payload, call_analyzed_payload):
        await store.create(make_record("X1", status=CallStatus.IN_PROGRESS))

        results = await asyncio.gather(
            reconciler.process(call_ended_payload),
            reconciler.process(call_analyzed_payload),
        )

        assert all(result.ok for result in results)
        record = await store.get("X1")
        assert record.status == CallStatus.COMPLETED
        assert record.duration_seconds == 30
        assert record.outcome == "recipient ok"
        assert "call_analysis" in record.raw_payload["call"]
        assert record.raw_payload["call"]["transcript"] == call_ended_payload["call"]["transcript"]

    @pytest.mark.asyncio
    async def test_different_calls_do_not_share_a_lock(self, store, reconciler):
        await store.create(make_record("A"))
        await store.create(make_record("B"))

        async with reconciler._locks.hold("A"):
            result = await asyncio.wait_for(
                reconciler.process(retell_event("call_started", call_id="B")),
                timeout=1.0
            )

        assert result.action == ReconcileAction.APPLIED
        assert len(reconciler._locks) == 0


class TestResolveStatus:
    """Ordering rules of the status state machine"""

    @pytest.mark.parametrize("current,proposed,expected", [
        (CallStatus.SCHEDULED, CallStatus.RINGING, CallStatus.RINGING),
        (CallStatus.RINGING, CallStatus.IN_PROGRESS, CallStatus.IN_PROGRESS),
        (CallStatus.IN_PROGRESS, CallStatus.RINGING, CallStatus.IN_PROGRESS),
        (CallStatus.RINGING, CallStatus.COMPLETED, CallStatus.COMPLETED),
        (CallStatus.IN_PROGRESS, CallStatus.UNKNOWN, CallStatus.UNKNOWN),
        (CallStatus.UNKNOWN, CallStatus.RINGING, CallStatus.UNKNOWN),
        (CallStatus.UNKNOWN, CallStatus.FAILED, CallStatus.FAILED),
        (CallStatus.COMPLETED, CallStatus.RINGING, CallStatus.COMPLETED),
        (CallStatus.FAILED, CallStatus.IN_PROGRESS, CallStatus.FAILED),
        (CallStatus.BUSY, CallStatus.COMPLETED, CallStatus.BUSY),
    ])
    def test_transitions(self, current, proposed, expected):
        assert resolve_status(current, proposed) == expected

    def test_terminal_overwrite_only_when_allowed(self):
        assert resolve_status(CallStatus.FAILED, CallStatus.COMPLETED, allow_terminal_overwrite=True) == CallStatus.COMPLETED
        assert resolve_status(CallStatus.FAILED, CallStatus.UNKNOWN, allow_terminal_overwrite=True) == CallStatus.FAILED


def test_merge_payload_is_deep_and_non_destructive():
    base = {"event": "call_ended", "call": {"call_id": "X1", "call_analysis": {"call_summary": "ok"}}}
    merged = merge_payload(base, {"call": {"call_analysis": {"user_sentiment": "Positive"}}})

    assert merged == {
        "event": "call_ended",
        "call": {"call_id": "X1", "call_analysis": {"call_summary": "ok", "user_sentiment": "Positive"}},
    }
    assert base["call"]["call_analysis"] == {"call_summary": "ok"}

