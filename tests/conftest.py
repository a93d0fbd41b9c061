"""
Pytest configuration and fixtures
"""

import asyncio
import os
import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("WEBHOOK_SIGNATURE_REQUIRED", "false")
os.environ.setdefault("TIMESTAMP_UNIT", "seconds")

from fastapi.testclient import TestClient

from welfare_check.db.memory import InMemoryCallRecordStore
from welfare_check.models.call import CallRecord, CallStatus
from welfare_check.services.reconciler import CallReconciler


def make_record(external_call_id: str = "X1", **overrides) -> CallRecord:
    """A freshly scheduled welfare call record"""
    fields = {
        "external_call_id": external_call_id,
        "user_id": "user-123",
        "recipient_name": "Margaret Hughes",
        "phone_number": "+447700900123",
        "message": "Checking in after your hospital discharge.",
        "status": CallStatus.SCHEDULED,
    }
    fields.update(overrides)
    return CallRecord(**fields)


def retell_event(event: str, call_id: str = "X1", **call_fields) -> dict:
    """A Retell webhook body"""
    return {"event": event, "call": {"call_id": call_id, **call_fields}}


@pytest.fixture
def store():
    """Empty in-memory call record store"""
    return InMemoryCallRecordStore()


@pytest.fixture
def reconciler(store):
    """Reconciler over the in-memory store with no retry delay"""
    return CallReconciler(store, store_timeout=1.0, max_attempts=2, timestamp_unit="seconds")


@pytest.fixture
def seeded_store(store):
    """Store holding one scheduled record for call X1"""
    asyncio.run(store.create(make_record("X1")))
    return store


@pytest.fixture
def test_client(seeded_store):
    """Fixture for test client backed by the seeded store"""
    from welfare_check.main import create_app
    app = create_app(store=seeded_store)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def call_ended_payload():
    """call_ended body for a welfare call the recipient hung up"""
    return retell_event(
        "call_ended",
        call_status="completed",
        disconnection_reason="user_hangup",
        start_timestamp=1000,
        end_timestamp=1030,
        transcript="Agent: Hello Margaret, just checking in.\nUser: I'm fine, thank you.",
    )


@pytest.fixture
def call_analyzed_payload():
    """call_analyzed body carrying a post-call analysis block"""
    return retell_event(
        "call_analyzed",
        call_status="completed",
        disconnection_reason="user_hangup",
        call_analysis={
            "call_summary": "Recipient confirmed they are well.",
            "user_sentiment": "Positive",
            "call_successful": True,
            "custom_analysis_data": {"outcome": "Recipient_OK"},
        },
    )
