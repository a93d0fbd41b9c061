"""
Call Record Store

This module provides the store abstraction used by the reconciler,
with an in-memory backend and a SQL backend on a database adapter.

Usage:
    from welfare_check.db import create_store

    store = create_store()
    await store.initialize()
    record = await store.get(external_call_id)
"""

from welfare_check.db.base import DatabaseAdapter, CallRecordStore
from welfare_check.db.memory import InMemoryCallRecordStore
from welfare_check.db.repository import SqlCallRecordStore, create_store

__all__ = [
    "DatabaseAdapter",
    "CallRecordStore",
    "InMemoryCallRecordStore",
    "SqlCallRecordStore",
    "create_store",
]
