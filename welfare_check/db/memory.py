"""
In-memory Call Record Store

Versioned store used for local runs and tests. Records are copied on the
way in and out so callers never share mutable state with the store.
"""

import asyncio
import copy
from typing import Optional, Dict, Any

from welfare_check.core.exceptions import DuplicateRecordError, RecordNotFoundError, StoreConflictError
from welfare_check.core.logging import get_logger
from welfare_check.db.base import CallRecordStore
from welfare_check.models.call import CallRecord, MUTABLE_FIELDS, utcnow

logger = get_logger(__name__)


class InMemoryCallRecordStore(CallRecordStore):
    """Call records held in a dict keyed by provider call id"""

    def __init__(self):
        self._records: Dict[str, CallRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: CallRecord) -> CallRecord:
        async with self._lock:
            if record.external_call_id in self._records:
                raise DuplicateRecordError(record.external_call_id)
            self._records[record.external_call_id] = record.model_copy(deep=True)
        logger.info(f"Created call record {record.id} for call {record.external_call_id}")
        return record.model_copy(deep=True)

    async def get(self, external_call_id: str) -> Optional[CallRecord]:
        record = self._records.get(external_call_id)
        return record.model_copy(deep=True) if record else None

    async def update(
        self,
        external_call_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> CallRecord:
        immutable = set(fields) - MUTABLE_FIELDS
        if immutable:
            raise ValueError(f"Fields cannot be updated: {sorted(immutable)}")

        async with self._lock:
            current = self._records.get(external_call_id)
            if current is None:
                raise RecordNotFoundError(external_call_id)
            if expected_version is not None and current.version != expected_version:
                raise StoreConflictError(external_call_id, expected_version)

            updated = current.model_copy(
                update={
                    **copy.deepcopy(fields),
                    "version": current.version + 1,
                    "updated_at": utcnow(),
                },
                deep=True,
            )
            self._records[external_call_id] = updated

        logger.debug(f"Updated call {external_call_id} to version {updated.version}")
        return updated.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._records)
