"""
SQL Call Record Store

This module provides a CallRecordStore backed by any DatabaseAdapter.
Updates are compare-and-swap on the ``version`` column.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from welfare_check.core.config import settings
from welfare_check.core.exceptions import DuplicateRecordError, RecordNotFoundError, StoreConflictError
from welfare_check.core.logging import get_logger
from welfare_check.db.base import DatabaseAdapter, CallRecordStore
from welfare_check.db.models import CALL_LOG_COLUMNS
from welfare_check.models.call import CallRecord, MUTABLE_FIELDS, utcnow

logger = get_logger(__name__)


class SqlCallRecordStore(CallRecordStore):
    """
    Call record store on top of a DatabaseAdapter.

    Rows live in the ``call_logs`` table; ``raw_payload`` is stored as JSON
    text and timestamps as ISO-8601 strings.
    """

    def __init__(self, adapter: DatabaseAdapter):
        """
        Initialize the store with a database adapter.

        Args:
            adapter: A DatabaseAdapter implementation (Turso, etc.)
        """
        self.adapter = adapter

    async def initialize(self) -> bool:
        """Connect and create the schema."""
        connected = await self.adapter.connect()
        if not connected:
            return False
        return await self.adapter.initialize_schema()

    async def close(self) -> None:
        """Close the database connection."""
        await self.adapter.disconnect()

    def is_ready(self) -> bool:
        """Ready while the adapter holds a live connection."""
        return self.adapter.is_connected()

    async def create(self, record: CallRecord) -> CallRecord:
        if await self.get(record.external_call_id) is not None:
            raise DuplicateRecordError(record.external_call_id)

        placeholders = ", ".join("?" for _ in CALL_LOG_COLUMNS)
        query = f"INSERT INTO call_logs ({', '.join(CALL_LOG_COLUMNS)}) VALUES ({placeholders})"
        row = record.model_dump()
        params = tuple(self._to_db(column, row[column]) for column in CALL_LOG_COLUMNS)

        await self.adapter.execute(query, params)
        logger.info(f"Created call record {record.id} for call {record.external_call_id}")
        return record

    async def get(self, external_call_id: str) -> Optional[CallRecord]:
        row = await self.adapter.fetch_one(
            "SELECT * FROM call_logs WHERE external_call_id = ?",
            (external_call_id,)
        )
        if not row:
            return None
        return self._row_to_call_record(row)

    async def update(
        self,
        external_call_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> CallRecord:
        immutable = set(fields) - MUTABLE_FIELDS
        if immutable:
            raise ValueError(f"Fields cannot be updated: {sorted(immutable)}")

        values = {**fields, "updated_at": utcnow()}
        set_clauses = [f"{key} = ?" for key in values]
        set_clauses.append("version = version + 1")
        params = [self._to_db(key, value) for key, value in values.items()]

        query = f"UPDATE call_logs SET {', '.join(set_clauses)} WHERE external_call_id = ?"
        params.append(external_call_id)
        if expected_version is not None:
            query += " AND version = ?"
            params.append(expected_version)

        affected = await self.adapter.execute(query, tuple(params))
        if affected == 0:
            if await self.get(external_call_id) is None:
                raise RecordNotFoundError(external_call_id)
            raise StoreConflictError(external_call_id, expected_version)

        record = await self.get(external_call_id)
        if record is None:
            raise RecordNotFoundError(external_call_id)
        logger.debug(f"Updated call {external_call_id} to version {record.version}")
        return record

    # ==================== Helper Methods ====================

    def _to_db(self, column: str, value: Any) -> Any:
        """Convert a model value into its column representation."""
        if column == "raw_payload":
            return json.dumps(value or {}, default=str)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, Enum):
            return value.value
        return value

    def _row_to_call_record(self, row: Dict[str, Any]) -> CallRecord:
        """Convert a database row to CallRecord."""
        return CallRecord(
            id=row["id"],
            external_call_id=row["external_call_id"],
            user_id=row.get("user_id"),
            recipient_name=row["recipient_name"],
            phone_number=row["phone_number"],
            message=row.get("message") or "",
            status=row["status"],
            outcome=row.get("outcome"),
            outcome_source=row.get("outcome_source") or "none",
            started_at=self._parse_datetime(row.get("started_at")),
            ended_at=self._parse_datetime(row.get("ended_at")),
            duration_seconds=row.get("duration_seconds"),
            created_at=self._parse_datetime(row.get("created_at")) or utcnow(),
            updated_at=self._parse_datetime(row.get("updated_at")),
            raw_payload=self._parse_json_dict(row.get("raw_payload")),
            version=row.get("version") or 0,
        )

    def _parse_datetime(self, value: Any) -> Optional[datetime]:
        """Parse datetime from string or return as-is if already datetime."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            return None

    def _parse_json_dict(self, value: Any) -> Dict[str, Any]:
        """Parse JSON dict from string or return as-is if already dict."""
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        try:
            parsed = json.loads(value)
            return parsed if isinstance(parsed, dict) else {}
        except (json.JSONDecodeError, TypeError):
            return {}


def create_store(backend: Optional[str] = None) -> CallRecordStore:
    """
    Build a call record store for the configured backend.

    Args:
        backend: "memory" or "turso" (defaults to settings.store_backend)

    Returns:
        A new, not yet initialized, CallRecordStore
    """
    backend = (backend or settings.store_backend).lower()

    if backend == "turso":
        from welfare_check.db.adapters.turso import TursoAdapter
        logger.info("Using Turso call record store")
        return SqlCallRecordStore(TursoAdapter())

    if backend != "memory":
        logger.warning(f"Unknown store backend {backend!r}, falling back to memory")

    from welfare_check.db.memory import InMemoryCallRecordStore
    logger.info("Using in-memory call record store")
    return InMemoryCallRecordStore()
