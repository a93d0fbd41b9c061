"""
Database Adapter and Store Base Classes

This module defines the abstract interfaces that database adapters and
call record stores must implement.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any

from welfare_check.models.call import CallRecord


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    All SQL backends used by SqlCallRecordStore implement this interface.
    """

    @abstractmethod
    async def connect(self) -> bool:
        """
        Establish connection to the database.
        Returns True if successful, False otherwise.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the database connection."""
        pass

    @abstractmethod
    async def initialize_schema(self) -> bool:
        """
        Create necessary tables if they don't exist.
        Returns True if successful, False otherwise.
        """
        pass

    @abstractmethod
    async def execute(self, query: str, params: tuple = ()) -> int:
        """Execute a statement and return the number of rows affected."""
        pass

    @abstractmethod
    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        """Execute query and return single row as dict."""
        pass

    @abstractmethod
    async def fetch_all(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute query and return all rows as list of dicts."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if database connection is active."""
        pass


class CallRecordStore(ABC):
    """
    Abstract interface for the call record store.

    The reconciler only needs keyed reads and versioned partial updates.
    Record creation belongs to the scheduling side and is exposed here so
    that side and the tests share one interface.
    """

    async def initialize(self) -> bool:
        """Prepare the store for use."""
        return True

    async def close(self) -> None:
        """Release store resources."""
        return None

    def is_ready(self) -> bool:
        """Whether the store can serve reads and writes right now."""
        return True

    @abstractmethod
    async def create(self, record: CallRecord) -> CallRecord:
        """Insert a new call record."""
        pass

    @abstractmethod
    async def get(self, external_call_id: str) -> Optional[CallRecord]:
        """Get a call record by provider call id, None when absent."""
        pass

    @abstractmethod
    async def update(
        self,
        external_call_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> CallRecord:
        """
        Apply a partial update and bump the record version.

        Raises:
            RecordNotFoundError: No record for the call id
            StoreConflictError: expected_version does not match the stored version
        """
        pass
