"""
Turso Database Adapter

Implementation of the DatabaseAdapter interface for Turso (libSQL).
Turso is SQLite-compatible; a local ``file:`` URL works for development.
"""

import re
from typing import Optional, List, Dict, Any

from welfare_check.core.config import settings
from welfare_check.core.logging import get_logger
from welfare_check.db.base import DatabaseAdapter
from welfare_check.db.models import TURSO_SCHEMA

logger = get_logger(__name__)

try:
    import libsql_client
    LIBSQL_AVAILABLE = True
except ImportError:
    LIBSQL_AVAILABLE = False
    logger.warning("libsql_client not installed. Run: pip install libsql-client")


class TursoAdapter(DatabaseAdapter):
    """
    Turso (libSQL) database adapter.

    Uses the libsql_client library for async database operations.
    """

    def __init__(self, db_url: Optional[str] = None, auth_token: Optional[str] = None):
        """
        Initialize Turso adapter.

        Args:
            db_url: Turso database URL (defaults to settings.turso_db_url)
            auth_token: Turso auth token (defaults to settings.turso_db_auth_token)
        """
        self.db_url = db_url or settings.turso_db_url
        self.auth_token = auth_token or settings.turso_db_auth_token
        self._client = None
        self._connected = False

    async def connect(self) -> bool:
        """Establish connection to Turso database."""
        if not LIBSQL_AVAILABLE:
            logger.error("Cannot connect: libsql_client not installed")
            return False

        if not self.db_url:
            logger.error("Cannot connect: Missing TURSO_DB_URL")
            return False

        try:
            self._client = libsql_client.create_client(
                self.db_url,
                auth_token=self.auth_token
            )
            self._connected = True
            logger.info(f"Connected to Turso database: {self.db_url}")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Turso: {e}")
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """Close the Turso connection."""
        if self._client:
            try:
                await self._client.close()
            except Exception as e:
                logger.warning(f"Error closing Turso connection: {e}")
            finally:
                self._client = None
                self._connected = False
                logger.info("Disconnected from Turso database")

    async def initialize_schema(self) -> bool:
        """Create the call_logs table if it doesn't exist."""
        if not self._connected or not self._client:
            logger.error("Cannot initialize schema: Not connected")
            return False

        # Remove SQL comments before splitting
        schema = re.sub(r'--.*$', '', TURSO_SCHEMA, flags=re.MULTILINE)
        statements = [stmt.strip() for stmt in schema.split(";") if stmt.strip()]

        try:
            await self._client.batch(statements)
        except Exception as e:
            logger.error(f"Failed to initialize Turso schema: {e}")
            return False

        logger.info("Turso schema initialized")
        return True

    def _ensure_connected(self) -> None:
        if not self._connected or not self._client:
            raise ConnectionError("Not connected to database")

    async def execute(self, query: str, params: tuple = ()) -> int:
        """Execute a statement and return the number of rows affected."""
        self._ensure_connected()
        try:
            result = await self._client.execute(query, params)
        except Exception as e:
            logger.error(f"Query execution failed: {e}\nQuery: {query}")
            raise
        return getattr(result, "rows_affected", 0) or 0

    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        """Execute query and return single row as dict."""
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None

    async def fetch_all(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute query and return all rows as list of dicts."""
        self._ensure_connected()
        try:
            result = await self._client.execute(query, params)
        except Exception as e:
            logger.error(f"Query execution failed: {e}\nQuery: {query}")
            raise

        rows = getattr(result, "rows", []) or []
        columns = getattr(result, "columns", []) or []
        return [dict(zip(columns, row)) for row in rows]

    def is_connected(self) -> bool:
        """Check if database connection is active."""
        return self._connected and self._client is not None
