"""Key-value blob backends for persisted engine state."""
import sqlite3
from pathlib import Path
from typing import Dict, Optional, Protocol

import structlog
from pydantic import BaseModel

from feed_engine.core.errors import StorageError

logger = structlog.get_logger(__name__)


class KeyValueStore(Protocol):
    """Minimal blob storage contract: read a key, overwrite a key."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local backend, used in tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SQLiteConfig(BaseModel):
    """Configuration for SQLite storage."""

    db_path: str


class SQLiteKeyValueStore:
    """SQLite implementation of the key-value blob contract."""

    def __init__(self, config: SQLiteConfig):
        """Initialize SQLite storage.

        Args:
            config: SQLite configuration
        """
        self.db_path = Path(config.db_path)
        if config.db_path != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._memory_conn: Optional[sqlite3.Connection] = None

        with self._get_connection() as conn:
            with open(Path(__file__).parent / "schema.sql") as f:
                conn.executescript(f.read())

    def _get_connection(self) -> sqlite3.Connection:
        """Get SQLite connection with row factory."""
        # An in-memory database only lives as long as its connection
        if str(self.db_path) == ":memory:":
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(":memory:")
                self._memory_conn.row_factory = sqlite3.Row
            return self._memory_conn
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def get(self, key: str) -> Optional[str]:
        """Read the blob stored under ``key``.

        Args:
            key: Storage key

        Returns:
            The stored value, or None when the key is absent
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row["value"] if row is not None else None

    def set(self, key: str, value: str) -> None:
        """Overwrite the blob stored under ``key``.

        Args:
            key: Storage key
            value: Serialized blob

        Raises:
            StorageError: If the write fails
        """
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
        except sqlite3.Error as e:
            logger.error("Error writing key", key=key, error=str(e))
            raise StorageError(f"Failed to persist {key}: {e}", details={"key": key}) from e
