"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.
Includes mock mode with in-memory storage for local development.

Using the repository pattern means most code never touches this module
directly - it goes through VideoRepository which handles the translation
between domain models and database rows.
"""

import logging
import re
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional

from .repositories.videos import VIDEO_COLUMNS, SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _load_private_key(key_path: str) -> bytes:
    """
    Load private key from file for key-pair authentication.

    Snowflake requires the private key as DER-encoded PKCS8 bytes, not a
    file path.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    with open(key_path, 'rb') as key_file:
        private_key = serialization.load_pem_private_key(
            key_file.read(),
            password=None,
            backend=default_backend()
        )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If private_key_path is set, uses key-pair auth
    - Otherwise, uses password auth

    Usage:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            # do work
            conn.commit()
    """
    import snowflake.connector

    conn = None
    try:
        connect_params = {
            'account': config.account,
            'user': config.user,
            'database': config.database,
            'schema': config.schema,
            'warehouse': config.warehouse,
            'role': config.role,
            'client_session_keep_alive': True,
        }

        if config.private_key_path:
            logger.info("Using key-pair authentication for Snowflake")
            connect_params['private_key'] = _load_private_key(config.private_key_path)
        elif config.password:
            logger.info("Using password authentication for Snowflake")
            connect_params['password'] = config.password
        else:
            raise SnowflakeConnectionError(
                "Either password or private_key_path must be provided"
            )

        try:
            conn = snowflake.connector.connect(**connect_params)
        except snowflake.connector.errors.DatabaseError as e:
            logger.error(
                "Snowflake connection failed",
                extra={"error": str(e), "account": config.account}
            )
            raise SnowflakeConnectionError(f"Database connection failed: {e}") from e

        logger.debug(
            "Established Snowflake connection",
            extra={
                "account": config.account,
                "database": config.database,
                "schema": config.schema,
            }
        )

        yield conn

    finally:
        if conn:
            try:
                conn.close()
                logger.debug("Closed Snowflake connection")
            except Exception as e:
                logger.warning(
                    "Error closing Snowflake connection",
                    extra={"error": str(e)}
                )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

_VIDEO_FIELDS = tuple(name.strip() for name in VIDEO_COLUMNS.split(","))

_WHITESPACE = re.compile(r"\s+")

# Transaction control and DDL are accepted and ignored
_NO_OP_PREFIXES = ("BEGIN", "COMMIT", "ROLLBACK", "CREATE")


class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support
    VideoRepository operations without a real database. Queries are
    recognized by pattern matching on the normalized SQL text. Anything
    else raises NotImplementedError.

    Unlike Snowflake, the mock enforces the videos -> subtopics foreign
    key through the same guarded statements the repository issues.
    """

    def __init__(self, storage: dict, lock: threading.Lock) -> None:
        self._storage = storage
        self._lock = lock
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        """Execute a query against mock storage."""
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        sql = _WHITESPACE.sub(" ", query).strip().upper()
        params = tuple(params or ())

        self._results = []
        self._rowcount = 0

        with self._lock:
            if sql.startswith('SELECT'):
                self._handle_select(sql, params)
            elif sql.startswith('INSERT INTO VIDEOS'):
                self._handle_insert_video(params)
            elif sql.startswith('UPDATE VIDEOS'):
                self._handle_update_video(params)
            elif sql.startswith('DELETE FROM VIDEOS'):
                self._handle_delete_video(params)
            elif not sql.startswith(_NO_OP_PREFIXES):
                raise NotImplementedError(f"Mock cursor does not support: {sql[:60]}")

        return self

    def _handle_insert_video(self, params: tuple) -> None:
        (video_id, user_id, original_name, filename, mime_type,
         size_bytes, storage_path, created_at, subtopic_id) = params

        if str(subtopic_id) not in self._storage['subtopics']:
            return

        self._storage['videos'][str(video_id)] = {
            'id': str(video_id),
            'subtopic_id': str(subtopic_id),
            'user_id': user_id,
            'original_name': original_name,
            'filename': filename,
            'mime_type': mime_type,
            'size_bytes': size_bytes,
            'storage_path': storage_path,
            'created_at': created_at,
        }
        self._rowcount = 1

    def _handle_update_video(self, params: tuple) -> None:
        new_subtopic_id, video_id, user_id, guard_subtopic_id = params

        row = self._storage['videos'].get(str(video_id))
        if row is None or row['user_id'] != user_id:
            return
        if str(guard_subtopic_id) not in self._storage['subtopics']:
            return

        row['subtopic_id'] = str(new_subtopic_id)
        self._rowcount = 1

    def _handle_delete_video(self, params: tuple) -> None:
        video_id, user_id = params

        row = self._storage['videos'].get(str(video_id))
        if row is None or row['user_id'] != user_id:
            return

        del self._storage['videos'][str(video_id)]
        self._rowcount = 1

    def _handle_select(self, sql: str, params: tuple) -> None:
        videos = self._storage['videos']

        if sql == 'SELECT 1':
            self._results = [(1,)]

        elif 'FROM SUBTOPICS' in sql:
            subtopic_id = str(params[0])
            if subtopic_id in self._storage['subtopics']:
                self._results = [(subtopic_id,)]

        elif sql.startswith('SELECT COUNT(*) FROM VIDEOS'):
            if 'WHERE SUBTOPIC_ID' in sql:
                count = sum(1 for row in videos.values() if row['subtopic_id'] == params[0])
            else:
                count = len(videos)
            self._results = [(count,)]

        elif sql.startswith('SELECT ID, FILENAME, STORAGE_PATH FROM VIDEOS'):
            video_id, user_id = params
            row = videos.get(str(video_id))
            if row is not None and row['user_id'] == user_id:
                self._results = [(row['id'], row['filename'], row['storage_path'])]

        elif 'WHERE ID = %S' in sql:
            row = videos.get(str(params[0]))
            if row is not None:
                self._results = [self._as_tuple(row)]

        else:
            rows = list(videos.values())
            remaining = list(params)

            if 'WHERE SUBTOPIC_ID' in sql:
                subtopic_id = remaining.pop(0)
                rows = [row for row in rows if row['subtopic_id'] == subtopic_id]

            rows.sort(key=lambda row: (row['created_at'], row['id']), reverse=True)

            if 'LIMIT' in sql:
                limit, offset = remaining
                rows = rows[offset:offset + limit]

            self._results = [self._as_tuple(row) for row in rows]

    @staticmethod
    def _as_tuple(row: dict) -> tuple:
        return tuple(row[field] for field in _VIDEO_FIELDS)

    def fetchone(self):
        """Fetch one row from results."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return self._results

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass

    @property
    def rowcount(self) -> int:
        """Return number of rows affected."""
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores data in memory using a simple dictionary structure.
    This enables testing the full API without a real database.

    Not suitable for production, but perfect for:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {id: row_dict}}
        self._storage: dict[str, dict[str, dict]] = {
            'subtopics': {},
            'videos': {},
        }
        # repository calls arrive from worker threads
        self._lock = threading.Lock()

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self._storage, self._lock)

    def commit(self) -> None:
        """Commit transaction (no-op for mock, always auto-commits)."""
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        """Rollback transaction (no-op for mock)."""
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Close connection (no-op for mock)."""
        logger.debug("Mock connection close")

    # Helper methods for testing
    def _add_subtopic(self, subtopic_id: str, topic_id: str = "topic", name: Optional[str] = None) -> None:
        """Add subtopic to mock storage (for test setup)."""
        self._storage['subtopics'][subtopic_id] = {
            'id': subtopic_id,
            'topic_id': topic_id,
            'name': name or subtopic_id,
        }

    def _add_video(self, **row) -> None:
        """Add a video row directly, bypassing the foreign key (for test setup)."""
        if not isinstance(row.get('created_at'), datetime):
            raise ValueError("created_at must be a datetime")
        self._storage['videos'][str(row['id'])] = {field: row[field] for field in _VIDEO_FIELDS}

    def _get_video(self, video_id: str) -> Optional[dict]:
        """Get video row from mock storage (for test assertions)."""
        return self._storage['videos'].get(str(video_id))

    def _video_count(self) -> int:
        return len(self._storage['videos'])

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        for table in self._storage.values():
            table.clear()


@contextmanager
def get_mock_snowflake_connection() -> Generator[MockSnowflakeConnection, None, None]:
    """
    Provide mock Snowflake connection for local development.

    Returns a connection that stores data in memory. Perfect for
    testing and local development without provisioning Snowflake.
    """
    conn = MockSnowflakeConnection()
    try:
        yield conn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Create Snowflake connection based on configuration.

    Factory function that returns either a real or mock connection
    depending on mock_mode flag.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return mock connection for testing

    Yields:
        SnowflakeConnection implementation (real or mock)
    """
    if mock_mode:
        with get_mock_snowflake_connection() as conn:
            yield conn
    else:
        if config is None:
            raise ValueError("config is required when not in mock mode")

        with get_snowflake_connection(config) as conn:
            yield conn
