"""
Knowledge base schema.

Snowflake accepts PRIMARY KEY / REFERENCES declarations but only records
them; VideoRepository enforces the subtopic reference in its statements.
"""

import logging

from .repositories.videos import SnowflakeConnection

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS categories (
        id VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        description VARCHAR,
        created_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS topics (
        id VARCHAR PRIMARY KEY,
        category_id VARCHAR NOT NULL REFERENCES categories (id),
        name VARCHAR NOT NULL,
        description VARCHAR,
        created_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS subtopics (
        id VARCHAR PRIMARY KEY,
        topic_id VARCHAR NOT NULL REFERENCES topics (id),
        name VARCHAR NOT NULL,
        description VARCHAR,
        created_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS videos (
        id VARCHAR PRIMARY KEY,
        subtopic_id VARCHAR NOT NULL REFERENCES subtopics (id),
        user_id VARCHAR NOT NULL,
        original_name VARCHAR NOT NULL,
        filename VARCHAR NOT NULL,
        mime_type VARCHAR NOT NULL,
        size_bytes NUMBER NOT NULL,
        storage_path VARCHAR NOT NULL,
        created_at TIMESTAMP_TZ NOT NULL
    )
    """,
)


def ensure_schema(connection: SnowflakeConnection) -> int:
    """
    Create any missing knowledge base tables.

    Every statement is idempotent, so this is safe to run on each deploy.
    Returns the number of statements executed.
    """
    cursor = connection.cursor()

    try:
        for statement in SCHEMA_STATEMENTS:
            cursor.execute(statement)
        connection.commit()
    finally:
        cursor.close()

    logger.info(
        "Schema ensured",
        extra={"statements": len(SCHEMA_STATEMENTS)}
    )

    return len(SCHEMA_STATEMENTS)
