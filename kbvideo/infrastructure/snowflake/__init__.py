"""
Snowflake persistence for video records.
"""

from .client import (
    MockSnowflakeConnection,
    SnowflakeConnectionError,
    create_snowflake_connection,
)
from .repositories import SnowflakeConfig, SnowflakeConnection, VideoRepository
from .schema import ensure_schema

__all__ = [
    "MockSnowflakeConnection",
    "SnowflakeConfig",
    "SnowflakeConnection",
    "SnowflakeConnectionError",
    "VideoRepository",
    "create_snowflake_connection",
    "ensure_schema",
]
