"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .videos import SnowflakeConfig, SnowflakeConnection, VideoRepository

__all__ = ["SnowflakeConfig", "SnowflakeConnection", "VideoRepository"]
