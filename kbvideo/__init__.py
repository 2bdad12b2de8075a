"""
Knowledge-base video API - durable storage for subtopic videos.

This package contains the complete application:
- core: Framework-agnostic video asset logic (models, URLs, pipeline)
- infrastructure: Upload staging, R2 media storage, Snowflake persistence
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
