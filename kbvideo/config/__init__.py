"""
Application configuration using Pydantic settings.

Configuration comes from environment variables with sensible defaults.
Remote storage is enabled by the presence of R2 credentials.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
