"""
Video storage backends.

Local filesystem or Cloudflare R2 (S3-compatible API), selected once from
configuration, plus best-effort cleanup of stored bytes.
"""

from .cleanup import CleanupCoordinator
from .client import (
    MediaClient,
    MockMediaClient,
    R2MediaClient,
    RemoteUpload,
    StorageConfig,
    StorageError,
    create_media_client,
)
from .selector import (
    LocalBackend,
    RemoteBackend,
    StorageBackend,
    StorageSelector,
    resolve_storage_backend,
)

__all__ = [
    "CleanupCoordinator",
    "LocalBackend",
    "MediaClient",
    "MockMediaClient",
    "R2MediaClient",
    "RemoteBackend",
    "RemoteUpload",
    "StorageBackend",
    "StorageConfig",
    "StorageError",
    "StorageSelector",
    "create_media_client",
    "resolve_storage_backend",
]
