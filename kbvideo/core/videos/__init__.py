"""
Video asset storage logic.

Contains the domain models, error taxonomy, URL resolution and the upload
pipeline that ties the storage collaborators together.
"""

from .errors import (
    ForeignKeyViolation,
    PayloadTooLarge,
    StorageBackendError,
    UnexpectedError,
    ValidationError,
    VideoNotFound,
    VideoServiceError,
)
from .models import (
    BackendKind,
    DeletedVideo,
    Page,
    ResolvedUrls,
    StagedFile,
    StorageResult,
    UploadStage,
    VideoAsset,
    is_remote_location,
)
from .pipeline import VideoPipeline
from .urls import resolve

__all__ = [
    "BackendKind",
    "DeletedVideo",
    "ForeignKeyViolation",
    "Page",
    "PayloadTooLarge",
    "ResolvedUrls",
    "StagedFile",
    "StorageBackendError",
    "StorageResult",
    "UnexpectedError",
    "UploadStage",
    "ValidationError",
    "VideoAsset",
    "VideoNotFound",
    "VideoPipeline",
    "VideoServiceError",
    "is_remote_location",
    "resolve",
]
