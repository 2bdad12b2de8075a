"""
Domain models for stored videos.

These models represent the core concepts of the storage pipeline. They have
no dependencies on FastAPI, Snowflake or boto3, so the pipeline can be
exercised with in-memory fakes.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse


REMOTE_SCHEMES = ("http", "https")

DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class BackendKind(Enum):
    """Where a video's bytes live."""
    LOCAL = "local"
    REMOTE = "remote"


class UploadStage(Enum):
    """
    Progress of a single upload request.

    Failure stages are terminal. Each one triggers cleanup of whatever
    work was already done; nothing is retried.
    """
    RECEIVED = "received"
    STAGED = "staged"
    STORED = "stored"
    RECORDED = "recorded"
    CLEANED = "cleaned"
    STAGING_FAILED = "staging_failed"
    STORAGE_FAILED = "storage_failed"
    RECORDING_FAILED = "recording_failed"


def is_remote_location(storage_path: Optional[str]) -> bool:
    """
    Decide whether a persisted storage location points at the remote backend.

    Remote locations are absolute http(s) URLs; everything else is treated
    as a local filesystem path.
    """
    if not storage_path:
        return False
    return urlparse(storage_path).scheme.lower() in REMOTE_SCHEMES


@dataclass(frozen=True)
class StagedFile:
    """Upload bytes written to the local staging area."""
    path: Path
    size_bytes: int
    mime_type: str
    original_name: str

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class StorageResult:
    """Normalized outcome of storing a staged file on either backend."""
    backend_kind: BackendKind
    location_uri: str
    stored_identifier: str
    size_bytes: int


@dataclass
class VideoAsset:
    """
    A persisted video record.

    `filename` is the stored identifier: the on-disk filename for local
    videos, the remote public id for R2 videos. `storage_path` holds the
    filesystem path or the durable URL, and its form tells the backends apart.
    """
    id: str
    subtopic_id: str
    user_id: str
    original_name: str
    filename: str
    mime_type: str
    size_bytes: int
    storage_path: str
    created_at: datetime

    @property
    def backend_kind(self) -> BackendKind:
        if is_remote_location(self.storage_path):
            return BackendKind.REMOTE
        return BackendKind.LOCAL


@dataclass(frozen=True)
class DeletedVideo:
    """Storage info returned by an owner-scoped delete."""
    id: str
    filename: str
    storage_path: str

    @property
    def is_remote(self) -> bool:
        return is_remote_location(self.storage_path)


@dataclass(frozen=True)
class ResolvedUrls:
    url: str
    thumbnail_url: str


@dataclass(frozen=True)
class Page:
    """Validated page/limit pair for list queries."""
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_query(cls, page: Optional[str], limit: Optional[str]) -> "Page":
        """
        Build a page from raw query-string values.

        Parsing is lenient: a leading integer is used ("3abc" -> 3) and
        anything unparseable or zero falls back to the default. Page is at
        least 1 and limit is clamped to 1..MAX_PAGE_LIMIT.
        """
        page_value = _leading_int(page) or DEFAULT_PAGE
        limit_value = _leading_int(limit) or DEFAULT_PAGE_LIMIT
        return cls(
            page=max(1, page_value),
            limit=min(MAX_PAGE_LIMIT, max(1, limit_value)),
        )


def _leading_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    match = _LEADING_INT.match(raw)
    return int(match.group(1)) if match else None
