"""
Storage backend selection.

The backend is decided once per process from configuration: R2 when all
three credentials are present, the local upload directory otherwise. The
decision is captured in a tagged value (LocalBackend | RemoteBackend) so
the rest of the code never re-checks individual settings.

Both backends produce the same StorageResult shape, which is what the
metadata recorder persists.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4

from ...config.settings import Settings
from ...core.videos.models import BackendKind, StagedFile, StorageResult
from .client import MediaClient, StorageConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalBackend:
    """Videos stay in the upload directory and are served from /uploads."""
    upload_dir: Path

    @property
    def kind(self) -> BackendKind:
        return BackendKind.LOCAL


@dataclass(frozen=True)
class RemoteBackend:
    """Videos are uploaded to R2 under `folder`."""
    config: StorageConfig
    folder: str
    upload_dir: Path

    @property
    def kind(self) -> BackendKind:
        return BackendKind.REMOTE

    @property
    def media_domain(self) -> str:
        return self.config.public_domain


StorageBackend = Union[LocalBackend, RemoteBackend]


def resolve_storage_backend(settings: Settings) -> StorageBackend:
    """
    Turn settings into a backend descriptor.

    Called once at startup; partial R2 credentials count as absent.
    """
    upload_dir = Path(settings.upload_dir).resolve()

    if settings.remote_storage_configured:
        if not settings.r2_public_domain:
            # Endpoint URLs need signed requests; browsers can't fetch them
            logger.warning(
                "R2_PUBLIC_DOMAIN is not set; video URLs will point at the R2 API "
                "endpoint and thumbnails will be empty",
                extra={"bucket": settings.r2_bucket_name}
            )
        return RemoteBackend(
            config=StorageConfig(
                access_key_id=settings.r2_access_key_id,
                secret_access_key=settings.r2_secret_access_key,
                bucket_name=settings.r2_bucket_name,
                endpoint_url=settings.r2_endpoint,
                public_domain=settings.r2_public_domain,
            ),
            folder=settings.r2_video_folder,
            upload_dir=upload_dir,
        )

    return LocalBackend(upload_dir=upload_dir)


def remote_public_id(folder_hint: str) -> str:
    """Namespaced, random public id: <folder>/<token>."""
    token = uuid4().hex
    folder = folder_hint.strip("/")
    return f"{folder}/{token}" if folder else token


class StorageSelector:
    """
    Stores staged files on the configured backend.

    Remote failures propagate unchanged and the staged file is left in
    place; removing it is the caller's job.
    """

    def __init__(
        self,
        backend: StorageBackend,
        media_client: Optional[MediaClient] = None,
    ) -> None:
        if isinstance(backend, RemoteBackend) and media_client is None:
            raise ValueError("media_client is required for the remote backend")
        self._backend = backend
        self._media_client = media_client

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    async def store(self, staged: StagedFile, folder_hint: str) -> StorageResult:
        if isinstance(self._backend, RemoteBackend):
            return await self._store_remote(staged, folder_hint)
        return self._store_local(staged)

    async def _store_remote(self, staged: StagedFile, folder_hint: str) -> StorageResult:
        public_id = remote_public_id(folder_hint)

        upload = await self._media_client.upload_video(
            local_path=staged.path,
            public_id=public_id,
            content_type=staged.mime_type,
        )

        return StorageResult(
            backend_kind=BackendKind.REMOTE,
            location_uri=upload.url,
            stored_identifier=upload.public_id or public_id,
            size_bytes=upload.size_bytes or staged.size_bytes,
        )

    def _store_local(self, staged: StagedFile) -> StorageResult:
        return StorageResult(
            backend_kind=BackendKind.LOCAL,
            location_uri=str(staged.path),
            stored_identifier=staged.filename,
            size_bytes=staged.size_bytes,
        )
