"""
Remote media client for video storage.

Supports Cloudflare R2 (S3-compatible) with an in-memory mock for tests.
Using R2 because:
- No egress fees (important for video delivery)
- Media transformations on the serving zone give us thumbnails
- Same S3 API means we could swap to actual S3 if needed

The client exposes exactly what the storage pipeline needs: upload a staged
file under a public id and get back a durable URL, or delete an object by
public id.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from ...core.videos.errors import StorageBackendError

logger = logging.getLogger(__name__)


class StorageError(StorageBackendError):
    """Raised when remote storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """
    Configuration for R2/S3-compatible storage.

    `public_domain` is the domain that serves the bucket to browsers. When
    empty, object URLs fall back to the endpoint/bucket form.
    """
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: str
    public_domain: str = ""
    region: str = "auto"  # R2 uses 'auto' for region


@dataclass(frozen=True)
class RemoteUpload:
    """What the remote service reports after an upload."""
    url: str
    public_id: str
    size_bytes: Optional[int] = None


class MediaClient(Protocol):
    """
    Protocol for remote media operations.

    Using a protocol means tests can provide fakes and we can
    swap storage services without changing the selector.
    """

    async def upload_video(
        self,
        local_path: Path,
        public_id: str,
        content_type: str,
    ) -> RemoteUpload:
        """Upload a local file under public_id and return its durable URL."""
        ...

    async def destroy_video(self, public_id: str) -> None:
        """Delete a previously uploaded video."""
        ...


def build_object_url(config: StorageConfig, public_id: str) -> str:
    """Durable https URL for an object key."""
    if config.public_domain:
        domain = config.public_domain.strip().rstrip("/")
        if "://" not in domain:
            domain = f"https://{domain}"
        return f"{domain}/{public_id}"
    return f"{config.endpoint_url.rstrip('/')}/{config.bucket_name}/{public_id}"


class R2MediaClient:
    """
    Cloudflare R2 media client.

    Uses boto3 because R2 is S3-compatible. boto3 is synchronous, so every
    call runs in a worker thread to keep the event loop free while large
    videos upload.
    """

    def __init__(self, config: StorageConfig) -> None:
        """
        Initialize R2 client with boto3.

        We import boto3 here (not at module level) because:
        - Local-only deployments don't need it
        - Explicit about when the dependency is required
        """
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for R2 storage. Install with: pip install boto3"
            )

        self._config = config

        # R2 requires v4 signatures and has specific endpoint patterns
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized R2 media client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    async def upload_video(
        self,
        local_path: Path,
        public_id: str,
        content_type: str,
    ) -> RemoteUpload:
        """
        Upload a staged video to R2.

        upload_file switches to multipart transfers for large files. The
        size is read back with head_object so the record reflects what R2
        actually holds.
        """
        try:
            await asyncio.to_thread(
                self._s3_client.upload_file,
                str(local_path),
                self._config.bucket_name,
                public_id,
                ExtraArgs={'ContentType': content_type},
            )
            head = await asyncio.to_thread(
                self._s3_client.head_object,
                Bucket=self._config.bucket_name,
                Key=public_id,
            )
        except Exception as e:
            logger.error(
                "Failed to upload video",
                extra={"public_id": public_id, "error": str(e)}
            )
            raise StorageError(f"Video upload failed: {e}") from e

        size_bytes = head.get('ContentLength')

        logger.info(
            "Uploaded video",
            extra={"public_id": public_id, "size_bytes": size_bytes}
        )

        return RemoteUpload(
            url=build_object_url(self._config, public_id),
            public_id=public_id,
            size_bytes=size_bytes,
        )

    async def destroy_video(self, public_id: str) -> None:
        """Delete a video object from R2."""
        try:
            await asyncio.to_thread(
                self._s3_client.delete_object,
                Bucket=self._config.bucket_name,
                Key=public_id,
            )
        except Exception as e:
            logger.error(
                "Failed to delete video",
                extra={"public_id": public_id, "error": str(e)}
            )
            raise StorageError(f"Video delete failed: {e}") from e

        logger.info("Deleted video", extra={"public_id": public_id})


# ---------------------------------------------------------------------------
# Mock Media Client for Tests
# ---------------------------------------------------------------------------

class MockMediaClient:
    """
    In-memory media service.

    Uploaded files are copied into a dictionary and URLs point at a fake
    public domain. Failures can be switched on to exercise cleanup paths.
    """

    def __init__(self, public_domain: str = "media.test") -> None:
        self._public_domain = public_domain
        self.objects: dict[str, bytes] = {}
        self.destroyed: list[str] = []
        self.fail_uploads = False
        self.fail_destroys = False
        logger.info("Initialized mock media client (in-memory)")

    async def upload_video(
        self,
        local_path: Path,
        public_id: str,
        content_type: str,
    ) -> RemoteUpload:
        if self.fail_uploads:
            raise StorageError("Video upload failed: mock failure")

        data = Path(local_path).read_bytes()
        self.objects[public_id] = data

        return RemoteUpload(
            url=f"https://{self._public_domain}/{public_id}",
            public_id=public_id,
            size_bytes=len(data),
        )

    async def destroy_video(self, public_id: str) -> None:
        self.destroyed.append(public_id)
        if self.fail_destroys:
            raise StorageError("Video delete failed: mock failure")
        self.objects.pop(public_id, None)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_media_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> MediaClient:
    """
    Create media client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return mock client for testing

    Returns:
        MediaClient implementation (R2 or Mock)
    """
    if mock_mode:
        return MockMediaClient()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return R2MediaClient(config)
