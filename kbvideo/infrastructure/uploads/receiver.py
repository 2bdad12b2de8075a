"""
Upload staging on the local filesystem.

Every upload is first written to the upload directory under a random,
collision-free name. For the local backend this staged file *is* the stored
video; for R2 it is the source of the remote upload and is removed after.

The size ceiling is enforced while copying, so an oversized upload never
lands on disk in full: the partial file is removed and PayloadTooLarge is
raised.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional
from uuid import uuid4

import aiofiles
import aiofiles.os

from ...core.videos.errors import PayloadTooLarge
from ...core.videos.models import StagedFile
from ...core.videos.pipeline import UploadStream

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".mp4"
DEFAULT_MIME_TYPE = "application/octet-stream"


def staging_filename(original_name: Optional[str]) -> str:
    """
    Random filename keeping the original extension.

    Falls back to .mp4 when the client didn't send one.
    """
    ext = Path(original_name or "").suffix or DEFAULT_EXTENSION
    return f"{uuid4()}{ext}"


class UploadReceiver:
    """
    Writes incoming upload streams into the staging directory.

    Args:
        upload_dir: Directory for staged files (created if missing)
        max_size_bytes: Uploads larger than this are rejected
        chunk_size: Bytes read from the stream per iteration
    """

    def __init__(
        self,
        upload_dir: Path,
        max_size_bytes: int,
        chunk_size: int = 1024 * 1024,
    ) -> None:
        self._upload_dir = Path(upload_dir)
        self._max_size_bytes = max_size_bytes
        self._chunk_size = chunk_size
        self._upload_dir.mkdir(parents=True, exist_ok=True)

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    async def receive(
        self,
        stream: UploadStream,
        declared_name: Optional[str],
        declared_mime_type: Optional[str],
    ) -> StagedFile:
        """
        Copy the stream to a new staged file.

        The file is flushed and fsynced before returning, so callers can
        hand the path straight to a backend.
        """
        path = self._upload_dir / staging_filename(declared_name)
        size_bytes = 0

        try:
            async with aiofiles.open(path, "wb") as f:
                while True:
                    chunk = await stream.read(self._chunk_size)
                    if not chunk:
                        break
                    size_bytes += len(chunk)
                    if size_bytes > self._max_size_bytes:
                        raise PayloadTooLarge.for_limit(self._max_size_bytes)
                    await f.write(chunk)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
        except Exception:
            await self._remove_partial(path)
            raise

        logger.debug(
            "Staged upload",
            extra={
                "path": str(path),
                "size_bytes": size_bytes,
                "original_name": declared_name,
            }
        )

        return StagedFile(
            path=path,
            size_bytes=size_bytes,
            mime_type=declared_mime_type or DEFAULT_MIME_TYPE,
            original_name=declared_name or path.name,
        )

    async def _remove_partial(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "Failed to remove partial upload",
                extra={"path": str(path), "error": str(e)}
            )
