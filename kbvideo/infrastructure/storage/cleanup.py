"""
Best-effort removal of video bytes.

Nothing here raises: a failed unlink or remote delete is logged and the
request that triggered it carries on. Orphaned bytes are an accepted
outcome; a missing file counts as already cleaned.
"""

import logging
from pathlib import Path
from typing import Optional

import aiofiles.os

from ...core.videos.models import DeletedVideo, UploadStage
from .client import MediaClient

logger = logging.getLogger(__name__)


class CleanupCoordinator:
    """
    Removes staged files, local videos and remote objects.

    Args:
        upload_dir: Where local videos live, used when a record has no path
        media_client: R2 client, or None when remote storage isn't configured
    """

    def __init__(
        self,
        upload_dir: Path,
        media_client: Optional[MediaClient] = None,
    ) -> None:
        self._upload_dir = Path(upload_dir)
        self._media_client = media_client

    async def discard_staged(self, path: Path) -> None:
        """Remove a staged upload that is no longer needed."""
        if await self._unlink(Path(path)):
            logger.debug(
                "Discarded staged upload",
                extra={"path": str(path), "stage": UploadStage.CLEANED.value}
            )

    async def destroy_remote(self, public_id: str) -> None:
        """Delete a remote object. Failures are logged and never retried."""
        if self._media_client is None:
            logger.warning(
                "Remote video not deleted: remote storage is not configured",
                extra={"public_id": public_id}
            )
            return

        try:
            await self._media_client.destroy_video(public_id)
        except Exception as e:
            logger.error(
                "Remote video delete failed",
                extra={"public_id": public_id, "error": str(e)}
            )

    async def remove_stored(self, deleted: DeletedVideo) -> None:
        """Remove the bytes behind a deleted record from whichever backend holds them."""
        if deleted.is_remote:
            await self.destroy_remote(deleted.filename)
            return

        path = self.local_path_for(deleted)
        if path is not None:
            await self._unlink(path)

    def local_path_for(self, deleted: DeletedVideo) -> Optional[Path]:
        if deleted.storage_path:
            return Path(deleted.storage_path)
        if deleted.filename:
            return self._upload_dir / deleted.filename
        return None

    async def _unlink(self, path: Path) -> bool:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(
                "Failed to remove local video file",
                extra={"path": str(path), "error": str(e)}
            )
            return False
        return True
