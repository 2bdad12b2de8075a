"""
Video storage pipeline.

This module wires the upload flow together without knowing about HTTP,
Snowflake or R2:

    receive -> stage -> store (local | remote) -> record -> clean up

A record is only written after the bytes are durably stored, and every
failure after staging removes the staged file before the error surfaces.
Work that must not delay the response (removing a staged copy after a
remote upload, deleting remote objects) is handed to a `defer` callable
supplied by the caller; in the API this is FastAPI's BackgroundTasks.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from .errors import (
    StorageBackendError,
    UnexpectedError,
    VideoServiceError,
)
from .models import (
    BackendKind,
    DeletedVideo,
    Page,
    StagedFile,
    StorageResult,
    UploadStage,
    VideoAsset,
)

logger = logging.getLogger(__name__)


Defer = Callable[..., Any]


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class UploadStream(Protocol):
    """Anything with an async chunked read, e.g. FastAPI's UploadFile."""

    async def read(self, size: int = -1) -> bytes: ...


class Receiver(Protocol):
    async def receive(
        self,
        stream: UploadStream,
        declared_name: Optional[str],
        declared_mime_type: Optional[str],
    ) -> StagedFile: ...


class Selector(Protocol):
    async def store(self, staged: StagedFile, folder_hint: str) -> StorageResult: ...


class Cleanup(Protocol):
    async def discard_staged(self, path: Path) -> None: ...

    async def remove_stored(self, deleted: DeletedVideo) -> None: ...


class VideoRecorder(Protocol):
    """
    Persistence operations for video records.

    Implementations are synchronous (DB-API); the pipeline runs them in a
    worker thread so the event loop keeps serving other requests.
    """

    def create_video(
        self,
        user_id: str,
        subtopic_id: str,
        original_name: str,
        filename: str,
        mime_type: str,
        size_bytes: int,
        storage_path: str,
    ) -> VideoAsset: ...

    def list_videos(
        self, subtopic_id: Optional[str], page: Page
    ) -> tuple[list[VideoAsset], int]: ...

    def list_by_subtopic(self, subtopic_id: str) -> list[VideoAsset]: ...

    def get_video(self, video_id: str) -> VideoAsset: ...

    def reassign_subtopic(
        self, video_id: str, user_id: str, subtopic_id: str
    ) -> VideoAsset: ...

    def delete_owned(self, video_id: str, user_id: str) -> DeletedVideo: ...


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class VideoPipeline:
    """
    Orchestrates video uploads, reads, reassignment and deletion.

    One instance is built per request from long-lived collaborators; it
    holds no state of its own between calls.
    """

    def __init__(
        self,
        receiver: Receiver,
        selector: Selector,
        recorder: VideoRecorder,
        cleanup: Cleanup,
        folder_hint: str,
    ) -> None:
        self._receiver = receiver
        self._selector = selector
        self._recorder = recorder
        self._cleanup = cleanup
        self._folder_hint = folder_hint

    async def upload(
        self,
        stream: UploadStream,
        declared_name: Optional[str],
        declared_mime_type: Optional[str],
        subtopic_id: str,
        user_id: str,
        defer: Defer,
    ) -> VideoAsset:
        """
        Stage, store and record one uploaded video.

        Raises PayloadTooLarge when the stream exceeds the size ceiling,
        StorageBackendError when the backend rejects the bytes, and
        ForeignKeyViolation when the subtopic doesn't exist. On every
        failure after staging the staged file is removed first.
        """
        log_context = {"subtopic_id": subtopic_id, "user_id": user_id}
        logger.debug("Video upload received", extra={**log_context, "stage": UploadStage.RECEIVED.value})

        try:
            staged = await self._receiver.receive(stream, declared_name, declared_mime_type)
        except Exception as e:
            self._log_failure(UploadStage.STAGING_FAILED, log_context, error=e)
            raise

        log_context["staged_file"] = staged.filename
        logger.debug(
            "Video staged",
            extra={**log_context, "stage": UploadStage.STAGED.value, "size_bytes": staged.size_bytes},
        )

        try:
            stored = await self._selector.store(staged, self._folder_hint)
        except StorageBackendError:
            await self._fail(UploadStage.STORAGE_FAILED, staged, log_context)
            raise
        except Exception as e:
            await self._fail(UploadStage.STORAGE_FAILED, staged, log_context, error=e)
            raise StorageBackendError() from e

        log_context["backend"] = stored.backend_kind.value
        logger.debug("Video stored", extra={**log_context, "stage": UploadStage.STORED.value})

        try:
            asset = await asyncio.to_thread(
                self._recorder.create_video,
                user_id,
                subtopic_id,
                staged.original_name,
                stored.stored_identifier,
                staged.mime_type,
                stored.size_bytes,
                stored.location_uri,
            )
        except VideoServiceError:
            await self._fail(UploadStage.RECORDING_FAILED, staged, log_context, stored=stored)
            raise
        except Exception as e:
            await self._fail(UploadStage.RECORDING_FAILED, staged, log_context, stored=stored, error=e)
            raise UnexpectedError("Failed to store video") from e

        logger.info(
            "Video recorded",
            extra={**log_context, "video_id": asset.id, "stage": UploadStage.RECORDED.value},
        )

        if stored.backend_kind is BackendKind.REMOTE:
            # the staged copy is no longer needed once R2 holds the bytes
            defer(self._cleanup.discard_staged, staged.path)

        return asset

    async def list_videos(
        self, subtopic_id: Optional[str], page: Page
    ) -> tuple[list[VideoAsset], int]:
        return await asyncio.to_thread(self._recorder.list_videos, subtopic_id, page)

    async def list_by_subtopic(self, subtopic_id: str) -> list[VideoAsset]:
        return await asyncio.to_thread(self._recorder.list_by_subtopic, subtopic_id)

    async def get_video(self, video_id: str) -> VideoAsset:
        return await asyncio.to_thread(self._recorder.get_video, video_id)

    async def reassign(self, video_id: str, user_id: str, subtopic_id: str) -> VideoAsset:
        asset = await asyncio.to_thread(
            self._recorder.reassign_subtopic, video_id, user_id, subtopic_id
        )
        logger.info(
            "Video reassigned",
            extra={"video_id": video_id, "subtopic_id": subtopic_id, "user_id": user_id},
        )
        return asset

    async def delete(self, video_id: str, user_id: str, defer: Defer) -> DeletedVideo:
        """
        Delete an owned video record, then remove its bytes.

        The row goes first and is not restored if byte removal fails.
        Local files are unlinked before returning; remote objects are
        deleted in the background.
        """
        deleted = await asyncio.to_thread(self._recorder.delete_owned, video_id, user_id)

        logger.info(
            "Video record deleted",
            extra={
                "video_id": video_id,
                "user_id": user_id,
                "remote": deleted.is_remote,
            },
        )

        if deleted.is_remote:
            defer(self._cleanup.remove_stored, deleted)
        else:
            await self._cleanup.remove_stored(deleted)

        return deleted

    async def _fail(
        self,
        stage: UploadStage,
        staged: StagedFile,
        log_context: dict,
        stored: Optional[StorageResult] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self._log_failure(stage, log_context, stored=stored, error=error)
        await self._cleanup.discard_staged(staged.path)

    @staticmethod
    def _log_failure(
        stage: UploadStage,
        log_context: dict,
        stored: Optional[StorageResult] = None,
        error: Optional[Exception] = None,
    ) -> None:
        extra = {**log_context, "stage": stage.value}
        if error is not None:
            extra["error"] = str(error)
        if stored is not None and stored.backend_kind is BackendKind.REMOTE:
            # recording failed after R2 accepted the bytes; the object is orphaned
            extra["orphaned_public_id"] = stored.stored_identifier
        logger.error("Video upload failed", extra=extra)
