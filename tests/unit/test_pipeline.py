"""
Unit tests for the upload/delete pipeline.

Real receiver, selector, repository (on the Snowflake mock) and cleanup
coordinator are wired together; only R2 is replaced by MockMediaClient.
Deferred work is collected so each test decides when it runs.
"""

import pytest

from conftest import OWNER, STRANGER, SUBTOPIC, VIDEO_FOLDER, BytesStream
from kbvideo.core.videos.errors import (
    ForeignKeyViolation,
    PayloadTooLarge,
    StorageBackendError,
    UnexpectedError,
    VideoNotFound,
)
from kbvideo.core.videos.models import BackendKind
from kbvideo.core.videos.pipeline import VideoPipeline
from kbvideo.infrastructure.storage.cleanup import CleanupCoordinator
from kbvideo.infrastructure.storage.selector import StorageSelector
from kbvideo.infrastructure.uploads.receiver import UploadReceiver

VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42" * 256


class DeferredTasks:
    """Collects deferred calls like BackgroundTasks.add_task."""

    def __init__(self) -> None:
        self.calls = []

    def __call__(self, func, *args, **kwargs) -> None:
        self.calls.append((func, args, kwargs))

    async def run(self) -> None:
        for func, args, kwargs in self.calls:
            await func(*args, **kwargs)


class BrokenSelector:
    async def store(self, staged, folder_hint):
        raise RuntimeError("disk on fire")


class BrokenRecorder:
    def create_video(self, *args, **kwargs):
        raise RuntimeError("warehouse suspended")


@pytest.fixture
def deferred():
    return DeferredTasks()


@pytest.fixture
def receiver(upload_dir):
    return UploadReceiver(upload_dir, max_size_bytes=1024 * 1024, chunk_size=4096)


@pytest.fixture
def local_pipeline(receiver, local_backend, repository, upload_dir):
    return VideoPipeline(
        receiver=receiver,
        selector=StorageSelector(local_backend),
        recorder=repository,
        cleanup=CleanupCoordinator(upload_dir),
        folder_hint="",
    )


@pytest.fixture
def remote_pipeline(receiver, remote_backend, repository, media_client, upload_dir):
    return VideoPipeline(
        receiver=receiver,
        selector=StorageSelector(remote_backend, media_client),
        recorder=repository,
        cleanup=CleanupCoordinator(upload_dir, media_client),
        folder_hint=VIDEO_FOLDER,
    )


async def upload(pipeline, deferred, data=VIDEO_BYTES, subtopic_id=SUBTOPIC, user_id=OWNER):
    return await pipeline.upload(
        stream=BytesStream(data),
        declared_name="Catch Drill.mp4",
        declared_mime_type="video/mp4",
        subtopic_id=subtopic_id,
        user_id=user_id,
        defer=deferred,
    )


class TestLocalUpload:

    async def test_records_video_at_staged_path(self, local_pipeline, deferred, upload_dir):
        asset = await upload(local_pipeline, deferred)

        assert asset.backend_kind is BackendKind.LOCAL
        assert asset.storage_path == str(upload_dir / asset.filename)
        assert (upload_dir / asset.filename).read_bytes() == VIDEO_BYTES
        assert asset.size_bytes == len(VIDEO_BYTES)
        assert asset.original_name == "Catch Drill.mp4"
        assert asset.user_id == OWNER
        assert deferred.calls == []

    async def test_unknown_subtopic_removes_staged_file(
        self, local_pipeline, deferred, upload_dir, mock_connection
    ):
        with pytest.raises(ForeignKeyViolation):
            await upload(local_pipeline, deferred, subtopic_id="no-such-subtopic")

        assert list(upload_dir.iterdir()) == []
        assert mock_connection._video_count() == 0

    async def test_oversized_upload_leaves_nothing(
        self, local_pipeline, deferred, upload_dir, mock_connection
    ):
        with pytest.raises(PayloadTooLarge):
            await upload(local_pipeline, deferred, data=b"x" * (1024 * 1024 + 1))

        assert list(upload_dir.iterdir()) == []
        assert mock_connection._video_count() == 0

    async def test_unexpected_recording_failure_is_wrapped(
        self, receiver, local_backend, upload_dir, deferred
    ):
        pipeline = VideoPipeline(
            receiver=receiver,
            selector=StorageSelector(local_backend),
            recorder=BrokenRecorder(),
            cleanup=CleanupCoordinator(upload_dir),
            folder_hint="",
        )

        with pytest.raises(UnexpectedError, match="Failed to store video"):
            await upload(pipeline, deferred)

        assert list(upload_dir.iterdir()) == []

    async def test_unexpected_storage_failure_is_wrapped(
        self, receiver, repository, upload_dir, deferred
    ):
        pipeline = VideoPipeline(
            receiver=receiver,
            selector=BrokenSelector(),
            recorder=repository,
            cleanup=CleanupCoordinator(upload_dir),
            folder_hint="",
        )

        with pytest.raises(StorageBackendError):
            await upload(pipeline, deferred)

        assert list(upload_dir.iterdir()) == []


class TestRemoteUpload:

    async def test_staged_file_is_discarded_after_success(
        self, remote_pipeline, deferred, upload_dir, media_client
    ):
        asset = await upload(remote_pipeline, deferred)

        assert asset.backend_kind is BackendKind.REMOTE
        assert asset.storage_path.startswith("https://")
        assert asset.filename.startswith(f"{VIDEO_FOLDER}/")
        assert media_client.objects[asset.filename] == VIDEO_BYTES

        assert len(deferred.calls) == 1
        await deferred.run()
        assert list(upload_dir.iterdir()) == []

    async def test_remote_failure_creates_no_record(
        self, remote_pipeline, deferred, upload_dir, media_client, mock_connection
    ):
        media_client.fail_uploads = True

        with pytest.raises(StorageBackendError):
            await upload(remote_pipeline, deferred)

        assert mock_connection._video_count() == 0
        assert list(upload_dir.iterdir()) == []
        assert deferred.calls == []

    async def test_recording_failure_keeps_remote_object(
        self, remote_pipeline, deferred, upload_dir, media_client
    ):
        """The orphaned object is logged, not rolled back."""
        with pytest.raises(ForeignKeyViolation):
            await upload(remote_pipeline, deferred, subtopic_id="no-such-subtopic")

        assert len(media_client.objects) == 1
        assert media_client.destroyed == []
        assert list(upload_dir.iterdir()) == []


class TestReads:

    async def test_reads_go_through_recorder(self, local_pipeline, deferred):
        asset = await upload(local_pipeline, deferred)

        assert (await local_pipeline.get_video(asset.id)).id == asset.id
        assert [a.id for a in await local_pipeline.list_by_subtopic(SUBTOPIC)] == [asset.id]

    async def test_reassign_requires_owner(self, local_pipeline, deferred):
        asset = await upload(local_pipeline, deferred)

        with pytest.raises(VideoNotFound):
            await local_pipeline.reassign(asset.id, STRANGER, "backstroke-basics")

        moved = await local_pipeline.reassign(asset.id, OWNER, "backstroke-basics")
        assert moved.subtopic_id == "backstroke-basics"


class TestDelete:

    async def test_local_delete_removes_file_inline(
        self, local_pipeline, deferred, upload_dir, mock_connection
    ):
        asset = await upload(local_pipeline, deferred)

        await local_pipeline.delete(asset.id, OWNER, deferred)

        assert mock_connection._get_video(asset.id) is None
        assert not (upload_dir / asset.filename).exists()
        assert deferred.calls == []

    async def test_remote_delete_is_deferred(
        self, remote_pipeline, deferred, media_client, mock_connection
    ):
        asset = await upload(remote_pipeline, deferred)
        await deferred.run()
        deferred.calls.clear()

        await remote_pipeline.delete(asset.id, OWNER, deferred)

        assert mock_connection._get_video(asset.id) is None
        assert media_client.destroyed == []

        await deferred.run()
        assert media_client.destroyed == [asset.filename]

    async def test_non_owner_delete_touches_nothing(
        self, local_pipeline, deferred, upload_dir, mock_connection
    ):
        asset = await upload(local_pipeline, deferred)

        with pytest.raises(VideoNotFound):
            await local_pipeline.delete(asset.id, STRANGER, deferred)

        assert mock_connection._get_video(asset.id) is not None
        assert (upload_dir / asset.filename).exists()
